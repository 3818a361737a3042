"""Locate external tools on disk."""

import os
import shutil
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path

from depdetect.utils.logging import get_logger

logger = get_logger(__name__)


class ExecutableResolver:
    """Find executables by explicit override, project-local wrapper, or PATH."""

    def __init__(
        self,
        overrides: Mapping[str, str | Path | None] | None = None,
        search_path: str | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            overrides: Tool name to explicit path, e.g. ``{"pip": "/opt/pip"}``.
            search_path: PATH string to search instead of the process PATH.
        """
        self._overrides = {
            name: Path(path) for name, path in (overrides or {}).items() if path
        }
        self._search_path = search_path
        self._cache: dict[str, Path | None] = {}
        self._lock = threading.Lock()

    def resolve(
        self,
        name: str,
        directory: Path | None = None,
        local_names: Sequence[str] = (),
    ) -> Path | None:
        """Return the path of *name*, or None when it cannot be found.

        Args:
            name: Tool name as found on PATH (``pip``, ``mvn``).
            directory: Directory checked for project-local wrappers first.
            local_names: Wrapper file names to look for in *directory*
                (``mvnw``).
        """
        override = self._overrides.get(name)
        if override is not None:
            if override.is_file():
                return override
            logger.warning("Configured path for %s does not exist: %s", name, override)

        if directory is not None:
            for local_name in local_names:
                candidate = directory / local_name
                if candidate.is_file() and os.access(candidate, os.X_OK):
                    return candidate

        with self._lock:
            if name not in self._cache:
                found = shutil.which(name, path=self._search_path)
                self._cache[name] = Path(found) if found else None
                logger.debug("Resolved %s to %s", name, self._cache[name])
            return self._cache[name]
