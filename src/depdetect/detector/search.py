"""Breadth-first directory search for the detector pipeline."""

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path

from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    "__pycache__",
    ".venv",
    "venv",
    "build",
    "dist",
    ".gradle",
    "target",
]


@dataclass(frozen=True)
class SearchedDirectory:
    """A directory to evaluate and its depth below the scan root."""

    path: Path
    depth: int


class DirectorySearch:
    """Walk a source tree level by level.

    Excluded patterns are matched against both the directory name and its
    path relative to the root, so ``build`` and ``docs/*`` both work.
    Symlinked directories are not followed.
    """

    def __init__(
        self,
        max_depth: int = 3,
        exclude_patterns: list[str] | None = None,
    ) -> None:
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        self.max_depth = max_depth
        self.exclude_patterns = (
            list(DEFAULT_EXCLUDE_PATTERNS) if exclude_patterns is None else list(exclude_patterns)
        )

    def levels(self, root: Path) -> list[list[SearchedDirectory]]:
        """Return the directories to evaluate, grouped by depth.

        Args:
            root: Scan root; always returned alone at depth 0.

        Returns:
            One list per depth, each sorted by path.
        """
        root = root.resolve()
        levels: list[list[SearchedDirectory]] = [[SearchedDirectory(root, 0)]]

        for depth in range(1, self.max_depth + 1):
            level: list[SearchedDirectory] = []
            for parent in levels[-1]:
                for child in self._subdirectories(parent.path):
                    if self.is_excluded(child, root):
                        logger.debug("Excluding %s", child)
                        continue
                    level.append(SearchedDirectory(child, depth))
            if not level:
                break
            levels.append(level)

        return levels

    def search(self, root: Path) -> list[SearchedDirectory]:
        """Flat breadth-first list of :meth:`levels`."""
        return [directory for level in self.levels(root) for directory in level]

    def is_excluded(self, path: Path, root: Path) -> bool:
        try:
            relative = path.relative_to(root).as_posix()
        except ValueError:
            relative = path.as_posix()
        for pattern in self.exclude_patterns:
            if fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(relative, pattern):
                return True
        return False

    @staticmethod
    def _subdirectories(directory: Path) -> list[Path]:
        try:
            with os.scandir(directory) as entries:
                children = [
                    Path(entry.path)
                    for entry in entries
                    if entry.is_dir(follow_symlinks=False)
                ]
        except OSError as e:
            logger.warning("Unable to list %s: %s", directory, e)
            return []
        return sorted(children)
