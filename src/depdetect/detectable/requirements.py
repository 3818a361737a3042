"""Helper that turns file and executable checks into a DetectableResult."""

from collections.abc import Sequence
from pathlib import Path

from depdetect.detectable.environment import DetectableContext, DetectableEnvironment
from depdetect.detectable.result import DetectableResult, DetectorStatusCode
from depdetect.executable import ExecutableResolver


class Requirements:
    """Accumulate requirement checks for one phase.

    Checks only look at names on disk, never at file contents. Found paths are
    recorded in the context under the given key. The first unmet requirement
    decides the failure; checks after it are skipped and return None.
    """

    def __init__(self, environment: DetectableEnvironment, context: DetectableContext) -> None:
        self.environment = environment
        self.context = context
        self._failure: DetectableResult | None = None
        self._explanations: list[str] = []

    @property
    def failed(self) -> bool:
        return self._failure is not None

    def file(self, pattern: str, key: str | None = None) -> Path | None:
        """Require a file matching *pattern* directly in the directory."""
        if self.failed:
            return None
        found = self._children(self.environment.directory, pattern, want_dir=False)
        if not found:
            self._failure = DetectableResult.file_not_found(self.environment.directory, pattern)
            return None
        self._record_file(key or pattern, found[0])
        return found[0]

    def either_file(self, patterns: Sequence[str], key: str) -> Path | None:
        """Require at least one of *patterns*; the first pattern that matches wins."""
        if self.failed:
            return None
        for pattern in patterns:
            found = self._children(self.environment.directory, pattern, want_dir=False)
            if found:
                self._record_file(key, found[0])
                return found[0]
        self._failure = DetectableResult.files_not_found(
            self.environment.directory, list(patterns)
        )
        return None

    def files(self, pattern: str, key: str) -> list[Path]:
        """Require one or more files matching *pattern*; all are recorded."""
        if self.failed:
            return []
        found = self._children(self.environment.directory, pattern, want_dir=False)
        if not found:
            self._failure = DetectableResult.files_not_found(self.environment.directory, [pattern])
            return []
        self.context.file_lists[key] = found
        self._explain(f"Found files: {', '.join(path.name for path in found)}")
        return found

    def directory(self, pattern: str, key: str | None = None) -> Path | None:
        """Require a directory matching *pattern* directly in the directory."""
        if self.failed:
            return None
        found = self._children(self.environment.directory, pattern, want_dir=True)
        if not found:
            self._failure = DetectableResult.directory_not_found(self.environment.directory, pattern)
            return None
        self.context.files[key or pattern] = found[0]
        self._explain(f"Found directory: {found[0]}")
        return found[0]

    def optional_file(
        self, directory: Path, name: str, key: str | None = None
    ) -> Path | None:
        """Look for *name* inside *directory*; absence is recorded, not a failure."""
        if self.failed:
            return None
        candidate = directory / name
        if candidate.is_file():
            self._record_file(key or name, candidate)
            return candidate
        self._explain(f"Optional file not found: {candidate}")
        return None

    def executable(
        self,
        resolver: ExecutableResolver,
        name: str,
        key: str | None = None,
        local_names: Sequence[str] = (),
        optional: bool = False,
    ) -> Path | None:
        """Resolve an executable, failing the phase unless *optional*."""
        if self.failed:
            return None
        found = resolver.resolve(name, self.environment.directory, local_names)
        if found is None:
            if optional:
                self._explain(f"Optional executable not found: {name}")
            else:
                self._failure = DetectableResult.executable_not_found(name)
            return None
        self.context.executables[key or name] = found
        self._explain(f"Found executable: {found}")
        return found

    def fail(self, status_code: DetectorStatusCode, description: str) -> None:
        if not self.failed:
            self._failure = DetectableResult.failure(status_code, description)

    def result(self) -> DetectableResult:
        if self._failure is not None:
            return self._failure
        return DetectableResult.success(self._explanations)

    def _record_file(self, key: str, path: Path) -> None:
        self.context.files[key] = path
        self._explain(f"Found file: {path}")

    def _explain(self, explanation: str) -> None:
        self._explanations.append(explanation)
        self.context.explanations.append(explanation)

    @staticmethod
    def _children(directory: Path, pattern: str, want_dir: bool) -> list[Path]:
        matches = [
            path
            for path in directory.glob(pattern)
            if (path.is_dir() if want_dir else path.is_file())
        ]
        return sorted(matches)
