"""Inputs shared by the three detectable phases."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class DetectableEnvironment:
    """The directory being evaluated plus read-only scan information."""

    directory: Path
    root_directory: Path
    depth: int = 0
    exclude_patterns: tuple[str, ...] = ()

    @property
    def is_nested(self) -> bool:
        """True when this is not the scan root."""
        return self.depth > 0

    def relative_path(self) -> str:
        if self.directory == self.root_directory:
            return "."
        try:
            return self.directory.relative_to(self.root_directory).as_posix()
        except ValueError:
            return str(self.directory)


@dataclass(frozen=True)
class ExtractionEnvironment:
    """Scratch directory owned by the pipeline for one extraction."""

    output_directory: Path

    def output_file(self, name: str) -> Path:
        self.output_directory.mkdir(parents=True, exist_ok=True)
        return self.output_directory / name


@dataclass
class DetectableContext:
    """Per-invocation state carried from one phase to the next.

    ``applicable`` records located markers, ``extractable`` records optional
    inputs and executables, and ``extract`` reads them back. A fresh context
    is created for every directory and detector, so detectables themselves
    hold no state between phases.
    """

    files: dict[str, Path] = field(default_factory=dict)
    file_lists: dict[str, list[Path]] = field(default_factory=dict)
    executables: dict[str, Path] = field(default_factory=dict)
    explanations: list[str] = field(default_factory=list)

    def file(self, key: str) -> Path | None:
        return self.files.get(key)

    def executable(self, key: str) -> Path | None:
        return self.executables.get(key)
