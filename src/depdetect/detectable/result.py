"""Outcomes of the detectable phases and of extraction."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from depdetect.graph import DependencyGraph, ExternalId


class DetectorStatusCode(str, Enum):
    """Why a detector ended in the state it did."""

    PASSED = "passed"
    FILE_NOT_FOUND = "file_not_found"
    FILES_NOT_FOUND = "files_not_found"
    DIRECTORY_NOT_FOUND = "directory_not_found"
    EXECUTABLE_NOT_FOUND = "executable_not_found"
    INCOMPATIBLE_MANIFEST = "incompatible_manifest"
    YIELDED = "yielded"
    NOT_NESTABLE = "not_nestable"
    MAX_DEPTH_EXCEEDED = "max_depth_exceeded"
    EXTRACTION_FAILED = "extraction_failed"
    EXCEPTION = "exception"


@dataclass(frozen=True)
class DetectableResult:
    """Result of the applicable or extractable phase.

    Attributes:
        passed: Whether the phase passed.
        status_code: Machine readable reason.
        description: Human readable reason.
        explanations: What was found while passing, e.g. located files.
        exception: The error when the phase raised unexpectedly.
    """

    passed: bool
    status_code: DetectorStatusCode
    description: str
    explanations: tuple[str, ...] = ()
    exception: BaseException | None = None

    @classmethod
    def success(cls, explanations: list[str] | tuple[str, ...] = ()) -> "DetectableResult":
        return cls(True, DetectorStatusCode.PASSED, "Passed.", tuple(explanations))

    @classmethod
    def failure(cls, status_code: DetectorStatusCode, description: str) -> "DetectableResult":
        return cls(False, status_code, description)

    @classmethod
    def file_not_found(cls, directory: Path, pattern: str) -> "DetectableResult":
        return cls.failure(
            DetectorStatusCode.FILE_NOT_FOUND,
            f"No file was found with pattern: {pattern} in {directory}",
        )

    @classmethod
    def files_not_found(cls, directory: Path, patterns: list[str]) -> "DetectableResult":
        return cls.failure(
            DetectorStatusCode.FILES_NOT_FOUND,
            f"No files were found with any of the patterns: {', '.join(patterns)} in {directory}",
        )

    @classmethod
    def directory_not_found(cls, directory: Path, pattern: str) -> "DetectableResult":
        return cls.failure(
            DetectorStatusCode.DIRECTORY_NOT_FOUND,
            f"No directory was found with pattern: {pattern} in {directory}",
        )

    @classmethod
    def executable_not_found(cls, name: str) -> "DetectableResult":
        return cls.failure(
            DetectorStatusCode.EXECUTABLE_NOT_FOUND,
            f"No {name} executable was found.",
        )

    @classmethod
    def from_exception(cls, exception: BaseException) -> "DetectableResult":
        return cls(
            False,
            DetectorStatusCode.EXCEPTION,
            f"An exception occurred: {exception}",
            exception=exception,
        )


@dataclass
class CodeLocation:
    """A dependency graph plus the path it was derived from."""

    dependency_graph: DependencyGraph
    source_path: Path
    external_id: ExternalId | None = None


class ExtractionResultType(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EXCEPTION = "exception"


@dataclass
class Extraction:
    """Outcome of the extract phase."""

    result: ExtractionResultType
    code_locations: list[CodeLocation] = field(default_factory=list)
    description: str = ""
    exception: BaseException | None = None
    project_name: str | None = None
    project_version: str | None = None

    @property
    def is_success(self) -> bool:
        return self.result == ExtractionResultType.SUCCESS

    @classmethod
    def success(
        cls,
        code_locations: CodeLocation | list[CodeLocation],
        project_name: str | None = None,
        project_version: str | None = None,
    ) -> "Extraction":
        if isinstance(code_locations, CodeLocation):
            code_locations = [code_locations]
        return cls(
            ExtractionResultType.SUCCESS,
            code_locations=list(code_locations),
            project_name=project_name,
            project_version=project_version,
        )

    @classmethod
    def failure(cls, description: str, exception: BaseException | None = None) -> "Extraction":
        return cls(ExtractionResultType.FAILURE, description=description, exception=exception)

    @classmethod
    def from_failed_result(cls, result: DetectableResult) -> "Extraction":
        return cls.failure(result.description, result.exception)

    @classmethod
    def from_exception(cls, exception: BaseException) -> "Extraction":
        return cls(
            ExtractionResultType.EXCEPTION,
            description=f"An exception occurred during extraction: {exception}",
            exception=exception,
        )
