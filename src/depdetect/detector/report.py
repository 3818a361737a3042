"""Per directory/detector status report."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from depdetect.detectable import DetectorStatusCode
from depdetect.detector.evaluator import DetectorEvaluation, DetectorStatus
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectorReportRow:
    """Terminal status of one directory/detector pair."""

    directory: str
    detector: str
    group: str
    status: DetectorStatus
    status_code: DetectorStatusCode
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "directory": self.directory,
            "detector": self.detector,
            "group": self.group,
            "status": self.status.value,
            "status_code": self.status_code.value,
            "reason": self.reason,
        }


@dataclass
class DetectorReport:
    """Every evaluated directory/detector pair; nothing is dropped."""

    rows: list[DetectorReportRow] = field(default_factory=list)

    @classmethod
    def from_evaluations(cls, evaluations: list[DetectorEvaluation]) -> "DetectorReport":
        rows = [
            DetectorReportRow(
                directory=evaluation.environment.relative_path(),
                detector=evaluation.rule.name,
                group=evaluation.rule.group.value,
                status=evaluation.status,
                status_code=evaluation.status_code,
                reason=evaluation.reason,
            )
            for evaluation in evaluations
        ]
        return cls(rows)

    def with_status(self, status: DetectorStatus) -> list[DetectorReportRow]:
        return [row for row in self.rows if row.status == status]

    @property
    def passed(self) -> list[DetectorReportRow]:
        return self.with_status(DetectorStatus.PASSED)

    @property
    def failed(self) -> list[DetectorReportRow]:
        return self.with_status(DetectorStatus.FAILED)

    def for_directory(self, directory: str | Path) -> list[DetectorReportRow]:
        return [row for row in self.rows if row.directory == str(directory)]

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in DetectorStatus}
        for row in self.rows:
            counts[row.status.value] += 1
        return counts

    def log_summary(self) -> None:
        for row in self.passed:
            logger.info("%s: %s passed", row.directory, row.detector)
        for row in self.failed:
            logger.warning("%s: %s failed (%s): %s", row.directory, row.detector, row.status_code.value, row.reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "detectors": [row.to_dict() for row in self.rows],
        }
