"""Run the three detectable phases for one directory.

Rules of different groups are independent. Within a group rules are tried in
precedence order and every applicable, extractable rule extracts, unless a
rule that supersedes it was already chosen in the same directory; then it
yields. A rule that fails ``extractable`` does not claim anything, so the
rules it supersedes still run.
"""

import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeVar

from depdetect.detectable import (
    DetectableContext,
    DetectableEnvironment,
    DetectableResult,
    DetectableServices,
    DetectorStatusCode,
    Extraction,
    ExtractionEnvironment,
    ExtractionResultType,
)
from depdetect.detector.rules import (
    DetectableOptions,
    DetectorGroup,
    DetectorRule,
    precedence_index,
    supersedes,
)
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DetectorStatus(str, Enum):
    """Terminal status of one directory/detector pair."""

    PASSED = "passed"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


@dataclass
class DetectorEvaluation:
    """Everything known about one rule evaluated against one directory."""

    rule: DetectorRule
    environment: DetectableEnvironment
    skipped: DetectableResult | None = None
    applicable: DetectableResult | None = None
    extractable: DetectableResult | None = None
    extraction: Extraction | None = None
    yielded_to: str | None = None

    @property
    def directory(self) -> Path:
        return self.environment.directory

    @property
    def is_applicable(self) -> bool:
        return self.applicable is not None and self.applicable.passed

    @property
    def is_extractable(self) -> bool:
        return self.is_applicable and self.extractable is not None and self.extractable.passed

    @property
    def is_extracted(self) -> bool:
        return self.extraction is not None and self.extraction.is_success

    @property
    def status(self) -> DetectorStatus:
        if self.extraction is not None:
            return DetectorStatus.PASSED if self.extraction.is_success else DetectorStatus.FAILED
        if self.extractable is not None and not self.extractable.passed:
            return DetectorStatus.FAILED
        if self.applicable is not None and self.applicable.status_code == DetectorStatusCode.EXCEPTION:
            return DetectorStatus.FAILED
        return DetectorStatus.NOT_APPLICABLE

    @property
    def status_code(self) -> DetectorStatusCode:
        if self.extraction is not None:
            return {
                ExtractionResultType.SUCCESS: DetectorStatusCode.PASSED,
                ExtractionResultType.FAILURE: DetectorStatusCode.EXTRACTION_FAILED,
                ExtractionResultType.EXCEPTION: DetectorStatusCode.EXCEPTION,
            }[self.extraction.result]
        for result in (self.skipped, self.extractable, self.applicable):
            if result is not None and not result.passed:
                return result.status_code
        if self.yielded_to is not None:
            return DetectorStatusCode.YIELDED
        return DetectorStatusCode.PASSED

    @property
    def reason(self) -> str:
        if self.extraction is not None:
            return self.extraction.description or "Extraction succeeded."
        for result in (self.skipped, self.extractable, self.applicable):
            if result is not None and not result.passed:
                return result.description
        if self.yielded_to is not None:
            return f"Yielded to {self.yielded_to}."
        return "Not evaluated."


@dataclass
class DirectoryEvaluation:
    """All rule evaluations for one directory."""

    environment: DetectableEnvironment
    evaluations: list[DetectorEvaluation] = field(default_factory=list)

    def extracted_groups(self) -> set[DetectorGroup]:
        return {evaluation.rule.group for evaluation in self.evaluations if evaluation.is_extracted}


class DetectorEvaluator:
    """Evaluate a fixed set of rules against directories."""

    def __init__(
        self,
        rules: list[DetectorRule],
        services: DetectableServices,
        options: DetectableOptions | None = None,
    ) -> None:
        self.services = services
        self.options = options or DetectableOptions()
        self.groups: dict[DetectorGroup, list[DetectorRule]] = {}
        for rule in rules:
            self.groups.setdefault(rule.group, []).append(rule)
        for group_rules in self.groups.values():
            group_rules.sort(key=precedence_index)

    def evaluate(
        self,
        environment: DetectableEnvironment,
        scratch_directory: Path,
        ancestor_groups: set[DetectorGroup] | None = None,
    ) -> DirectoryEvaluation:
        """Evaluate every rule against one directory.

        Args:
            environment: The directory being evaluated.
            scratch_directory: Parent of the per-extraction output directories.
            ancestor_groups: Groups that extracted in an ancestor directory;
                non-nestable rules of these groups are skipped.

        Returns:
            One evaluation per rule, in group and precedence order.
        """
        ancestor_groups = ancestor_groups or set()
        directory_evaluation = DirectoryEvaluation(environment)
        for group, rules in self.groups.items():
            directory_evaluation.evaluations.extend(
                self._evaluate_group(environment, rules, group in ancestor_groups, scratch_directory)
            )
        return directory_evaluation

    def failed(self, environment: DetectableEnvironment, exception: Exception) -> DirectoryEvaluation:
        """One failed evaluation per rule for a directory whose evaluation raised."""
        directory_evaluation = DirectoryEvaluation(environment)
        for rules in self.groups.values():
            directory_evaluation.evaluations.extend(
                DetectorEvaluation(rule, environment, applicable=DetectableResult.from_exception(exception))
                for rule in rules
            )
        return directory_evaluation

    def _evaluate_group(
        self,
        environment: DetectableEnvironment,
        rules: list[DetectorRule],
        extracted_above: bool,
        scratch_directory: Path,
    ) -> list[DetectorEvaluation]:
        evaluations: list[DetectorEvaluation] = []
        chosen: list[DetectorRule] = []

        for rule in rules:
            evaluation = DetectorEvaluation(rule, environment)
            evaluations.append(evaluation)

            if rule.max_depth is not None and environment.depth > rule.max_depth:
                evaluation.skipped = DetectableResult.failure(
                    DetectorStatusCode.MAX_DEPTH_EXCEEDED,
                    f"Maximum depth of {rule.max_depth} exceeded at depth {environment.depth}.",
                )
                continue
            if not rule.nestable and extracted_above:
                evaluation.skipped = DetectableResult.failure(
                    DetectorStatusCode.NOT_NESTABLE,
                    f"Not nestable and a {rule.group.value} detector already extracted above.",
                )
                continue

            try:
                detectable = rule.create(self.services, self.options)
            except Exception as e:
                logger.warning("Failed to create detector %s: %s", rule.name, e)
                evaluation.applicable = DetectableResult.from_exception(e)
                continue

            context = DetectableContext()
            evaluation.applicable = _guard(
                lambda: detectable.applicable(environment, context), DetectableResult.from_exception
            )
            if not evaluation.applicable.passed:
                logger.debug("%s not applicable in %s: %s", rule.name, environment.directory, evaluation.applicable.description)
                continue

            superseding = next((other for other in chosen if supersedes(other, rule)), None)
            if superseding is not None:
                evaluation.yielded_to = superseding.name
                continue

            evaluation.extractable = _guard(
                lambda: detectable.extractable(environment, context), DetectableResult.from_exception
            )
            if not evaluation.extractable.passed:
                logger.debug("%s not extractable in %s: %s", rule.name, environment.directory, evaluation.extractable.description)
                continue

            chosen.append(rule)
            extraction_environment = ExtractionEnvironment(
                Path(tempfile.mkdtemp(prefix=f"{rule.name}-", dir=scratch_directory))
            )
            logger.info("Extracting %s in %s", rule.name, environment.directory)
            evaluation.extraction = _guard(
                lambda: detectable.extract(environment, context, extraction_environment),
                Extraction.from_exception,
            )
            if not evaluation.extraction.is_success:
                logger.warning("%s failed in %s: %s", rule.name, environment.directory, evaluation.extraction.description)

        return evaluations


def _guard(phase: Callable[[], T], on_exception: Callable[[Exception], T]) -> T:
    """Run one phase, turning an unexpected exception into its failed result."""
    try:
        return phase()
    except Exception as e:
        logger.debug("Detectable raised", exc_info=True)
        return on_exception(e)
