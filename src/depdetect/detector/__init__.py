"""Detector rules, evaluation and the scan pipeline."""

from depdetect.detector.code_location import (
    CodeLocationAssembler,
    CodeLocationNamer,
    NamedCodeLocation,
)
from depdetect.detector.evaluator import (
    DetectorEvaluation,
    DetectorEvaluator,
    DetectorStatus,
    DirectoryEvaluation,
)
from depdetect.detector.pipeline import DetectorPipeline, DetectorToolResult
from depdetect.detector.registry import DetectorRegistry, register_default_detectors
from depdetect.detector.report import DetectorReport, DetectorReportRow
from depdetect.detector.rules import (
    DETECTOR_PRECEDENCE,
    DETECTOR_SUPERSEDES,
    DetectableAccuracy,
    DetectableOptions,
    DetectorGroup,
    DetectorRule,
)
from depdetect.detector.search import DirectorySearch, SearchedDirectory

__all__ = [
    "CodeLocationAssembler",
    "CodeLocationNamer",
    "DETECTOR_PRECEDENCE",
    "DETECTOR_SUPERSEDES",
    "DetectableAccuracy",
    "DetectableOptions",
    "DetectorEvaluation",
    "DetectorEvaluator",
    "DetectorGroup",
    "DetectorPipeline",
    "DetectorRegistry",
    "DetectorReport",
    "DetectorReportRow",
    "DetectorRule",
    "DetectorStatus",
    "DetectorToolResult",
    "DirectoryEvaluation",
    "DirectorySearch",
    "NamedCodeLocation",
    "SearchedDirectory",
    "register_default_detectors",
]

register_default_detectors()
