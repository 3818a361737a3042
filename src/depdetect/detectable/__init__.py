"""Detectable contract, phase results and environments."""

from depdetect.detectable.base import Detectable, DetectableServices
from depdetect.detectable.environment import (
    DetectableContext,
    DetectableEnvironment,
    ExtractionEnvironment,
)
from depdetect.detectable.requirements import Requirements
from depdetect.detectable.result import (
    CodeLocation,
    DetectableResult,
    DetectorStatusCode,
    Extraction,
    ExtractionResultType,
)

__all__ = [
    "CodeLocation",
    "Detectable",
    "DetectableContext",
    "DetectableEnvironment",
    "DetectableResult",
    "DetectableServices",
    "DetectorStatusCode",
    "Extraction",
    "ExtractionEnvironment",
    "ExtractionResultType",
    "Requirements",
]
