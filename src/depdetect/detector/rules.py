"""Detector rules and the per-group precedence table."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from depdetect.detectable import Detectable, DetectableServices
from depdetect.graph import Forge


class DetectorGroup(str, Enum):
    """Ecosystems whose detectors compete for the same directory."""

    NPM = "npm"
    PIP = "pip"
    MAVEN = "maven"
    SWIFT = "swift"
    CONAN = "conan"
    CLANG = "clang"


class DetectableAccuracy(str, Enum):
    """HIGH when the full resolved graph is produced, LOW for declared-only."""

    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class DetectableOptions:
    """User options shared by the detectables."""

    include_dev_dependencies: bool = True
    include_build_dependencies: bool = True
    maven_excluded_scopes: tuple[str, ...] = ()


DetectableFactory = Callable[[DetectableServices, DetectableOptions], Detectable]


@dataclass(frozen=True)
class DetectorRule:
    """How and where one detectable kind is evaluated.

    Attributes:
        name: Unique rule name, e.g. ``npm-package-lock``.
        group: Ecosystem group used for precedence and nesting.
        forge: Forge of the dependencies the detectable produces.
        accuracy: Whether the produced graph is complete.
        create: Constructor of the detectable from the shared services.
        nestable: False to skip directories beneath one where the group
            already extracted.
        max_depth: Deepest directory depth to evaluate, None for no limit.
    """

    name: str
    group: DetectorGroup
    forge: Forge
    accuracy: DetectableAccuracy
    create: DetectableFactory = field(compare=False, repr=False)
    nestable: bool = True
    max_depth: int | None = None


# Evaluation order inside each group.
DETECTOR_PRECEDENCE: dict[DetectorGroup, tuple[str, ...]] = {
    DetectorGroup.NPM: ("npm-package-lock", "npm-package-json"),
    DetectorGroup.PIP: ("pipfile-lock", "setuptools", "pip-requirements"),
    DetectorGroup.MAVEN: ("maven-cli", "maven-pom-parse"),
    DetectorGroup.SWIFT: ("xcode-project", "swift-package-resolved"),
    DetectorGroup.CONAN: ("conan-lock", "conanfile-txt"),
    DetectorGroup.CLANG: ("clang-compile-commands",),
}

# Rules that skip the listed rules of the same directory once they extract.
# Every other applicable rule extracts too and its graph is merged into the
# same code location.
DETECTOR_SUPERSEDES: dict[str, tuple[str, ...]] = {
    "npm-package-lock": ("npm-package-json",),
    "pipfile-lock": ("setuptools", "pip-requirements"),
    "maven-cli": ("maven-pom-parse",),
    "conan-lock": ("conanfile-txt",),
}


def precedence_index(rule: DetectorRule) -> int:
    """Position of *rule* in its group; rules missing from the table go last."""
    order = DETECTOR_PRECEDENCE.get(rule.group, ())
    try:
        return order.index(rule.name)
    except ValueError:
        return len(order)


def supersedes(rule: DetectorRule, other: DetectorRule) -> bool:
    """Whether *rule* extracting in a directory skips *other* there."""
    return rule.group == other.group and other.name in DETECTOR_SUPERSEDES.get(rule.name, ())
