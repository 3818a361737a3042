"""Registry of detector rules."""

from typing import ClassVar

from depdetect.detectable import DetectableServices
from depdetect.detector.rules import (
    DetectableAccuracy,
    DetectableOptions,
    DetectorGroup,
    DetectorRule,
    precedence_index,
)
from depdetect.graph import Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)


class DetectorRegistry:
    """Registry for detector rules."""

    _rules: ClassVar[list[DetectorRule]] = []

    @classmethod
    def register(cls, rule: DetectorRule) -> None:
        """Register a detector rule.

        Args:
            rule: Rule to register.

        Raises:
            ValueError: If a rule with the same name is already registered.
        """
        if any(existing.name == rule.name for existing in cls._rules):
            raise ValueError(f"Detector rule already registered: {rule.name}")
        cls._rules.append(rule)

    @classmethod
    def get_all(cls) -> list[DetectorRule]:
        """Get all registered rules, grouped and in precedence order.

        Returns:
            List of all registered rules.
        """
        groups = list(DetectorGroup)
        return sorted(
            cls._rules,
            key=lambda rule: (groups.index(rule.group), precedence_index(rule), rule.name),
        )

    @classmethod
    def get(cls, name: str) -> DetectorRule | None:
        """Get a rule by name.

        Args:
            name: Rule name.

        Returns:
            The rule or None.
        """
        for rule in cls._rules:
            if rule.name == name:
                return rule
        return None

    @classmethod
    def get_for_group(cls, group: DetectorGroup) -> list[DetectorRule]:
        """Get the rules of one group in precedence order."""
        return [rule for rule in cls.get_all() if rule.group == group]

    @classmethod
    def select(
        cls,
        included: list[str] | None = None,
        excluded: list[str] | None = None,
    ) -> list[DetectorRule]:
        """Filter rules by rule name or group value.

        Args:
            included: Keep only rules matching one of these, when given.
            excluded: Drop rules matching one of these.

        Returns:
            The remaining rules in precedence order.
        """

        def matches(rule: DetectorRule, names: list[str]) -> bool:
            lowered = {name.lower() for name in names}
            return rule.name in lowered or rule.group.value in lowered

        rules = cls.get_all()
        if included:
            rules = [rule for rule in rules if matches(rule, included)]
        if excluded:
            rules = [rule for rule in rules if not matches(rule, excluded)]
        return rules

    @classmethod
    def clear(cls) -> None:
        """Clear all registered rules."""
        cls._rules.clear()


def register_default_detectors() -> None:
    """Register all default detector rules."""
    from depdetect.detectables.clang import ClangCompileCommandsDetectable
    from depdetect.detectables.conan import ConanfileTxtDetectable, ConanLockDetectable
    from depdetect.detectables.maven import MavenCliDetectable, MavenPomParseDetectable
    from depdetect.detectables.npm import NpmPackageJsonDetectable, NpmPackageLockDetectable
    from depdetect.detectables.pip import PipfileLockDetectable, PipRequirementsDetectable
    from depdetect.detectables.setuptools import SetupToolsDetectable
    from depdetect.detectables.swift import PackageResolvedExtractor, SwiftPackageResolvedDetectable
    from depdetect.detectables.xcode import XcodeProjectDetectable

    def swift_extractor(services: DetectableServices) -> PackageResolvedExtractor:
        return PackageResolvedExtractor(services.external_id_factory)

    DetectorRegistry.clear()

    DetectorRegistry.register(DetectorRule(
        "npm-package-lock", DetectorGroup.NPM, Forge.NPMJS, DetectableAccuracy.HIGH,
        lambda s, o: NpmPackageLockDetectable(s.external_id_factory, o.include_dev_dependencies),
    ))
    DetectorRegistry.register(DetectorRule(
        "npm-package-json", DetectorGroup.NPM, Forge.NPMJS, DetectableAccuracy.LOW,
        lambda s, o: NpmPackageJsonDetectable(s.external_id_factory, o.include_dev_dependencies),
    ))
    DetectorRegistry.register(DetectorRule(
        "pipfile-lock", DetectorGroup.PIP, Forge.PYPI, DetectableAccuracy.HIGH,
        lambda s, o: PipfileLockDetectable(s.external_id_factory, o.include_dev_dependencies),
    ))
    DetectorRegistry.register(DetectorRule(
        "setuptools", DetectorGroup.PIP, Forge.PYPI, DetectableAccuracy.HIGH,
        lambda s, o: SetupToolsDetectable(s.external_id_factory, s.runner, s.resolver),
    ))
    DetectorRegistry.register(DetectorRule(
        "pip-requirements", DetectorGroup.PIP, Forge.PYPI, DetectableAccuracy.LOW,
        lambda s, o: PipRequirementsDetectable(s.external_id_factory),
    ))
    DetectorRegistry.register(DetectorRule(
        "maven-cli", DetectorGroup.MAVEN, Forge.MAVEN, DetectableAccuracy.HIGH,
        lambda s, o: MavenCliDetectable(
            s.external_id_factory, s.runner, s.resolver, o.maven_excluded_scopes
        ),
        nestable=False,
    ))
    DetectorRegistry.register(DetectorRule(
        "maven-pom-parse", DetectorGroup.MAVEN, Forge.MAVEN, DetectableAccuracy.LOW,
        lambda s, o: MavenPomParseDetectable(s.external_id_factory),
        nestable=False,
    ))
    DetectorRegistry.register(DetectorRule(
        "xcode-project", DetectorGroup.SWIFT, Forge.GITHUB, DetectableAccuracy.HIGH,
        lambda s, o: XcodeProjectDetectable(swift_extractor(s)),
    ))
    DetectorRegistry.register(DetectorRule(
        "swift-package-resolved", DetectorGroup.SWIFT, Forge.GITHUB, DetectableAccuracy.HIGH,
        lambda s, o: SwiftPackageResolvedDetectable(swift_extractor(s)),
    ))
    DetectorRegistry.register(DetectorRule(
        "conan-lock", DetectorGroup.CONAN, Forge.CONAN, DetectableAccuracy.HIGH,
        lambda s, o: ConanLockDetectable(s.external_id_factory, o.include_build_dependencies),
    ))
    DetectorRegistry.register(DetectorRule(
        "conanfile-txt", DetectorGroup.CONAN, Forge.CONAN, DetectableAccuracy.LOW,
        lambda s, o: ConanfileTxtDetectable(s.external_id_factory, o.include_build_dependencies),
    ))
    DetectorRegistry.register(DetectorRule(
        "clang-compile-commands", DetectorGroup.CLANG, Forge.DEBIAN, DetectableAccuracy.LOW,
        lambda s, o: ClangCompileCommandsDetectable(s.external_id_factory, s.runner, s.resolver),
        nestable=False,
    ))

    logger.debug("Registered %d detector rules", len(DetectorRegistry.get_all()))
