"""Swift Package Manager ``Package.resolved`` lockfiles."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from depdetect.detectable import (
    CodeLocation,
    Detectable,
    DetectableContext,
    DetectableEnvironment,
    DetectableResult,
    DetectorStatusCode,
    Extraction,
    ExtractionEnvironment,
    Requirements,
)
from depdetect.errors import DetectableParseError
from depdetect.graph import DependencyGraph, ExternalIdFactory, Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

PACKAGE_RESOLVED_FILENAME = "Package.resolved"
PACKAGE_SWIFT_FILENAME = "Package.swift"


@dataclass
class PackageResolvedResult:
    """Either a graph or the reason the lockfile could not be used."""

    dependency_graph: DependencyGraph | None = None
    failed_result: DetectableResult | None = None

    @classmethod
    def success(cls, graph: DependencyGraph) -> "PackageResolvedResult":
        return cls(dependency_graph=graph)

    @classmethod
    def failure(cls, description: str) -> "PackageResolvedResult":
        return cls(
            failed_result=DetectableResult.failure(
                DetectorStatusCode.EXTRACTION_FAILED, description
            )
        )


def clean_repository_location(location: str) -> str:
    """Reduce a repository URL to ``host/owner/repo``.

    ``https://github.com/apple/swift-log.git`` becomes
    ``github.com/apple/swift-log``.
    """
    cleaned = location.strip()
    cleaned = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", cleaned)
    cleaned = re.sub(r"^git@([^:]+):", r"\1/", cleaned)
    cleaned = re.sub(r"^www\.", "", cleaned)
    cleaned = cleaned.rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    return cleaned


class PackageResolvedParser:
    """Parse Package.resolved formats 1, 2 and 3 into pins."""

    def parse(self, data: dict[str, Any]) -> list[tuple[str, str | None]]:
        """Return ``(location, version)`` pins.

        Raises:
            DetectableParseError: If the document has no recognizable pins.
        """
        version = data.get("version", 1)
        if version == 1:
            pins = data.get("object", {}).get("pins")
            location_key = "repositoryURL"
        else:
            pins = data.get("pins")
            location_key = "location"

        if not isinstance(pins, list):
            raise DetectableParseError(
                PACKAGE_RESOLVED_FILENAME,
                message=f"Unsupported {PACKAGE_RESOLVED_FILENAME} format version: {version}",
            )

        parsed: list[tuple[str, str | None]] = []
        for pin in pins:
            if not isinstance(pin, dict):
                continue
            location = pin.get(location_key)
            if not location:
                logger.debug("Skipping pin without %s: %s", location_key, pin)
                continue
            state = pin.get("state") or {}
            parsed.append((location, state.get("version")))
        return parsed


class PackageResolvedExtractor:
    """Turn a Package.resolved file into a flat dependency graph."""

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.external_id_factory = external_id_factory
        self.parser = PackageResolvedParser()

    def extract(self, package_resolved: Path) -> PackageResolvedResult:
        try:
            with open(package_resolved, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            return PackageResolvedResult.failure(
                f"Failed to read {package_resolved}: {e}"
            )

        try:
            pins = self.parser.parse(data)
        except DetectableParseError as e:
            return PackageResolvedResult.failure(e.message)

        graph = DependencyGraph()
        for location, version in pins:
            if not version:
                return PackageResolvedResult.failure(
                    f"Pin {location} in {package_resolved} has no resolved version; "
                    "branch and revision pins are not supported."
                )
            graph.add_child_to_root(
                self.external_id_factory.create_dependency(
                    Forge.GITHUB, clean_repository_location(location), version
                )
            )
        return PackageResolvedResult.success(graph)


class SwiftPackageResolvedDetectable(Detectable):
    """Swift packages with a Package.resolved next to their manifest."""

    def __init__(self, package_resolved_extractor: PackageResolvedExtractor) -> None:
        self.package_resolved_extractor = package_resolved_extractor

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(PACKAGE_RESOLVED_FILENAME)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.optional_file(environment.directory, PACKAGE_SWIFT_FILENAME)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        package_resolved = context.files[PACKAGE_RESOLVED_FILENAME]
        result = self.package_resolved_extractor.extract(package_resolved)
        if result.failed_result is not None:
            return Extraction.from_failed_result(result.failed_result)
        return Extraction.success(
            CodeLocation(result.dependency_graph, environment.directory)
        )
