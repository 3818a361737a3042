"""Xcode projects that resolve Swift packages."""

from depdetect.detectable import (
    CodeLocation,
    Detectable,
    DetectableContext,
    DetectableEnvironment,
    DetectableResult,
    Extraction,
    ExtractionEnvironment,
    Requirements,
)
from depdetect.detectables.swift import PACKAGE_RESOLVED_FILENAME, PackageResolvedExtractor
from depdetect.graph import DependencyGraph

PACKAGE_RESOLVED_RELATIVE_PATH = "project.xcworkspace/xcshareddata/swiftpm"

_PROJECT_KEY = "xcodeproj"


class XcodeProjectDetectable(Detectable):
    """An ``*.xcodeproj`` directory, optionally with a resolved SwiftPM lockfile.

    The project is reported even without a lockfile, as an empty graph.
    """

    def __init__(self, package_resolved_extractor: PackageResolvedExtractor) -> None:
        self.package_resolved_extractor = package_resolved_extractor

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.directory("*.xcodeproj", key=_PROJECT_KEY)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        swiftpm_directory = context.files[_PROJECT_KEY] / PACKAGE_RESOLVED_RELATIVE_PATH
        requirements.optional_file(swiftpm_directory, PACKAGE_RESOLVED_FILENAME)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        project_directory = context.files[_PROJECT_KEY]
        package_resolved = context.file(PACKAGE_RESOLVED_FILENAME)
        if package_resolved is None:
            return Extraction.success(CodeLocation(DependencyGraph(), project_directory))

        result = self.package_resolved_extractor.extract(package_resolved)
        if result.failed_result is not None:
            return Extraction.from_failed_result(result.failed_result)
        return Extraction.success(CodeLocation(result.dependency_graph, project_directory))
