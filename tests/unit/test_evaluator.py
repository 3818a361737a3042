"""Tests for per-directory detector evaluation."""

from pathlib import Path

import pytest

from depdetect.detectable import (
    CodeLocation,
    Detectable,
    DetectableContext,
    DetectableEnvironment,
    DetectableResult,
    DetectableServices,
    DetectorStatusCode,
    Extraction,
    ExtractionEnvironment,
)
from depdetect.detector import (
    DetectableAccuracy,
    DetectorEvaluation,
    DetectorEvaluator,
    DetectorGroup,
    DetectorRule,
    DetectorStatus,
)
from depdetect.graph import DependencyGraph, Forge


class StubDetectable(Detectable):
    """Detectable with scripted phase outcomes that records its calls."""

    def __init__(
        self,
        applicable: bool = True,
        extractable: bool = True,
        extraction_succeeds: bool = True,
        raises_in: str | None = None,
    ) -> None:
        self._applicable = applicable
        self._extractable = extractable
        self._extraction_succeeds = extraction_succeeds
        self._raises_in = raises_in
        self.calls: list[str] = []
        self.extraction_directory: Path | None = None

    def _enter(self, phase: str) -> None:
        self.calls.append(phase)
        if self._raises_in == phase:
            raise RuntimeError(f"{phase} exploded")

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        self._enter("applicable")
        if not self._applicable:
            return DetectableResult.file_not_found(environment.directory, "marker")
        return DetectableResult.success()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        self._enter("extractable")
        if not self._extractable:
            return DetectableResult.executable_not_found("tool")
        return DetectableResult.success()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        self._enter("extract")
        self.extraction_directory = extraction_environment.output_directory
        if not self._extraction_succeeds:
            return Extraction.failure("lockfile is corrupt")
        return Extraction.success(CodeLocation(DependencyGraph(), environment.directory))


def _rule(
    name: str,
    detectable: Detectable,
    group: DetectorGroup = DetectorGroup.NPM,
    **kwargs,
) -> DetectorRule:
    return DetectorRule(
        name, group, Forge.NPMJS, DetectableAccuracy.HIGH, lambda s, o: detectable, **kwargs
    )


@pytest.fixture
def scratch(tmp_path: Path) -> Path:
    """Scratch parent for extraction directories."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


def _evaluate(
    rules: list[DetectorRule],
    services: DetectableServices,
    environment: DetectableEnvironment,
    scratch: Path,
    ancestor_groups: set[DetectorGroup] | None = None,
) -> dict[str, DetectorEvaluation]:
    evaluation = DetectorEvaluator(rules, services).evaluate(environment, scratch, ancestor_groups)
    return {e.rule.name: e for e in evaluation.evaluations}


class TestPrecedence:
    """Tests for precedence and yielding within a group."""

    def test_higher_precedence_extracts_lower_yields(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that the lockfile detector wins and package.json yields."""
        lock = StubDetectable()
        package_json = StubDetectable()
        rules = [_rule("npm-package-json", package_json), _rule("npm-package-lock", lock)]

        results = _evaluate(rules, services, environment, scratch)

        assert results["npm-package-lock"].status == DetectorStatus.PASSED
        yielded = results["npm-package-json"]
        assert yielded.status == DetectorStatus.NOT_APPLICABLE
        assert yielded.status_code == DetectorStatusCode.YIELDED
        assert yielded.yielded_to == "npm-package-lock"
        assert "extract" not in package_json.calls
        assert "extractable" not in package_json.calls

    def test_fallback_when_not_extractable(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that a rule failing extractable lets the next one extract."""
        cli = StubDetectable(extractable=False)
        pom = StubDetectable()
        rules = [
            _rule("maven-cli", cli, DetectorGroup.MAVEN),
            _rule("maven-pom-parse", pom, DetectorGroup.MAVEN),
        ]

        results = _evaluate(rules, services, environment, scratch)

        assert results["maven-cli"].status == DetectorStatus.FAILED
        assert results["maven-cli"].status_code == DetectorStatusCode.EXECUTABLE_NOT_FOUND
        assert results["maven-pom-parse"].status == DetectorStatus.PASSED

    def test_no_fallback_after_failed_extraction(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that a failed extraction still claims the group."""
        lock = StubDetectable(extraction_succeeds=False)
        package_json = StubDetectable()
        rules = [_rule("npm-package-lock", lock), _rule("npm-package-json", package_json)]

        results = _evaluate(rules, services, environment, scratch)

        assert results["npm-package-lock"].status == DetectorStatus.FAILED
        assert results["npm-package-lock"].status_code == DetectorStatusCode.EXTRACTION_FAILED
        assert results["npm-package-lock"].reason == "lockfile is corrupt"
        assert results["npm-package-json"].status_code == DetectorStatusCode.YIELDED
        assert "extract" not in package_json.calls

    def test_rules_without_supersession_all_extract(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that an Xcode project does not hide a Package.resolved next to it."""
        xcode = StubDetectable()
        resolved = StubDetectable()
        rules = [
            _rule("xcode-project", xcode, DetectorGroup.SWIFT),
            _rule("swift-package-resolved", resolved, DetectorGroup.SWIFT),
        ]

        results = _evaluate(rules, services, environment, scratch)

        assert results["xcode-project"].status == DetectorStatus.PASSED
        assert results["swift-package-resolved"].status == DetectorStatus.PASSED
        assert results["swift-package-resolved"].yielded_to is None
        assert "extract" in resolved.calls

    def test_supersession_is_per_pair(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that setup.py and requirements.txt both extract, but not under a Pipfile.lock."""
        setuptools = StubDetectable()
        requirements = StubDetectable()
        rules = [
            _rule("setuptools", setuptools, DetectorGroup.PIP),
            _rule("pip-requirements", requirements, DetectorGroup.PIP),
        ]

        results = _evaluate(rules, services, environment, scratch)

        assert results["setuptools"].status == DetectorStatus.PASSED
        assert results["pip-requirements"].status == DetectorStatus.PASSED

        results = _evaluate(
            [_rule("pipfile-lock", StubDetectable(), DetectorGroup.PIP), *rules],
            services,
            environment,
            scratch,
        )

        assert results["setuptools"].yielded_to == "pipfile-lock"
        assert results["pip-requirements"].yielded_to == "pipfile-lock"

    def test_not_applicable_never_extracts(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that extract is only reached through applicable and extractable."""
        detectable = StubDetectable(applicable=False)

        results = _evaluate([_rule("npm-package-lock", detectable)], services, environment, scratch)

        assert detectable.calls == ["applicable"]
        evaluation = results["npm-package-lock"]
        assert evaluation.status == DetectorStatus.NOT_APPLICABLE
        assert evaluation.status_code == DetectorStatusCode.FILE_NOT_FOUND
        assert "marker" in evaluation.reason

    def test_groups_are_independent(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that an npm winner does not affect pip."""
        rules = [
            _rule("npm-package-lock", StubDetectable()),
            _rule("pip-requirements", StubDetectable(), DetectorGroup.PIP),
        ]

        evaluation = DetectorEvaluator(rules, services).evaluate(environment, scratch)

        assert all(e.status == DetectorStatus.PASSED for e in evaluation.evaluations)
        assert evaluation.extracted_groups() == {DetectorGroup.NPM, DetectorGroup.PIP}

    def test_extraction_uses_scratch_directory(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that each extraction gets its own directory under scratch."""
        detectable = StubDetectable()

        _evaluate([_rule("npm-package-lock", detectable)], services, environment, scratch)

        assert detectable.extraction_directory.parent == scratch
        assert detectable.extraction_directory.name.startswith("npm-package-lock-")


class TestSkips:
    """Tests for nesting and depth limits."""

    def test_not_nestable_below_extracted_group(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that non-nestable rules skip when an ancestor extracted."""
        cli = StubDetectable()
        pom = StubDetectable()
        rules = [
            _rule("maven-cli", cli, DetectorGroup.MAVEN, nestable=False),
            _rule("maven-pom-parse", pom, DetectorGroup.MAVEN),
        ]

        results = _evaluate(rules, services, environment, scratch, {DetectorGroup.MAVEN})

        assert results["maven-cli"].status == DetectorStatus.NOT_APPLICABLE
        assert results["maven-cli"].status_code == DetectorStatusCode.NOT_NESTABLE
        assert cli.calls == []
        assert results["maven-pom-parse"].status == DetectorStatus.PASSED

    def test_other_group_ancestor_does_not_block(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that nesting only looks at the rule's own group."""
        cli = StubDetectable()
        rules = [_rule("maven-cli", cli, DetectorGroup.MAVEN, nestable=False)]

        results = _evaluate(rules, services, environment, scratch, {DetectorGroup.NPM})

        assert results["maven-cli"].status == DetectorStatus.PASSED

    def test_max_depth(self, services: DetectableServices, temp_dir: Path, scratch: Path) -> None:
        """Test that rules are skipped below their maximum depth."""
        detectable = StubDetectable()
        environment = DetectableEnvironment(temp_dir / "a" / "b", temp_dir, depth=2)

        results = _evaluate(
            [_rule("npm-package-lock", detectable, max_depth=1)], services, environment, scratch
        )

        assert results["npm-package-lock"].status_code == DetectorStatusCode.MAX_DEPTH_EXCEEDED
        assert results["npm-package-lock"].status == DetectorStatus.NOT_APPLICABLE
        assert detectable.calls == []


class TestExceptions:
    """Tests for exceptions raised by detectables."""

    @pytest.mark.parametrize("phase", ["applicable", "extractable", "extract"])
    def test_exception_fails_only_that_detector(
        self,
        phase: str,
        services: DetectableServices,
        environment: DetectableEnvironment,
        scratch: Path,
    ) -> None:
        """Test that a raising phase is recorded and other groups still run."""
        broken = StubDetectable(raises_in=phase)
        healthy = StubDetectable()
        rules = [
            _rule("npm-package-lock", broken),
            _rule("pip-requirements", healthy, DetectorGroup.PIP),
        ]

        results = _evaluate(rules, services, environment, scratch)

        assert results["npm-package-lock"].status == DetectorStatus.FAILED
        assert results["npm-package-lock"].status_code == DetectorStatusCode.EXCEPTION
        assert f"{phase} exploded" in results["npm-package-lock"].reason
        assert results["pip-requirements"].status == DetectorStatus.PASSED

    def test_factory_exception(
        self, services: DetectableServices, environment: DetectableEnvironment, scratch: Path
    ) -> None:
        """Test that a detectable that cannot be built is a failure."""

        def explode(services: DetectableServices, options: object) -> Detectable:
            raise ValueError("bad options")

        rule = DetectorRule("npm-package-lock", DetectorGroup.NPM, Forge.NPMJS, DetectableAccuracy.HIGH, explode)

        results = _evaluate([rule], services, environment, scratch)

        assert results["npm-package-lock"].status == DetectorStatus.FAILED
        assert "bad options" in results["npm-package-lock"].reason
