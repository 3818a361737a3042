"""Tests for DetectorPipeline."""

import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from depdetect.detectable import (
    Detectable,
    DetectableResult,
    DetectableServices,
    DetectorStatusCode,
    Extraction,
)
from depdetect.detector import (
    DetectableAccuracy,
    DetectableOptions,
    DetectorGroup,
    DetectorPipeline,
    DetectorRegistry,
    DetectorRule,
    DetectorStatus,
    DirectorySearch,
)
from depdetect.errors import ScanError
from depdetect.graph import Forge

PACKAGE_LOCK = {
    "name": "web",
    "version": "3.1.0",
    "lockfileVersion": 3,
    "packages": {
        "": {"name": "web", "version": "3.1.0", "dependencies": {"left-pad": "^1.3.0"}},
        "node_modules/left-pad": {"version": "1.3.0"},
    },
}

POM = """<project>
  <groupId>com.example</groupId>
  <artifactId>{artifact}</artifactId>
  <version>1.0.0</version>
  <dependencies>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
      <version>4.13.2</version>
    </dependency>
  </dependencies>
</project>
"""


@pytest.fixture
def project(write_file: Callable[..., Path], temp_dir: Path) -> Path:
    """A small polyglot source tree."""
    write_file("package-lock.json", PACKAGE_LOCK)
    write_file("package.json", {"name": "web", "version": "3.1.0", "dependencies": {"left-pad": "^1.3.0"}})
    write_file("service/requirements.txt", "requests==2.31.0\n")
    write_file("lib/pom.xml", POM.format(artifact="lib"))
    write_file("lib/module/pom.xml", POM.format(artifact="module"))
    write_file("node_modules/ignored/package.json", {"name": "ignored"})
    return temp_dir


def _pipeline(services: DetectableServices, **kwargs) -> DetectorPipeline:
    return DetectorPipeline(DetectorRegistry.get_all(), services=services, **kwargs)


def _status(result, directory: str, detector: str):
    (row,) = [r for r in result.report.for_directory(directory) if r.detector == detector]
    return row


class TestDetectorPipeline:
    """Tests for DetectorPipeline."""

    def test_scan(self, services: DetectableServices, project: Path) -> None:
        """Test a scan across ecosystems and depths."""
        result = _pipeline(services).run(project)

        assert result.project_name == "web"
        assert result.project_version == "3.1.0"
        assert [cl.name for cl in result.code_locations] == [
            "web/npm 3.1.0 bom",
            "web/lib/lib/maven 3.1.0 bom",
            "web/service/requirements.txt/pip 3.1.0 bom",
        ]
        assert result.applicable_groups == {DetectorGroup.NPM, DetectorGroup.PIP, DetectorGroup.MAVEN}
        assert not result.cancelled
        assert result.failed_directories == {}

    def test_report_statuses(self, services: DetectableServices, project: Path) -> None:
        """Test yielded, fallback and not nestable rows."""
        result = _pipeline(services).run(project)

        assert _status(result, ".", "npm-package-lock").status == DetectorStatus.PASSED
        assert _status(result, ".", "npm-package-json").status_code == DetectorStatusCode.YIELDED
        assert _status(result, "lib", "maven-cli").status == DetectorStatus.FAILED
        assert _status(result, "lib", "maven-pom-parse").status == DetectorStatus.PASSED
        assert _status(result, "lib/module", "maven-pom-parse").status_code == DetectorStatusCode.NOT_NESTABLE
        assert result.report.for_directory("node_modules/ignored") == []

    def test_every_pair_is_reported(self, services: DetectableServices, project: Path) -> None:
        """Test that the report has one row per directory and rule."""
        rules = DetectorRegistry.get_all()
        result = _pipeline(services).run(project)

        directories = {row.directory for row in result.report.rows}
        assert len(result.report.rows) == len(directories) * len(rules)

    def test_configured_project_wins(self, services: DetectableServices, project: Path) -> None:
        """Test that configured name and version override detected ones."""
        result = _pipeline(services, project_name="override", project_version="9.9").run(project)

        assert result.project_name == "override"
        assert result.code_locations[0].name == "override/npm 9.9 bom"

    def test_fallback_project_info(self, services: DetectableServices, temp_dir: Path) -> None:
        """Test the directory name and default version when nothing is found."""
        result = _pipeline(services).run(temp_dir)

        assert result.project_name == temp_dir.name
        assert result.project_version == "default"
        assert result.code_locations == []

    def test_depth_limit(self, services: DetectableServices, project: Path) -> None:
        """Test that the search depth bounds the scan."""
        result = _pipeline(services, search=DirectorySearch(max_depth=0)).run(project)

        assert {row.directory for row in result.report.rows} == {"."}

    def test_parallel_matches_serial(self, services: DetectableServices, project: Path) -> None:
        """Test that worker count does not change the outcome."""
        serial = _pipeline(services, parallel_workers=1).run(project)
        parallel = _pipeline(services, parallel_workers=8).run(project)

        assert [cl.name for cl in serial.code_locations] == [cl.name for cl in parallel.code_locations]
        assert [r.to_dict() for r in serial.report.rows] == [r.to_dict() for r in parallel.report.rows]

    def test_options_reach_detectables(
        self, services: DetectableServices, write_file: Callable[..., Path], temp_dir: Path
    ) -> None:
        """Test that options are passed to detectable constructors."""
        write_file(
            "package.json",
            {"name": "web", "dependencies": {"a": "1"}, "devDependencies": {"b": "1"}},
        )
        result = _pipeline(services, options=DetectableOptions(include_dev_dependencies=False)).run(temp_dir)

        (location,) = result.code_locations
        assert [d.name for d in location.dependency_graph.root_dependencies()] == ["a"]

    def test_xcode_project_beside_package_resolved(
        self, services: DetectableServices, write_file: Callable[..., Path], temp_dir: Path
    ) -> None:
        """Test that an Xcode project without a lockfile keeps the root Package.resolved."""
        write_file("App.xcodeproj/project.pbxproj", "// !$*UTF8*$!\n")
        write_file(
            "Package.resolved",
            {
                "pins": [
                    {
                        "identity": "swift-log",
                        "location": "https://github.com/apple/swift-log.git",
                        "state": {"version": "1.5.3"},
                    }
                ],
                "version": 2,
            },
        )

        result = _pipeline(services).run(temp_dir)

        assert _status(result, ".", "xcode-project").status == DetectorStatus.PASSED
        assert _status(result, ".", "swift-package-resolved").status == DetectorStatus.PASSED
        dependencies = [
            dependency
            for code_location in result.code_locations
            for dependency in code_location.dependency_graph.dependencies()
        ]
        assert [d.version for d in dependencies] == ["1.5.3"]

    def test_not_a_directory(self, services: DetectableServices, temp_dir: Path) -> None:
        """Test that the source must be a directory."""
        with pytest.raises(ScanError):
            _pipeline(services).run(temp_dir / "missing")

    def test_cancel(self, services: DetectableServices, project: Path) -> None:
        """Test that a cancelled pipeline evaluates nothing further."""
        pipeline = _pipeline(services)
        pipeline.cancel()

        result = pipeline.run(project)

        assert result.cancelled
        assert result.evaluations == []
        services.runner.cancel.assert_called_once()

    def test_interrupt_drops_queued_directories(
        self, services: DetectableServices, temp_dir: Path
    ) -> None:
        """Test that an interrupt cancels the tools and skips directories still queued."""
        for name in "abcde":
            (temp_dir / name).mkdir()
        cancelled = threading.Event()
        services.runner.cancel.side_effect = cancelled.set
        seen: list[str] = []

        class InterruptingDetectable(Detectable):
            def applicable(self, environment, context):
                if environment.depth == 0:
                    return DetectableResult.file_not_found(environment.directory, "marker")
                seen.append(environment.directory.name)
                if environment.directory.name == "a":
                    raise KeyboardInterrupt
                cancelled.wait(timeout=5)
                return DetectableResult.file_not_found(environment.directory, "marker")

            def extractable(self, environment, context):
                return DetectableResult.success()

            def extract(self, environment, context, extraction_environment):
                return Extraction.failure("unreachable")

        rule = DetectorRule(
            "npm-package-lock", DetectorGroup.NPM, Forge.NPMJS, DetectableAccuracy.HIGH,
            lambda s, o: InterruptingDetectable(),
        )
        pipeline = DetectorPipeline([rule], services=services, parallel_workers=1)

        with pytest.raises(KeyboardInterrupt):
            pipeline.run(temp_dir)

        assert cancelled.is_set()
        assert seen[0] == "a"
        assert "e" not in seen
        assert len(seen) <= 2

    def test_unexpected_directory_failure(
        self, services: DetectableServices, project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that one directory blowing up does not stop the scan."""
        pipeline = _pipeline(services)
        evaluate = pipeline.evaluator.evaluate

        def flaky(environment, scratch, ancestor_groups=None):
            if environment.directory.name == "service":
                raise OSError("disk on fire")
            return evaluate(environment, scratch, ancestor_groups)

        monkeypatch.setattr(pipeline.evaluator, "evaluate", flaky)

        result = pipeline.run(project)

        assert result.failed_directories == {str(project / "service"): "disk on fire"}
        assert "web/npm 3.1.0 bom" in [cl.name for cl in result.code_locations]
        rows = result.report.for_directory("service")
        assert len(rows) == len(DetectorRegistry.get_all())
        assert all(row.status == DetectorStatus.FAILED for row in rows)
        assert all(row.status_code == DetectorStatusCode.EXCEPTION for row in rows)
        assert "disk on fire" in rows[0].reason

    def test_scratch_is_removed(self, services: DetectableServices, project: Path, tmp_path: Path) -> None:
        """Test that scratch space is cleaned up after the run."""
        scratch_parent = tmp_path / "scratch"
        _pipeline(services, scratch_parent=scratch_parent).run(project)

        assert list(scratch_parent.iterdir()) == []
