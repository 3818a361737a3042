"""Tests for directory search, the rule registry, code locations and the report."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from depdetect.detectable import CodeLocation, DetectableEnvironment, Extraction
from depdetect.detector import (
    DETECTOR_PRECEDENCE,
    DETECTOR_SUPERSEDES,
    CodeLocationAssembler,
    CodeLocationNamer,
    DetectableAccuracy,
    DetectorEvaluation,
    DetectorGroup,
    DetectorRegistry,
    DetectorReport,
    DetectorRule,
    DetectorStatus,
    DirectorySearch,
    register_default_detectors,
)
from depdetect.graph import DependencyGraph, ExternalIdFactory, Forge


@pytest.fixture
def registry() -> Generator[type[DetectorRegistry], None, None]:
    """The registry, restored to the default rules afterwards."""
    yield DetectorRegistry
    register_default_detectors()


class TestDirectorySearch:
    """Tests for DirectorySearch."""

    def test_levels_are_breadth_first(self, temp_dir: Path) -> None:
        """Test grouping by depth with sorted levels."""
        for relative in ("b/inner", "a", "c/x/y"):
            (temp_dir / relative).mkdir(parents=True)

        levels = DirectorySearch(max_depth=2).levels(temp_dir)

        assert [[d.path for d in level] for level in levels] == [
            [temp_dir],
            [temp_dir / "a", temp_dir / "b", temp_dir / "c"],
            [temp_dir / "b" / "inner", temp_dir / "c" / "x"],
        ]
        assert {d.depth for d in levels[2]} == {2}

    def test_depth_zero_is_root_only(self, temp_dir: Path) -> None:
        """Test that depth 0 evaluates only the root."""
        (temp_dir / "sub").mkdir()
        assert [d.path for d in DirectorySearch(max_depth=0).search(temp_dir)] == [temp_dir]

    def test_default_excludes(self, temp_dir: Path) -> None:
        """Test that dependency and VCS directories are skipped."""
        for name in ("node_modules", ".git", "src"):
            (temp_dir / name).mkdir()

        paths = [d.path.name for d in DirectorySearch().search(temp_dir)]

        assert "src" in paths
        assert "node_modules" not in paths
        assert ".git" not in paths

    def test_relative_path_exclude(self, temp_dir: Path) -> None:
        """Test that patterns also match relative paths."""
        (temp_dir / "docs" / "examples").mkdir(parents=True)
        (temp_dir / "src" / "examples").mkdir(parents=True)

        search = DirectorySearch(exclude_patterns=["docs/*"])
        paths = {d.path for d in search.search(temp_dir)}

        assert temp_dir / "docs" in paths
        assert temp_dir / "docs" / "examples" not in paths
        assert temp_dir / "src" / "examples" in paths

    def test_symlinks_not_followed(self, temp_dir: Path) -> None:
        """Test that symlinked directories are not entered."""
        (temp_dir / "real").mkdir()
        os.symlink(temp_dir / "real", temp_dir / "link")

        paths = {d.path.name for d in DirectorySearch().search(temp_dir)}

        assert "real" in paths
        assert "link" not in paths

    def test_negative_depth_rejected(self) -> None:
        """Test that a negative depth is an error."""
        with pytest.raises(ValueError):
            DirectorySearch(max_depth=-1)


class TestDetectorRegistry:
    """Tests for DetectorRegistry."""

    def test_default_rules_follow_precedence(self) -> None:
        """Test that every group lists its rules in precedence order."""
        for group, names in DETECTOR_PRECEDENCE.items():
            assert tuple(rule.name for rule in DetectorRegistry.get_for_group(group)) == names

    def test_superseded_rules_come_later(self) -> None:
        """Test that a rule is always evaluated before the rules it supersedes."""
        for name, superseded in DETECTOR_SUPERSEDES.items():
            rule = DetectorRegistry.get(name)
            for other_name in superseded:
                other = DetectorRegistry.get(other_name)
                assert other.group == rule.group
                assert DETECTOR_PRECEDENCE[rule.group].index(name) < DETECTOR_PRECEDENCE[rule.group].index(other_name)

    def test_non_nestable_rules(self) -> None:
        """Test which rules refuse to nest."""
        non_nestable = {rule.name for rule in DetectorRegistry.get_all() if not rule.nestable}
        assert non_nestable == {"maven-cli", "maven-pom-parse", "clang-compile-commands"}

    def test_select(self) -> None:
        """Test filtering by group and by rule name."""
        pip_only = DetectorRegistry.select(included=["pip"])
        assert [rule.name for rule in pip_only] == ["pipfile-lock", "setuptools", "pip-requirements"]

        without = DetectorRegistry.select(excluded=["MAVEN", "npm-package-json"])
        names = {rule.name for rule in without}
        assert "maven-cli" not in names
        assert "npm-package-json" not in names
        assert "npm-package-lock" in names

    def test_duplicate_registration(self, registry: type[DetectorRegistry]) -> None:
        """Test that rule names are unique."""
        rule = registry.get("setuptools")
        with pytest.raises(ValueError):
            registry.register(rule)

    def test_clear(self, registry: type[DetectorRegistry]) -> None:
        """Test clearing the registry."""
        registry.clear()
        assert registry.get_all() == []
        assert registry.get("setuptools") is None


def _evaluation(
    rule_name: str,
    root: Path,
    *code_locations: CodeLocation,
    succeeded: bool = True,
) -> DetectorEvaluation:
    rule = DetectorRegistry.get(rule_name)
    extraction = Extraction.success(list(code_locations)) if succeeded else Extraction.failure("broken")
    return DetectorEvaluation(rule, DetectableEnvironment(root, root), extraction=extraction)


def _graph(*names: str) -> DependencyGraph:
    graph = DependencyGraph()
    for name in names:
        graph.add_child_to_root(ExternalIdFactory().create_dependency(Forge.NPMJS, name, "1.0.0"))
    return graph


class TestCodeLocationNamer:
    """Tests for CodeLocationNamer."""

    def test_root_location(self, temp_dir: Path) -> None:
        """Test that the root directory adds no path segment."""
        name = CodeLocationNamer().name("app", "1.0", temp_dir, temp_dir, DetectorGroup.NPM)
        assert name == "app/npm 1.0 bom"

    def test_nested_module(self, temp_dir: Path, id_factory: ExternalIdFactory) -> None:
        """Test relative path and module segments."""
        module = id_factory.create_maven_external_id("com.example", "core", "1.0")
        name = CodeLocationNamer(prefix="pre-", suffix="-post").name(
            "app", "2.0", temp_dir / "services" / "core", temp_dir, DetectorGroup.MAVEN, module
        )
        assert name == "pre-app/services/core/core/maven 2.0 bom-post"


class TestCodeLocationAssembler:
    """Tests for CodeLocationAssembler."""

    def test_same_location_is_merged(self, temp_dir: Path) -> None:
        """Test that equal (path, id, group) keys become one location."""
        first = _evaluation("npm-package-lock", temp_dir, CodeLocation(_graph("a"), temp_dir))
        second = _evaluation("npm-package-json", temp_dir, CodeLocation(_graph("b"), temp_dir))

        (location,) = CodeLocationAssembler().assemble([first, second], temp_dir, "app", "1.0")

        assert {d.name for d in location.dependency_graph.root_dependencies()} == {"a", "b"}
        assert location.detectors == ["npm-package-lock", "npm-package-json"]
        assert location.name == "app/npm 1.0 bom"

    def test_extraction_graphs_not_mutated(self, temp_dir: Path) -> None:
        """Test that merging works on copies."""
        original = _graph("a")
        first = _evaluation("npm-package-lock", temp_dir, CodeLocation(original, temp_dir))
        second = _evaluation("npm-package-json", temp_dir, CodeLocation(_graph("b"), temp_dir))

        CodeLocationAssembler().assemble([first, second], temp_dir, "app", "1.0")

        assert len(original) == 1

    def test_groups_stay_separate(self, temp_dir: Path) -> None:
        """Test that different groups at one path are different locations."""
        npm = _evaluation("npm-package-lock", temp_dir, CodeLocation(_graph("a"), temp_dir))
        pip = _evaluation("pip-requirements", temp_dir, CodeLocation(_graph("b"), temp_dir))

        names = [cl.name for cl in CodeLocationAssembler().assemble([npm, pip], temp_dir, "app", "1.0")]

        assert names == ["app/npm 1.0 bom", "app/pip 1.0 bom"]

    def test_duplicate_names_are_suffixed(self, temp_dir: Path, id_factory: ExternalIdFactory) -> None:
        """Test that colliding names get a counter."""
        a = id_factory.create_maven_external_id("com.a", "core", "1.0")
        b = id_factory.create_maven_external_id("com.b", "core", "1.0")
        evaluation = _evaluation(
            "maven-cli",
            temp_dir,
            CodeLocation(DependencyGraph(), temp_dir, a),
            CodeLocation(DependencyGraph(), temp_dir, b),
        )

        names = [cl.name for cl in CodeLocationAssembler().assemble([evaluation], temp_dir, "app", "1.0")]

        assert names == ["app/core/maven 1.0 bom", "app/core/maven 1.0 bom (2)"]

    def test_failed_extractions_ignored(self, temp_dir: Path) -> None:
        """Test that only successful extractions contribute."""
        failed = _evaluation("npm-package-lock", temp_dir, succeeded=False)
        assert CodeLocationAssembler().assemble([failed], temp_dir, "app", "1.0") == []


class TestDetectorReport:
    """Tests for DetectorReport."""

    def test_summary_and_rows(self, temp_dir: Path) -> None:
        """Test that every evaluation becomes a row."""
        passed = _evaluation("npm-package-lock", temp_dir, CodeLocation(_graph("a"), temp_dir))
        failed = _evaluation("pip-requirements", temp_dir, succeeded=False)
        untouched = DetectorEvaluation(DetectorRegistry.get("conan-lock"), DetectableEnvironment(temp_dir, temp_dir))

        report = DetectorReport.from_evaluations([passed, failed, untouched])

        assert report.summary() == {"passed": 1, "failed": 1, "not_applicable": 1}
        assert [row.detector for row in report.failed] == ["pip-requirements"]
        assert len(report.for_directory(".")) == 3
        document = report.to_dict()
        assert document["detectors"][0] == {
            "directory": ".",
            "detector": "npm-package-lock",
            "group": "npm",
            "status": "passed",
            "status_code": "passed",
            "reason": "Extraction succeeded.",
        }
        assert report.with_status(DetectorStatus.NOT_APPLICABLE)[0].detector == "conan-lock"

    def test_custom_rule_in_report(self, temp_dir: Path) -> None:
        """Test rows for rules outside the registry."""
        rule = DetectorRule(
            "custom", DetectorGroup.CLANG, Forge.DEBIAN, DetectableAccuracy.LOW, lambda s, o: None
        )
        evaluation = DetectorEvaluation(rule, DetectableEnvironment(temp_dir / "sub", temp_dir, depth=1))

        (row,) = DetectorReport.from_evaluations([evaluation]).rows

        assert row.directory == "sub"
        assert row.group == "clang"
