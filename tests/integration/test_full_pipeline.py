"""Integration tests for the full detection pipeline."""

import json
from pathlib import Path

import pytest

from depdetect.config import load_config
from depdetect.detector import DetectorGroup, DetectorPipeline, DetectorRegistry, DetectorStatus, DirectorySearch
from depdetect.output import BdioWriter


class TestFullScanPipeline:
    """Integration tests from a source tree to BDIO documents."""

    @pytest.fixture
    def polyglot_project(self, tmp_path: Path) -> Path:
        """Create a project with lockfiles for several ecosystems."""
        project = tmp_path / "shop"
        project.mkdir()

        (project / "package.json").write_text(
            json.dumps(
                {
                    "name": "shop",
                    "version": "1.2.0",
                    "dependencies": {"express": "^4.18.0"},
                    "devDependencies": {"jest": "^29.0.0"},
                }
            )
        )
        (project / "package-lock.json").write_text(
            json.dumps(
                {
                    "name": "shop",
                    "version": "1.2.0",
                    "lockfileVersion": 3,
                    "packages": {
                        "": {
                            "name": "shop",
                            "version": "1.2.0",
                            "dependencies": {"express": "^4.18.0"},
                            "devDependencies": {"jest": "^29.0.0"},
                        },
                        "node_modules/express": {
                            "version": "4.18.2",
                            "dependencies": {"accepts": "~1.3.8"},
                        },
                        "node_modules/accepts": {"version": "1.3.8"},
                        "node_modules/jest": {"version": "29.7.0", "dev": True},
                    },
                }
            )
        )

        backend = project / "backend"
        backend.mkdir()
        (backend / "Pipfile.lock").write_text(
            json.dumps(
                {
                    "_meta": {"hash": {"sha256": "0"}},
                    "default": {"Django": {"version": "==4.2.7"}},
                    "develop": {"pytest": {"version": "==7.4.3"}},
                }
            )
        )
        # Lower precedence than Pipfile.lock; must yield
        (backend / "requirements.txt").write_text("django==4.2.7\n")

        ios = project / "ios"
        ios.mkdir()
        (ios / "Package.resolved").write_text(
            json.dumps(
                {
                    "pins": [
                        {
                            "identity": "swift-log",
                            "kind": "remoteSourceControl",
                            "location": "https://github.com/apple/swift-log.git",
                            "state": {"revision": "abc", "version": "1.5.3"},
                        }
                    ],
                    "version": 2,
                }
            )
        )

        native = project / "native"
        native.mkdir()
        (native / "conan.lock").write_text(
            json.dumps({"version": "0.5", "requires": ["zlib/1.2.13#rev"], "build_requires": []})
        )

        (project / "node_modules" / "express").mkdir(parents=True)
        (project / "node_modules" / "express" / "package.json").write_text('{"name": "express"}')

        return project

    def test_scan_to_documents(
        self, polyglot_project: Path, tmp_path: Path, clean_env: None
    ) -> None:
        """Test the whole flow with the default configuration."""
        config = load_config(tmp_path / "missing.yml")
        pipeline = DetectorPipeline(
            DetectorRegistry.get_all(),
            services=config.create_services(),
            options=config.detectable_options(),
            search=DirectorySearch(config.search.depth, config.search.exclude_patterns),
            parallel_workers=4,
        )

        result = pipeline.run(polyglot_project)

        assert result.project_name == "shop"
        assert result.project_version == "1.2.0"
        assert result.applicable_groups == {
            DetectorGroup.NPM,
            DetectorGroup.PIP,
            DetectorGroup.SWIFT,
            DetectorGroup.CONAN,
        }
        assert [cl.group for cl in result.code_locations] == [
            DetectorGroup.NPM,
            DetectorGroup.PIP,
            DetectorGroup.SWIFT,
            DetectorGroup.CONAN,
        ]
        assert result.failed_directories == {}
        assert result.report.failed == []

        requirements = [
            row for row in result.report.for_directory("backend") if row.detector == "pip-requirements"
        ]
        assert requirements[0].status == DetectorStatus.NOT_APPLICABLE

        written = BdioWriter(tmp_path / "out").write_all(
            result.code_locations, result.project_name, result.project_version
        )

        assert len(written) == 4
        npm_document = json.loads(written[0].read_text())
        assert npm_document["name"] == "shop/npm 1.2.0 bom"
        assert {node["name"] for node in npm_document["nodes"]} == {"express", "accepts", "jest"}

        pip_document = json.loads(written[1].read_text())
        assert {node["name"] for node in pip_document["nodes"]} == {"Django", "pytest"}
        assert all(node["forge"] == "pypi" for node in pip_document["nodes"])

    def test_dev_dependencies_excluded(
        self, polyglot_project: Path, tmp_path: Path, clean_env: None
    ) -> None:
        """Test that configuration options reach every ecosystem."""
        config_path = tmp_path / ".depdetect.yml"
        config_path.write_text("execution:\n  include_dev_dependencies: false\n")
        config = load_config(config_path)

        result = DetectorPipeline(
            DetectorRegistry.get_all(),
            services=config.create_services(),
            options=config.detectable_options(),
        ).run(polyglot_project)

        names = {
            dependency.name
            for code_location in result.code_locations
            for dependency in code_location.dependency_graph.dependencies()
        }
        assert "jest" not in names
        assert "pytest" not in names
        assert "Django" in names
