"""Setuptools projects: setup.py, setup.cfg and pyproject.toml manifests."""

import ast
import configparser
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import toml

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
from depdetect.errors import DetectableParseError, ExecutableRunnerError
from depdetect.executable import Executable, ExecutableResolver, ExecutableRunner
from depdetect.graph import Dependency, DependencyGraph, ExternalIdFactory, Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

PYPROJECT_TOML = "pyproject.toml"
SETUP_CFG = "setup.cfg"
SETUP_PY = "setup.py"
MANIFEST_KEY = "setuptools-manifest"
PIP_KEY = "pip"

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def requirement_name(requirement: str) -> str | None:
    """Return the distribution name of a PEP 508 requirement string.

    Extras, version specifiers and environment markers are dropped.
    """
    match = _REQUIREMENT_NAME.match(requirement)
    return match.group(1) if match else None


@dataclass
class SetupToolsParsedResult:
    """Direct dependencies and project metadata read from the manifests."""

    project_name: str | None = None
    project_version: str | None = None
    direct_dependencies: list[str] = field(default_factory=list)

    def add(self, requirements: list[str]) -> None:
        for requirement in requirements:
            name = requirement_name(requirement)
            if name and name not in self.direct_dependencies:
                self.direct_dependencies.append(name)


class SetupToolsParser:
    """Read install requirements from every setuptools manifest present."""

    def parse(self, directory: Path) -> SetupToolsParsedResult:
        """Parse pyproject.toml, setup.cfg and setup.py when they exist.

        Raises:
            DetectableParseError: If a present manifest is malformed.
        """
        result = SetupToolsParsedResult()

        pyproject = directory / PYPROJECT_TOML
        if pyproject.is_file():
            self._parse_pyproject(pyproject, result)

        setup_cfg = directory / SETUP_CFG
        if setup_cfg.is_file():
            self._parse_setup_cfg(setup_cfg, result)

        setup_py = directory / SETUP_PY
        if setup_py.is_file():
            self._parse_setup_py(setup_py, result)

        return result

    def _parse_pyproject(self, path: Path, result: SetupToolsParsedResult) -> None:
        data = load_pyproject(path)
        project = data.get("project", {})
        result.project_name = result.project_name or project.get("name")
        result.project_version = result.project_version or project.get("version")
        result.add([str(r) for r in project.get("dependencies", [])])

    def _parse_setup_cfg(self, path: Path, result: SetupToolsParsedResult) -> None:
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(path, encoding="utf-8")
        except configparser.Error as e:
            raise DetectableParseError(str(path), message=f"Invalid {SETUP_CFG}: {e}") from e

        if parser.has_section("metadata"):
            result.project_name = result.project_name or parser.get("metadata", "name", fallback=None)
            result.project_version = result.project_version or parser.get(
                "metadata", "version", fallback=None
            )
        raw = parser.get("options", "install_requires", fallback="")
        result.add([line for line in raw.splitlines() if line.strip() and not line.strip().startswith("#")])

    def _parse_setup_py(self, path: Path, result: SetupToolsParsedResult) -> None:
        try:
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        except SyntaxError as e:
            raise DetectableParseError(str(path), message=f"Invalid {SETUP_PY}: {e}") from e

        for node in ast.walk(tree):
            if not isinstance(node, ast.Call) or _call_name(node) != "setup":
                continue
            for keyword in node.keywords:
                value = _literal(keyword.value)
                if keyword.arg == "install_requires" and isinstance(value, (list, tuple)):
                    result.add([str(v) for v in value])
                elif keyword.arg == "name" and isinstance(value, str):
                    result.project_name = result.project_name or value
                elif keyword.arg == "version" and isinstance(value, str):
                    result.project_version = result.project_version or value


def load_pyproject(path: Path) -> dict[str, Any]:
    try:
        return toml.loads(path.read_text(encoding="utf-8"))
    except toml.TomlDecodeError as e:
        raise DetectableParseError(str(path), message=f"Invalid {PYPROJECT_TOML}: {e}") from e


def uses_setuptools_backend(pyproject: dict[str, Any]) -> bool:
    build_system = pyproject.get("build-system", {})
    backend = build_system.get("build-backend", "")
    if backend.startswith("setuptools"):
        return True
    requires = build_system.get("requires", [])
    return not backend and any(requirement_name(r) == "setuptools" for r in requires)


def _call_name(node: ast.Call) -> str | None:
    if isinstance(node.func, ast.Name):
        return node.func.id
    if isinstance(node.func, ast.Attribute):
        return node.func.attr
    return None


def _literal(node: ast.expr) -> Any:
    try:
        return ast.literal_eval(node)
    except ValueError:
        return None


def parse_pip_show(lines: list[str]) -> dict[str, str]:
    """Keep the ``Version`` and ``Requires`` values of ``pip show`` output.

    Lines are ``key: value``; anything else is ignored.
    """
    show_output: dict[str, str] = {}
    for line in lines:
        parts = line.split(": ")
        if len(parts) >= 2:
            key = parts[0].strip()
            value = parts[1].strip()
            if key in ("Version", "Requires"):
                show_output[key] = value
        elif line.strip() == "Requires:":
            show_output["Requires"] = ""
    return show_output


class DependencyResolver(Protocol):
    """Build a graph from the direct dependency names of a manifest."""

    def resolve(self, direct_dependencies: list[str]) -> DependencyGraph: ...


class ManifestOnlyResolver:
    """No pip available: every direct dependency is a versionless root child."""

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.external_id_factory = external_id_factory

    def resolve(self, direct_dependencies: list[str]) -> DependencyGraph:
        graph = DependencyGraph()
        for name in direct_dependencies:
            graph.add_child_to_root(self.external_id_factory.create_dependency(Forge.PYPI, name))
        return graph


class PipShowResolver:
    """Expand direct dependencies through ``pip show`` in the source directory.

    Traversal is iterative. Each distinct package is shown once; a package
    reached again only gains the new parent edge, which also stops cycles.
    """

    def __init__(
        self,
        runner: ExecutableRunner,
        pip_executable: Path,
        source_directory: Path,
        external_id_factory: ExternalIdFactory,
    ) -> None:
        self.runner = runner
        self.pip_executable = pip_executable
        self.source_directory = source_directory
        self.external_id_factory = external_id_factory

    def resolve(self, direct_dependencies: list[str]) -> DependencyGraph:
        """Raises ExecutableRunnerError when pip cannot be run at all."""
        graph = DependencyGraph()
        resolved: dict[str, Dependency] = {}
        stack: list[tuple[str, Dependency | None]] = [
            (name, None) for name in reversed(direct_dependencies)
        ]

        while stack:
            name, parent = stack.pop()
            show_output: dict[str, str] = {}
            key = ExternalIdFactory.normalize_name(Forge.PYPI, name)

            current = resolved.get(key)
            expand = current is None
            if current is None:
                show_output = self.run_pip_show(name)
                current = self.external_id_factory.create_dependency(
                    Forge.PYPI, name, show_output.get("Version")
                )
                resolved[key] = current

            if parent is None:
                graph.add_child_to_root(current)
            else:
                graph.add_child_with_parent(current, parent)

            if expand and show_output.get("Requires"):
                required = [r.strip() for r in show_output["Requires"].split(", ") if r.strip()]
                stack.extend((requirement, current) for requirement in reversed(required))

        return graph

    def run_pip_show(self, name: str) -> dict[str, str]:
        executable = Executable.create(self.source_directory, self.pip_executable, ["show", name])
        output = self.runner.execute(executable)
        if not output.succeeded:
            logger.debug("pip show %s exited with %d: %s", name, output.return_code, output.error_output.strip())
            return {}
        return parse_pip_show(output.standard_output_lines())


class SetupToolsGraphTransformer:
    """Build the graph for a parsed manifest with one resolver strategy."""

    def __init__(self, resolver: DependencyResolver) -> None:
        self.resolver = resolver

    @classmethod
    def create(
        cls,
        pip_executable: Path | None,
        source_directory: Path,
        external_id_factory: ExternalIdFactory,
        runner: ExecutableRunner,
    ) -> "SetupToolsGraphTransformer":
        if pip_executable is None:
            return cls(ManifestOnlyResolver(external_id_factory))
        return cls(PipShowResolver(runner, pip_executable, source_directory, external_id_factory))

    def transform(self, parsed_result: SetupToolsParsedResult) -> DependencyGraph:
        return self.resolver.resolve(parsed_result.direct_dependencies)


class SetupToolsDetectable(Detectable):
    """Python projects built with setuptools."""

    def __init__(
        self,
        external_id_factory: ExternalIdFactory,
        runner: ExecutableRunner,
        resolver: ExecutableResolver,
        parser: SetupToolsParser | None = None,
    ) -> None:
        self.external_id_factory = external_id_factory
        self.runner = runner
        self.resolver = resolver
        self.parser = parser or SetupToolsParser()

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.either_file([SETUP_PY, SETUP_CFG, PYPROJECT_TOML], key=MANIFEST_KEY)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        manifest = context.files[MANIFEST_KEY]
        if manifest.name == PYPROJECT_TOML:
            try:
                compatible = uses_setuptools_backend(load_pyproject(manifest))
            except DetectableParseError as e:
                requirements.fail(DetectorStatusCode.INCOMPATIBLE_MANIFEST, e.message)
            else:
                if not compatible:
                    requirements.fail(
                        DetectorStatusCode.INCOMPATIBLE_MANIFEST,
                        f"{PYPROJECT_TOML} does not use the setuptools build backend.",
                    )
        requirements.executable(self.resolver, "pip", key=PIP_KEY, optional=True)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        try:
            parsed = self.parser.parse(environment.directory)
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)

        transformer = SetupToolsGraphTransformer.create(
            context.executable(PIP_KEY),
            environment.directory,
            self.external_id_factory,
            self.runner,
        )
        try:
            graph = transformer.transform(parsed)
        except ExecutableRunnerError as e:
            return Extraction.failure(f"Failed to resolve dependencies with pip: {e.message}", e)

        return Extraction.success(
            CodeLocation(graph, environment.directory),
            project_name=parsed.project_name,
            project_version=parsed.project_version,
        )
