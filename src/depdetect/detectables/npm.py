"""NPM projects: package-lock.json / npm-shrinkwrap.json and package.json."""

import json
from pathlib import Path
from typing import Any

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
from depdetect.errors import DetectableParseError
from depdetect.graph import Dependency, DependencyGraph, ExternalIdFactory, Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

PACKAGE_JSON = "package.json"
PACKAGE_LOCK_JSON = "package-lock.json"
SHRINKWRAP_JSON = "npm-shrinkwrap.json"
LOCKFILE_KEY = "npm-lockfile"

_RUNTIME_SECTIONS = ("dependencies", "optionalDependencies", "peerDependencies")
_DEV_SECTION = "devDependencies"


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DetectableParseError(str(path), message=f"Invalid JSON in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise DetectableParseError(str(path), message=f"{path.name} is not a JSON object")
    return data


def _declared_names(package: dict[str, Any], include_dev: bool) -> list[str]:
    sections = _RUNTIME_SECTIONS + ((_DEV_SECTION,) if include_dev else ())
    names: list[str] = []
    for section in sections:
        for name in package.get(section) or {}:
            if name not in names:
                names.append(name)
    return names


class NpmLockfileParser:
    """Build a dependency graph from an npm lockfile.

    Lockfile versions 2 and 3 are read from the flat ``packages`` map, where
    each dependency name is resolved the way Node resolves modules: the
    nearest ``node_modules`` directory walking up from the requiring package.
    Version 1 lockfiles are read from the nested ``dependencies`` tree using
    each entry's ``requires`` map.
    """

    def __init__(self, external_id_factory: ExternalIdFactory, include_dev: bool = True) -> None:
        self.external_id_factory = external_id_factory
        self.include_dev = include_dev

    def parse(
        self, lockfile: dict[str, Any], package_json: dict[str, Any] | None = None
    ) -> DependencyGraph:
        """Build the graph for a loaded lockfile.

        Raises:
            DetectableParseError: If ``lockfileVersion`` or ``packages`` has
                an unexpected type.
        """
        lockfile_version = lockfile.get("lockfileVersion", 1)
        if not isinstance(lockfile_version, int) or isinstance(lockfile_version, bool):
            raise DetectableParseError(
                message=f"Unsupported lockfileVersion: {lockfile_version!r}"
            )
        if lockfile_version >= 2 and "packages" in lockfile:
            if not isinstance(lockfile["packages"], dict):
                raise DetectableParseError(message="The lockfile 'packages' entry is not an object")
            return self._parse_packages(lockfile["packages"])
        return self._parse_dependencies_tree(lockfile.get("dependencies") or {}, package_json)

    def _dependency(self, name: str, version: Any) -> Dependency:
        if not isinstance(version, str):
            version = None
        return self.external_id_factory.create_dependency(Forge.NPMJS, name, version)

    def _parse_packages(self, packages: dict[str, Any]) -> DependencyGraph:
        graph = DependencyGraph()
        nodes: dict[str, Dependency] = {}

        def node_for(path: str) -> Dependency | None:
            if path not in nodes:
                info = packages.get(path) or {}
                if info.get("link"):
                    info = packages.get(info.get("resolved", ""), {}) or info
                version = info.get("version")
                name = info.get("name") or _name_from_path(path)
                if not name:
                    return None
                nodes[path] = self._dependency(name, version)
            return nodes[path]

        root = packages.get("") or {}
        for name in _declared_names(root, self.include_dev):
            path = _resolve_module(packages, "", name)
            if path is None:
                logger.debug("Root dependency %s is not installed in the lockfile", name)
                continue
            dependency = node_for(path)
            if dependency is not None:
                graph.add_child_to_root(dependency)

        for path, info in packages.items():
            if not path or not isinstance(info, dict):
                continue
            if info.get("dev") and not self.include_dev:
                continue
            parent = node_for(path)
            if parent is None:
                continue
            for name in _declared_names(info, include_dev=False):
                child_path = _resolve_module(packages, path, name)
                if child_path is None:
                    continue
                child = node_for(child_path)
                if child is not None:
                    graph.add_child_with_parent(child, parent)

        return graph

    def _parse_dependencies_tree(
        self, dependencies: dict[str, Any], package_json: dict[str, Any] | None
    ) -> DependencyGraph:
        graph = DependencyGraph()

        def resolve(name: str, scopes: list[dict[str, Any]]) -> Dependency | None:
            for scope in reversed(scopes):
                info = scope.get(name)
                if isinstance(info, dict):
                    return self._dependency(name, info.get("version"))
            return None

        stack: list[tuple[dict[str, Any], list[dict[str, Any]]]] = [(dependencies, [dependencies])]
        required_names: set[str] = set()
        while stack:
            level, scopes = stack.pop()
            for name, info in level.items():
                if not isinstance(info, dict):
                    continue
                if info.get("dev") and not self.include_dev:
                    continue
                parent = self._dependency(name, info.get("version"))
                nested = info.get("dependencies") or {}
                child_scopes = scopes + [nested] if nested else scopes
                for required in info.get("requires") or {}:
                    required_names.add(required)
                    child = resolve(required, child_scopes)
                    if child is not None:
                        graph.add_child_with_parent(child, parent)
                if nested:
                    stack.append((nested, child_scopes))

        if package_json is not None:
            direct = _declared_names(package_json, self.include_dev)
        else:
            direct = [name for name in dependencies if name not in required_names] or list(dependencies)

        for name in direct:
            dependency = resolve(name, [dependencies])
            if dependency is not None:
                if dependencies[name].get("dev") and not self.include_dev:
                    continue
                graph.add_child_to_root(dependency)

        return graph


def _name_from_path(path: str) -> str | None:
    marker = "node_modules/"
    index = path.rfind(marker)
    if index < 0:
        return None
    return path[index + len(marker):] or None


def _resolve_module(packages: dict[str, Any], from_path: str, name: str) -> str | None:
    """Find the ``packages`` key Node would load *name* from, starting at *from_path*."""
    base = from_path
    while True:
        candidate = f"{base}/node_modules/{name}" if base else f"node_modules/{name}"
        if candidate in packages:
            return candidate
        if not base:
            return None
        index = base.rfind("/node_modules/")
        base = base[:index] if index >= 0 else ""


class NpmPackageLockDetectable(Detectable):
    """Projects with a package-lock.json or npm-shrinkwrap.json."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_dev: bool = True) -> None:
        self.parser = NpmLockfileParser(external_id_factory, include_dev)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.either_file([SHRINKWRAP_JSON, PACKAGE_LOCK_JSON], key=LOCKFILE_KEY)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.optional_file(environment.directory, PACKAGE_JSON)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        try:
            lockfile = _load_json(context.files[LOCKFILE_KEY])
            package_json_path = context.file(PACKAGE_JSON)
            package_json = _load_json(package_json_path) if package_json_path else None
            graph = self.parser.parse(lockfile, package_json)
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)

        project = package_json or lockfile
        return Extraction.success(
            CodeLocation(graph, environment.directory),
            project_name=project.get("name"),
            project_version=project.get("version"),
        )


class NpmPackageJsonDetectable(Detectable):
    """package.json without a lockfile: direct dependencies at declared versions."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_dev: bool = True) -> None:
        self.external_id_factory = external_id_factory
        self.include_dev = include_dev

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(PACKAGE_JSON)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        return DetectableResult.success()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        try:
            package_json = _load_json(context.files[PACKAGE_JSON])
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)

        sections = _RUNTIME_SECTIONS + ((_DEV_SECTION,) if self.include_dev else ())
        graph = DependencyGraph()
        for section in sections:
            for name, declared in (package_json.get(section) or {}).items():
                version = declared if isinstance(declared, str) else None
                graph.add_child_to_root(
                    self.external_id_factory.create_dependency(Forge.NPMJS, name, version)
                )

        return Extraction.success(
            CodeLocation(graph, environment.directory),
            project_name=package_json.get("name"),
            project_version=package_json.get("version"),
        )
