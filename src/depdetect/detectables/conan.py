"""Conan projects: conan.lock lockfiles and conanfile.txt manifests."""

import json
import re
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

CONAN_LOCK = "conan.lock"
CONANFILE_TXT = "conanfile.txt"

_REFERENCE = re.compile(
    r"^(?P<name>[^/@#:%\s]+)/(?P<version>[^@#:%\s]+)"
    r"(?:@(?P<user>[^/#:%\s]+)/(?P<channel>[^#:%\s]+))?"
)


def parse_reference(
    reference: str, external_id_factory: ExternalIdFactory
) -> Dependency | None:
    """Turn ``name/version[@user/channel][#rrev][:pkgid][%ts]`` into a dependency.

    Revisions, package ids and timestamps are dropped. A user/channel pair is
    kept as part of the version because it distinguishes distinct packages.
    """
    match = _REFERENCE.match(reference.strip())
    if not match:
        return None
    version = match.group("version")
    if match.group("user") and match.group("channel"):
        version = f"{version}@{match.group('user')}/{match.group('channel')}"
    return external_id_factory.create_dependency(Forge.CONAN, match.group("name"), version)


class ConanLockParser:
    """Parse Conan 1 (``graph_lock``) and Conan 2 (``requires``) lockfiles."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_build: bool = True) -> None:
        self.external_id_factory = external_id_factory
        self.include_build = include_build

    def parse(self, data: dict[str, Any]) -> DependencyGraph:
        if "graph_lock" in data:
            return self._parse_graph_lock(data["graph_lock"])
        if "requires" in data:
            return self._parse_requires_list(data)
        raise DetectableParseError(CONAN_LOCK, message=f"Unrecognized {CONAN_LOCK} format")

    def _edge_keys(self) -> tuple[str, ...]:
        return ("requires", "build_requires") if self.include_build else ("requires",)

    def _parse_graph_lock(self, graph_lock: dict[str, Any]) -> DependencyGraph:
        nodes: dict[str, Any] = graph_lock.get("nodes") or {}
        graph = DependencyGraph()
        dependencies: dict[str, Dependency] = {}
        for node_id, node in nodes.items():
            reference = node.get("ref") or node.get("pref")
            if not reference:
                continue
            dependency = parse_reference(reference, self.external_id_factory)
            if dependency is not None:
                dependencies[node_id] = dependency

        root_id = "0" if "0" in nodes else next(iter(nodes), None)
        for node_id, node in nodes.items():
            for key in self._edge_keys():
                for child_id in node.get(key) or []:
                    child = dependencies.get(str(child_id))
                    if child is None:
                        continue
                    if node_id == root_id or node_id not in dependencies:
                        graph.add_child_to_root(child)
                    else:
                        graph.add_child_with_parent(child, dependencies[node_id])
        return graph

    def _parse_requires_list(self, data: dict[str, Any]) -> DependencyGraph:
        keys = ("requires", "build_requires", "python_requires") if self.include_build else ("requires",)
        graph = DependencyGraph()
        for key in keys:
            for reference in data.get(key) or []:
                dependency = parse_reference(reference, self.external_id_factory)
                if dependency is not None:
                    graph.add_child_to_root(dependency)
        return graph


class ConanLockDetectable(Detectable):
    """Conan projects with a conan.lock."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_build: bool = True) -> None:
        self.parser = ConanLockParser(external_id_factory, include_build)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(CONAN_LOCK)
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
        path = context.files[CONAN_LOCK]
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            graph = self.parser.parse(data)
        except json.JSONDecodeError as e:
            return Extraction.failure(f"Invalid JSON in {CONAN_LOCK}: {e}", e)
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)
        return Extraction.success(CodeLocation(graph, environment.directory))


class ConanfileTxtParser:
    """Read ``[requires]`` (and optionally tool requirements) from conanfile.txt."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_build: bool = True) -> None:
        self.external_id_factory = external_id_factory
        self.include_build = include_build

    def parse(self, path: Path) -> DependencyGraph:
        sections = {"requires"}
        if self.include_build:
            sections |= {"build_requires", "tool_requires"}

        graph = DependencyGraph()
        section: str | None = None
        for raw_line in path.read_text(encoding="utf-8").splitlines():
            line = raw_line.split("#")[0].strip()
            if not line:
                continue
            if line.startswith("[") and line.endswith("]"):
                section = line[1:-1].strip().lower()
                continue
            if section in sections:
                dependency = parse_reference(line, self.external_id_factory)
                if dependency is None:
                    logger.debug("Ignoring unparsable conan reference: %s", line)
                    continue
                graph.add_child_to_root(dependency)
        return graph


class ConanfileTxtDetectable(Detectable):
    """conanfile.txt without a lockfile: declared references only."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_build: bool = True) -> None:
        self.parser = ConanfileTxtParser(external_id_factory, include_build)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(CONANFILE_TXT)
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
        graph = self.parser.parse(context.files[CONANFILE_TXT])
        return Extraction.success(CodeLocation(graph, environment.directory))
