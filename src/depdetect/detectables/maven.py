"""Maven projects: ``mvn dependency:tree`` output and pom.xml parsing."""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

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
from depdetect.errors import DetectableParseError, ExecutableRunnerError
from depdetect.executable import Executable, ExecutableResolver, ExecutableRunner
from depdetect.graph import Dependency, DependencyGraph, ExternalId, ExternalIdFactory
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

POM_XML = "pom.xml"
MAVEN_KEY = "mvn"
MAVEN_WRAPPERS = ("mvnw",)

_LOG_PREFIX = re.compile(r"^\[(INFO|WARNING|ERROR|DEBUG)\]\s?")
_TREE_PREFIX = re.compile(r"^[| +\\-]*")


@dataclass
class MavenModule:
    """One ``dependency:tree`` section: a module and its graph."""

    external_id: ExternalId
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)


def parse_gav(text: str, external_id_factory: ExternalIdFactory) -> tuple[ExternalId, str | None] | None:
    """Parse ``group:artifact:type[:classifier]:version[:scope]``.

    Returns:
        The external id and scope, or None when the text is not a coordinate.
    """
    text = text.split(" ")[0].strip()
    parts = text.split(":")
    if len(parts) == 4:
        group, artifact, _type, version = parts
        scope = None
    elif len(parts) == 5:
        group, artifact, _type, version, scope = parts
    elif len(parts) == 6:
        group, artifact, _type, _classifier, version, scope = parts
    else:
        return None
    if not group or not artifact:
        return None
    return external_id_factory.create_maven_external_id(group, artifact, version), scope


class MavenTreeParser:
    """Parse the text output of ``mvn dependency:tree``.

    Each module section starts after a ``maven-dependency-plugin`` header with
    the module coordinate, followed by tree lines whose depth is given by the
    ``+- `` / ``|  `` / ``\\- `` prefix, three characters per level.
    """

    def __init__(
        self,
        external_id_factory: ExternalIdFactory,
        excluded_scopes: tuple[str, ...] = (),
    ) -> None:
        self.external_id_factory = external_id_factory
        self.excluded_scopes = excluded_scopes

    def parse(self, lines: list[str]) -> list[MavenModule]:
        modules: list[MavenModule] = []
        current: MavenModule | None = None
        expecting_module = False
        stack: list[Dependency] = []
        excluded_depth: int | None = None

        for raw_line in lines:
            line = _LOG_PREFIX.sub("", raw_line.rstrip())

            if "maven-dependency-plugin" in line and ":tree" in line:
                expecting_module = True
                current = None
                continue
            if expecting_module:
                if not line.strip():
                    continue
                parsed = parse_gav(line, self.external_id_factory)
                if parsed is None:
                    logger.debug("Expected a module coordinate, got: %s", line)
                    expecting_module = False
                    continue
                current = MavenModule(parsed[0])
                modules.append(current)
                stack = []
                excluded_depth = None
                expecting_module = False
                continue
            if current is None:
                continue
            if not line.strip() or line.startswith("---") or line.startswith("BUILD"):
                current = None
                continue

            prefix = _TREE_PREFIX.match(line).group(0)
            if not prefix:
                current = None
                continue
            level = len(prefix) // 3 - 1
            parsed = parse_gav(line[len(prefix):], self.external_id_factory)
            if parsed is None or level < 0:
                logger.debug("Ignoring unparsable tree line: %s", line)
                continue

            if excluded_depth is not None and level > excluded_depth:
                continue
            excluded_depth = None
            external_id, scope = parsed
            if scope in self.excluded_scopes:
                excluded_depth = level
                continue

            dependency = Dependency.from_external_id(external_id)
            del stack[level:]
            if level == 0 or not stack:
                current.dependency_graph.add_child_to_root(dependency)
            else:
                current.dependency_graph.add_child_with_parent(dependency, stack[-1])
            stack.append(dependency)

        return modules


class MavenCliDetectable(Detectable):
    """Resolve the full graph by running ``mvn dependency:tree``."""

    def __init__(
        self,
        external_id_factory: ExternalIdFactory,
        runner: ExecutableRunner,
        resolver: ExecutableResolver,
        excluded_scopes: tuple[str, ...] = (),
    ) -> None:
        self.runner = runner
        self.resolver = resolver
        self.parser = MavenTreeParser(external_id_factory, excluded_scopes)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(POM_XML)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.executable(self.resolver, "mvn", key=MAVEN_KEY, local_names=MAVEN_WRAPPERS)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        executable = Executable.create(
            environment.directory,
            context.executables[MAVEN_KEY],
            ["--batch-mode", "dependency:tree", "-DoutputType=text"],
        )
        try:
            output = self.runner.execute(executable)
        except ExecutableRunnerError as e:
            return Extraction.failure(e.message, e)

        if not output.succeeded:
            tail = "\n".join(output.standard_output_lines()[-10:] or output.error_output_lines()[-10:])
            return Extraction.failure(
                f"Maven exited with code {output.return_code}:\n{tail}"
            )

        modules = self.parser.parse(output.standard_output_lines())
        if not modules:
            return Extraction.failure("No dependency:tree output was found in the Maven output.")

        code_locations = [
            CodeLocation(module.dependency_graph, environment.directory, module.external_id)
            for module in modules
        ]
        root = modules[0].external_id
        return Extraction.success(
            code_locations,
            project_name=root.name,
            project_version=root.version,
        )


class PomXmlParser:
    """Read direct dependencies from a pom.xml without running Maven.

    Dependency-management entries and plugin dependencies are not direct
    dependencies and are skipped. ``${property}`` references are resolved
    from ``<properties>`` and the project coordinates where possible.
    """

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.external_id_factory = external_id_factory

    def parse(self, path: Path) -> tuple[ExternalId | None, DependencyGraph]:
        """Raises DetectableParseError on malformed XML."""
        content = path.read_text(encoding="utf-8")
        content_no_ns = re.sub(r'\sxmlns="[^"]+"', "", content, count=1)

        try:
            root = ET.fromstring(content_no_ns)
        except ET.ParseError as e:
            raise DetectableParseError(str(path), message=f"Failed to parse {POM_XML}: {e}") from e

        properties = self._extract_properties(root)
        parent = root.find("parent")
        group = _text(root, "groupId") or (_text(parent, "groupId") if parent is not None else None)
        version = _text(root, "version") or (_text(parent, "version") if parent is not None else None)
        artifact = _text(root, "artifactId")
        if group:
            properties.setdefault("project.groupId", group)
        if version:
            properties.setdefault("project.version", version)

        project_id = None
        if group and artifact:
            project_id = self.external_id_factory.create_maven_external_id(
                group, artifact, _substitute(version, properties)
            )

        graph = DependencyGraph()
        dependencies = root.find("dependencies")
        if dependencies is not None:
            for element in dependencies.findall("dependency"):
                dep_group = _substitute(_text(element, "groupId"), properties)
                dep_artifact = _substitute(_text(element, "artifactId"), properties)
                if not dep_group or not dep_artifact:
                    continue
                dep_version = _substitute(_text(element, "version"), properties)
                graph.add_child_to_root(
                    Dependency.from_external_id(
                        self.external_id_factory.create_maven_external_id(
                            dep_group, dep_artifact, dep_version
                        )
                    )
                )
        return project_id, graph

    def _extract_properties(self, root: ET.Element) -> dict[str, str]:
        properties: dict[str, str] = {}
        props_element = root.find("properties")
        if props_element is not None:
            for prop in props_element:
                tag = prop.tag
                if isinstance(tag, str) and tag.startswith("{"):
                    tag = tag.split("}")[-1]
                if isinstance(tag, str) and prop.text:
                    properties[tag] = prop.text.strip()
        return properties


def _text(element: ET.Element, tag: str) -> str | None:
    child = element.find(tag)
    if child is not None and child.text:
        return child.text.strip()
    return None


def _substitute(value: str | None, properties: dict[str, str]) -> str | None:
    """Resolve ``${name}`` references; unresolvable values become None."""
    if value is None:
        return None
    resolved = re.sub(
        r"\$\{([^}]+)\}",
        lambda m: properties.get(m.group(1), m.group(0)),
        value,
    )
    if "${" in resolved:
        return None
    return resolved


class MavenPomParseDetectable(Detectable):
    """Direct dependencies declared in pom.xml, used when Maven is unavailable."""

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.parser = PomXmlParser(external_id_factory)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(POM_XML)
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
            project_id, graph = self.parser.parse(context.files[POM_XML])
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)

        return Extraction.success(
            CodeLocation(graph, environment.directory, project_id),
            project_name=project_id.name if project_id else None,
            project_version=project_id.version if project_id else None,
        )
