"""Python lockfile and requirements-file detectables."""

import json
import re
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
from depdetect.errors import DetectableParseError
from depdetect.graph import Dependency, DependencyGraph, ExternalIdFactory, Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

PIPFILE_LOCK = "Pipfile.lock"
PIPFILE = "Pipfile"
REQUIREMENTS_PATTERN = "requirements*.txt"
REQUIREMENTS_KEY = "requirements-files"

_REQUIREMENT_LINE = re.compile(
    r"^([a-zA-Z0-9][-a-zA-Z0-9._]*)(?:\[[^\]]+\])?\s*(===|==|>=|<=|~=|!=|>|<)?\s*([^\s,;#]*)?"
)


class RequirementsFileParser:
    """Parse pip requirements files.

    Supports:
    - Pinned and ranged requirements: ``package==1.0.0``, ``package>=1.0``
    - Comments, blank lines and line continuations
    - ``-r`` / ``--requirement`` includes, relative to the including file
    - ``-e`` editable installs with ``#egg=`` names
    - Extras and environment markers, which are dropped

    Only ``==`` and ``===`` pins become versions; anything else is versionless.
    """

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.external_id_factory = external_id_factory

    def parse(self, path: Path) -> list[Dependency]:
        return self._parse(path, seen=set())

    def _parse(self, path: Path, seen: set[Path]) -> list[Dependency]:
        resolved = path.resolve()
        if resolved in seen:
            logger.debug("Skipping already included requirements file %s", path)
            return []
        seen.add(resolved)

        dependencies: list[Dependency] = []
        content = path.read_text(encoding="utf-8").replace("\\\n", "")

        for line in content.split("\n"):
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            include = _option_value(line, ("-r", "--requirement"))
            if include is not None:
                included_path = path.parent / include
                if included_path.is_file():
                    dependencies.extend(self._parse(included_path, seen))
                else:
                    logger.warning("Included requirements file not found: %s", included_path)
                continue

            editable = _option_value(line, ("-e", "--editable"))
            if editable is not None:
                egg_match = re.search(r"#egg=([a-zA-Z0-9_.-]+)", editable)
                if egg_match:
                    dependencies.append(
                        self.external_id_factory.create_dependency(Forge.PYPI, egg_match.group(1))
                    )
                continue

            if line.startswith("-"):
                continue

            dependency = self._parse_requirement_line(line)
            if dependency is not None:
                dependencies.append(dependency)

        return dependencies

    def _parse_requirement_line(self, line: str) -> Dependency | None:
        line = line.split(";")[0].split(" #")[0].strip()
        match = _REQUIREMENT_LINE.match(line)
        if not match:
            return None

        operator = match.group(2)
        version = match.group(3) if operator in ("==", "===") else None
        if version and "*" in version:
            version = None
        return self.external_id_factory.create_dependency(Forge.PYPI, match.group(1), version)


def _option_value(line: str, options: tuple[str, ...]) -> str | None:
    for option in options:
        if line == option:
            return ""
        if line.startswith(option + " ") or line.startswith(option + "="):
            return line[len(option) + 1:].strip()
        if len(option) == 2 and line.startswith(option):
            return line[len(option):].strip()
    return None


class PipRequirementsDetectable(Detectable):
    """One code location per ``requirements*.txt`` file in the directory."""

    def __init__(self, external_id_factory: ExternalIdFactory) -> None:
        self.parser = RequirementsFileParser(external_id_factory)

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.files(REQUIREMENTS_PATTERN, key=REQUIREMENTS_KEY)
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
        code_locations: list[CodeLocation] = []
        for requirements_file in context.file_lists[REQUIREMENTS_KEY]:
            try:
                dependencies = self.parser.parse(requirements_file)
            except UnicodeDecodeError as e:
                return Extraction.failure(f"Failed to decode {requirements_file}: {e}", e)
            graph = DependencyGraph()
            graph.add_children_to_root(dependencies)
            code_locations.append(CodeLocation(graph, requirements_file))
        return Extraction.success(code_locations)


class PipfileLockDetectable(Detectable):
    """Pipenv projects with a Pipfile.lock."""

    def __init__(self, external_id_factory: ExternalIdFactory, include_dev: bool = True) -> None:
        self.external_id_factory = external_id_factory
        self.include_dev = include_dev

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(PIPFILE_LOCK)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.optional_file(environment.directory, PIPFILE)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        path = context.files[PIPFILE_LOCK]
        try:
            graph = self.parse(path)
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)
        return Extraction.success(CodeLocation(graph, environment.directory))

    def parse(self, path: Path) -> DependencyGraph:
        """Every locked package becomes a root child at its pinned version.

        Raises:
            DetectableParseError: If the file is not a Pipfile.lock document.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DetectableParseError(str(path), message=f"Invalid JSON in {PIPFILE_LOCK}: {e}") from e

        if not isinstance(data, dict):
            raise DetectableParseError(str(path), message=f"{PIPFILE_LOCK} is not a JSON object")

        sections = ["default", "develop"] if self.include_dev else ["default"]
        graph = DependencyGraph()
        for section in sections:
            packages = data.get(section) or {}
            if not isinstance(packages, dict):
                raise DetectableParseError(
                    str(path), message=f"Section '{section}' of {PIPFILE_LOCK} is not an object"
                )
            for name, info in packages.items():
                if not isinstance(info, dict):
                    continue
                version = info.get("version", "")
                if not isinstance(version, str):
                    raise DetectableParseError(
                        str(path), message=f"Version of {name} in {PIPFILE_LOCK} is not a string: {version!r}"
                    )
                if version.startswith("=="):
                    version = version[2:]
                graph.add_child_to_root(
                    self.external_id_factory.create_dependency(Forge.PYPI, name, version)
                )
        return graph
