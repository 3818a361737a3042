"""Merge extracted code locations and give them names."""

from dataclasses import dataclass, field
from pathlib import Path

from depdetect.detector.evaluator import DetectorEvaluation
from depdetect.detector.rules import DetectorGroup
from depdetect.graph import DependencyGraph, ExternalId
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class NamedCodeLocation:
    """A merged dependency graph ready for the output layer.

    Attributes:
        name: Unique, human readable code location name.
        source_path: Directory or file the graph was derived from.
        group: Ecosystem group of the detectors that produced it.
        dependency_graph: Graph merged from every contributing extraction.
        external_id: Id of the project itself, e.g. a Maven module.
        detectors: Names of the contributing detector rules.
    """

    name: str
    source_path: Path
    group: DetectorGroup
    dependency_graph: DependencyGraph
    external_id: ExternalId | None = None
    detectors: list[str] = field(default_factory=list)


class CodeLocationNamer:
    """Default naming: ``<project>/<relative path>[/<module>]/<group> <version> bom``."""

    def __init__(self, prefix: str = "", suffix: str = "") -> None:
        self.prefix = prefix
        self.suffix = suffix

    def name(
        self,
        project_name: str,
        project_version: str,
        source_path: Path,
        root_directory: Path,
        group: DetectorGroup,
        external_id: ExternalId | None = None,
    ) -> str:
        pieces = [project_name]
        relative = _relative(source_path, root_directory)
        if relative != ".":
            pieces.append(relative)
        if external_id is not None:
            pieces.append(external_id.name)
        pieces.append(group.value)
        name = f"{'/'.join(pieces)} {project_version} bom"
        return f"{self.prefix}{name}{self.suffix}"


class CodeLocationAssembler:
    """Merge code locations that target the same logical location, then name them.

    Two code locations are the same when source path, project external id
    and detector group are all equal. Merging happens sequentially after all
    extractions finished, in evaluation order, and never mutates the graphs
    produced by the detectables.
    """

    def __init__(self, namer: CodeLocationNamer | None = None) -> None:
        self.namer = namer or CodeLocationNamer()

    def assemble(
        self,
        evaluations: list[DetectorEvaluation],
        root_directory: Path,
        project_name: str,
        project_version: str,
    ) -> list[NamedCodeLocation]:
        merged: dict[tuple[Path, ExternalId | None, DetectorGroup], NamedCodeLocation] = {}

        for evaluation in evaluations:
            if not evaluation.is_extracted or evaluation.extraction is None:
                continue
            for code_location in evaluation.extraction.code_locations:
                key = (code_location.source_path, code_location.external_id, evaluation.rule.group)
                existing = merged.get(key)
                if existing is None:
                    merged[key] = NamedCodeLocation(
                        name="",
                        source_path=code_location.source_path,
                        group=evaluation.rule.group,
                        dependency_graph=code_location.dependency_graph.copy(),
                        external_id=code_location.external_id,
                        detectors=[evaluation.rule.name],
                    )
                    continue
                existing.dependency_graph.merge(code_location.dependency_graph)
                if evaluation.rule.name not in existing.detectors:
                    existing.detectors.append(evaluation.rule.name)

        used: dict[str, int] = {}
        named: list[NamedCodeLocation] = []
        for code_location in merged.values():
            name = self.namer.name(
                project_name,
                project_version,
                code_location.source_path,
                root_directory,
                code_location.group,
                code_location.external_id,
            )
            count = used.get(name, 0) + 1
            used[name] = count
            code_location.name = name if count == 1 else f"{name} ({count})"
            named.append(code_location)

        logger.debug("Assembled %d code locations", len(named))
        return named


def _relative(path: Path, root: Path) -> str:
    try:
        relative = path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
    return relative or "."
