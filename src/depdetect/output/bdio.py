"""BDIO-style JSON documents, one per code location."""

import json
import re
from pathlib import Path
from typing import Any

from depdetect.detector.code_location import NamedCodeLocation
from depdetect.graph import Dependency, DependencyGraph
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

BDIO_FILE_SUFFIX = ".bdio.json"


def dependency_node(dependency: Dependency) -> dict[str, Any]:
    external_id = dependency.external_id
    return {
        "id": external_id.create_bdio_id(),
        "externalId": str(external_id),
        "forge": external_id.forge.value,
        "name": dependency.name,
        "version": dependency.version,
        "purl": external_id.to_purl(),
    }


def graph_document(graph: DependencyGraph) -> dict[str, Any]:
    """Node/edge lists for a graph; root children have a ``null`` parent."""
    nodes = [dependency_node(dependency) for dependency in graph.dependencies()]
    relationships: list[dict[str, str | None]] = [
        {"parent": None, "child": dependency.external_id.create_bdio_id()}
        for dependency in graph.root_dependencies()
    ]
    relationships.extend(
        {
            "parent": parent.external_id.create_bdio_id(),
            "child": child.external_id.create_bdio_id(),
        }
        for parent, child in graph.edges()
    )
    return {"nodes": nodes, "relationships": relationships}


class BdioWriter:
    """Write code locations to an output directory."""

    def __init__(self, output_directory: str | Path) -> None:
        self.output_directory = Path(output_directory)

    def to_document(
        self,
        code_location: NamedCodeLocation,
        project_name: str,
        project_version: str,
    ) -> dict[str, Any]:
        document: dict[str, Any] = {
            "name": code_location.name,
            "project": {"name": project_name, "version": project_version},
            "sourcePath": str(code_location.source_path),
            "detector": code_location.group.value,
            "detectors": list(code_location.detectors),
        }
        if code_location.external_id is not None:
            document["externalId"] = str(code_location.external_id)
        document.update(graph_document(code_location.dependency_graph))
        return document

    def write(
        self,
        code_location: NamedCodeLocation,
        project_name: str,
        project_version: str,
        file_name: str | None = None,
    ) -> Path:
        """Write one document and return its path.

        Args:
            code_location: The code location to write.
            project_name: Project the code location belongs to.
            project_version: Version of that project.
            file_name: File name stem; defaults to the safe code location name.
        """
        self.output_directory.mkdir(parents=True, exist_ok=True)
        stem = file_name or safe_file_name(code_location.name)
        path = self.output_directory / f"{stem}{BDIO_FILE_SUFFIX}"
        document = self.to_document(code_location, project_name, project_version)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        logger.debug("Wrote %s", path)
        return path

    def write_all(
        self,
        code_locations: list[NamedCodeLocation],
        project_name: str,
        project_version: str,
    ) -> list[Path]:
        """Write every code location to its own file.

        Distinct names can share a safe file name (``a/b`` and ``a_b``); later
        ones get a ``_2``, ``_3``... suffix so no document is overwritten.
        """
        used: set[str] = set()
        paths: list[Path] = []
        for code_location in code_locations:
            base = safe_file_name(code_location.name)
            stem = base
            count = 1
            while stem in used:
                count += 1
                stem = f"{base}_{count}"
            used.add(stem)
            paths.append(self.write(code_location, project_name, project_version, stem))
        return paths


def safe_file_name(name: str) -> str:
    """Code location names contain ``/`` and spaces; keep them file-system safe."""
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "code_location"
