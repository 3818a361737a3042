"""C/C++ projects described by a compile_commands.json compilation database.

Each compile command is re-run with ``-M -MF`` to produce a Makefile-style
dependency file. Headers outside the source tree are then mapped to the OS
packages that own them.
"""

import json
import os
import shlex
from dataclasses import dataclass
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
from depdetect.errors import DetectableParseError, ExecutableNotFoundError, ExecutableRunnerError
from depdetect.executable import Executable, ExecutableResolver, ExecutableRunner
from depdetect.graph import Dependency, DependencyGraph, ExternalIdFactory, Forge
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

COMPILE_COMMANDS_JSON = "compile_commands.json"
DPKG_KEY = "dpkg"


class DependencyFileParser:
    """Parse Makefile-style ``target: dep1 dep2 \\`` dependency files."""

    def parse_text(self, text: str) -> list[str]:
        """Return the normalized dependency paths listed after the target.

        Malformed text logs a warning and yields an empty list.
        """
        parts = text.split(": ", 1)
        if len(parts) != 2:
            logger.warning("Unable to split dependency file contents into target and dependencies")
            return []

        dependencies = parts[1].replace("\n", " ").replace("\\", " ")
        return [os.path.normpath(token) for token in dependencies.split() if token]

    def parse_file(self, path: Path) -> list[str]:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Unable to read dependency file %s: %s", path, e)
            return []
        return self.parse_text(text)


@dataclass(frozen=True)
class CompileCommand:
    """One entry of a compilation database."""

    directory: Path
    file: str
    arguments: tuple[str, ...]

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> "CompileCommand":
        if "arguments" in entry:
            arguments = tuple(str(argument) for argument in entry["arguments"])
        else:
            arguments = tuple(shlex.split(entry.get("command", "")))
        return cls(Path(entry.get("directory", ".")), str(entry.get("file", "")), arguments)


def load_compile_commands(path: Path) -> list[CompileCommand]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DetectableParseError(str(path), message=f"Invalid JSON in {COMPILE_COMMANDS_JSON}: {e}") from e
    if not isinstance(data, list):
        raise DetectableParseError(str(path), message=f"{COMPILE_COMMANDS_JSON} is not a JSON array")
    return [CompileCommand.from_entry(entry) for entry in data if isinstance(entry, dict)]


def dependency_file_arguments(arguments: tuple[str, ...], dependency_file: Path) -> list[str]:
    """Rewrite compiler arguments to only emit a dependency file.

    ``-o <output>`` is dropped so the build output is never written.
    """
    rewritten: list[str] = []
    skip_next = False
    for argument in arguments[1:]:
        if skip_next:
            skip_next = False
            continue
        if argument == "-o":
            skip_next = True
            continue
        if argument.startswith("-o") and len(argument) > 2:
            continue
        rewritten.append(argument)
    return rewritten + ["-M", "-MF", str(dependency_file)]


class DpkgPackageResolver:
    """Map files to the Debian packages that own them."""

    def __init__(
        self,
        runner: ExecutableRunner,
        dpkg_executable: Path,
        external_id_factory: ExternalIdFactory,
    ) -> None:
        self.runner = runner
        self.dpkg_executable = dpkg_executable
        self.external_id_factory = external_id_factory
        self._packages: dict[str, Dependency | None] = {}

    def resolve(self, path: str, working_directory: Path) -> Dependency | None:
        output = self.runner.execute(
            Executable.create(working_directory, self.dpkg_executable, ["-S", path])
        )
        if not output.succeeded:
            return None
        package_name = _owning_package(output.standard_output_lines())
        if package_name is None:
            return None
        if package_name not in self._packages:
            self._packages[package_name] = self._describe(package_name, working_directory)
        return self._packages[package_name]

    def _describe(self, package: str, working_directory: Path) -> Dependency | None:
        output = self.runner.execute(
            Executable.create(working_directory, self.dpkg_executable, ["-s", package])
        )
        if not output.succeeded:
            return None
        fields: dict[str, str] = {}
        for line in output.standard_output_lines():
            key, sep, value = line.partition(": ")
            if sep and key in ("Version", "Architecture"):
                fields[key] = value.strip()
        name = package.split(":")[0]
        external_id = self.external_id_factory.create_architecture_external_id(
            Forge.DEBIAN, name, fields.get("Version"), fields.get("Architecture")
        )
        return Dependency.from_external_id(external_id)


def _owning_package(lines: list[str]) -> str | None:
    """First package in ``dpkg -S`` output (``pkg[:arch]: /path``)."""
    for line in lines:
        package, sep, _path = line.partition(": ")
        if sep and package and " " not in package and "diversion" not in line:
            return package.split(",")[0].strip()
    return None


class ClangCompileCommandsDetectable(Detectable):
    """Headers used by a compilation database, resolved to OS packages."""

    def __init__(
        self,
        external_id_factory: ExternalIdFactory,
        runner: ExecutableRunner,
        resolver: ExecutableResolver,
        parser: DependencyFileParser | None = None,
    ) -> None:
        self.external_id_factory = external_id_factory
        self.runner = runner
        self.resolver = resolver
        self.parser = parser or DependencyFileParser()

    def applicable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.file(COMPILE_COMMANDS_JSON)
        return requirements.result()

    def extractable(
        self, environment: DetectableEnvironment, context: DetectableContext
    ) -> DetectableResult:
        requirements = Requirements(environment, context)
        requirements.executable(self.resolver, "dpkg", key=DPKG_KEY, optional=True)
        return requirements.result()

    def extract(
        self,
        environment: DetectableEnvironment,
        context: DetectableContext,
        extraction_environment: ExtractionEnvironment,
    ) -> Extraction:
        dpkg = context.executable(DPKG_KEY)
        if dpkg is None:
            logger.info("No supported package manager found; reporting %s without dependencies", environment.directory)
            return Extraction.success(CodeLocation(DependencyGraph(), environment.directory))

        try:
            commands = load_compile_commands(context.files[COMPILE_COMMANDS_JSON])
            files = self.collect_dependency_files(commands, extraction_environment)
            graph, unowned = self.resolve_packages(
                files, environment.root_directory, DpkgPackageResolver(self.runner, dpkg, self.external_id_factory)
            )
        except DetectableParseError as e:
            return Extraction.failure(e.message, e)
        except ExecutableRunnerError as e:
            return Extraction.failure(e.message, e)

        if unowned:
            logger.info("%d dependency files are not owned by any package", unowned)
        return Extraction.success(CodeLocation(graph, environment.directory))

    def collect_dependency_files(
        self, commands: list[CompileCommand], extraction_environment: ExtractionEnvironment
    ) -> list[str]:
        """Run every compile command with ``-M -MF`` and collect the listed files."""
        collected: list[str] = []
        seen: set[str] = set()
        for index, command in enumerate(commands):
            if not command.arguments:
                continue
            dependency_file = extraction_environment.output_file(f"deps_{index}.mk")
            executable = Executable.create(
                command.directory,
                command.arguments[0],
                dependency_file_arguments(command.arguments, dependency_file),
            )
            try:
                output = self.runner.execute(executable)
            except ExecutableNotFoundError as e:
                logger.warning("Skipping %s: %s", command.file, e.message)
                continue
            if not output.succeeded:
                logger.warning("Dependency generation failed for %s (exit %d)", command.file, output.return_code)
                continue
            for path in self.parser.parse_file(dependency_file):
                absolute = path if os.path.isabs(path) else os.path.normpath(command.directory / path)
                if absolute not in seen:
                    seen.add(absolute)
                    collected.append(absolute)
        return collected

    def resolve_packages(
        self, files: list[str], source_root: Path, package_resolver: DpkgPackageResolver
    ) -> tuple[DependencyGraph, int]:
        graph = DependencyGraph()
        unowned = 0
        root = str(source_root.resolve())
        for path in files:
            if path == root or path.startswith(root + os.sep):
                continue
            dependency = package_resolver.resolve(path, source_root)
            if dependency is None:
                unowned += 1
                continue
            graph.add_child_to_root(dependency)
        return graph, unowned
