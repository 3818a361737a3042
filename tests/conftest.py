"""Pytest configuration and fixtures for depdetect tests."""

import json
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from depdetect.detectable import (
    DetectableContext,
    DetectableEnvironment,
    DetectableServices,
    ExtractionEnvironment,
)
from depdetect.executable import Executable, ExecutableOutput, ExecutableResolver, ExecutableRunner
from depdetect.graph import ExternalIdFactory


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def id_factory() -> ExternalIdFactory:
    """Create an external id factory."""
    return ExternalIdFactory()


@pytest.fixture
def write_file(temp_dir: Path) -> Callable[..., Path]:
    """Write a file below temp_dir; dicts and lists are written as JSON."""

    def _write(relative: str, content: str | dict | list = "") -> Path:
        path = temp_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, (dict, list)):
            content = json.dumps(content)
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def environment(temp_dir: Path) -> DetectableEnvironment:
    """Environment for the scan root."""
    return DetectableEnvironment(directory=temp_dir, root_directory=temp_dir)


@pytest.fixture
def context() -> DetectableContext:
    """Fresh per-invocation context."""
    return DetectableContext()


@pytest.fixture
def extraction_environment() -> Generator[ExtractionEnvironment, None, None]:
    """Scratch directory outside the scanned project."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield ExtractionEnvironment(Path(tmpdir))


def _output(stdout: str = "", return_code: int = 0, stderr: str = "") -> ExecutableOutput:
    return ExecutableOutput(["tool"], return_code, stdout, stderr)


@pytest.fixture
def make_output() -> Callable[..., ExecutableOutput]:
    """Build a finished process result: make_output(stdout, return_code, stderr)."""
    return _output


@pytest.fixture
def fake_runner() -> MagicMock:
    """Runner whose execute() answers from ``fake_runner.responses``.

    Keys are the argument tuples after the command; unknown commands exit 1.
    """
    runner = MagicMock(spec=ExecutableRunner)
    runner.responses = {}

    def _execute(executable: Executable) -> ExecutableOutput:
        return runner.responses.get(executable.arguments, _output(return_code=1, stderr="unknown"))

    runner.execute.side_effect = _execute
    return runner


@pytest.fixture
def fake_resolver() -> MagicMock:
    """Resolver that finds nothing unless ``fake_resolver.found`` maps the name."""
    resolver = MagicMock(spec=ExecutableResolver)
    resolver.found = {}
    resolver.resolve.side_effect = lambda name, directory=None, local_names=(): resolver.found.get(name)
    return resolver


@pytest.fixture
def services(fake_runner: MagicMock, fake_resolver: MagicMock, id_factory: ExternalIdFactory) -> DetectableServices:
    """Services built from the fake runner and resolver."""
    return DetectableServices(runner=fake_runner, resolver=fake_resolver, external_id_factory=id_factory)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove DEPDETECT_ environment variables."""
    for suffix in (
        "SEARCH_DEPTH",
        "PARALLEL_WORKERS",
        "EXECUTABLE_TIMEOUT",
        "PIP_PATH",
        "MAVEN_PATH",
        "DPKG_PATH",
        "OUTPUT_DIRECTORY",
        "PROJECT_NAME",
        "PROJECT_VERSION",
    ):
        monkeypatch.delenv(f"DEPDETECT_{suffix}", raising=False)
