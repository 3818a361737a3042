"""Configuration management for depdetect."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from depdetect.detectable import DetectableServices
from depdetect.detector.rules import DetectableOptions
from depdetect.detector.search import DEFAULT_EXCLUDE_PATTERNS
from depdetect.errors import ConfigurationError
from depdetect.executable import DEFAULT_TIMEOUT_SECONDS, ExecutableResolver, ExecutableRunner
from depdetect.graph import ExternalIdFactory

CONFIG_FILE_NAMES = (".depdetect.yml", ".depdetect.yaml")


class SearchConfig(BaseModel):
    """Configuration for the directory search and detector selection."""

    depth: int = Field(
        default=3,
        ge=0,
        description="Maximum directory depth below the source path to evaluate",
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        description="Directory names or relative glob patterns to skip",
    )
    included_detectors: list[str] = Field(
        default_factory=list,
        description="Only run these detector rules or groups (empty = all)",
    )
    excluded_detectors: list[str] = Field(
        default_factory=list,
        description="Never run these detector rules or groups",
    )

    @field_validator("included_detectors", "excluded_detectors")
    @classmethod
    def lowercase_names(cls, v: list[str]) -> list[str]:
        """Normalize detector names."""
        return [name.strip().lower() for name in v if name.strip()]


class ExecutionConfig(BaseModel):
    """Configuration for external tools and concurrency."""

    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        gt=0,
        description="Seconds an external tool may run before it is killed",
    )
    parallel_workers: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Directories evaluated concurrently",
    )
    include_dev_dependencies: bool = Field(
        default=True,
        description="Include development dependencies where the lockfile marks them",
    )
    include_build_dependencies: bool = Field(
        default=True,
        description="Include build/tool requirements (Conan)",
    )
    maven_excluded_scopes: list[str] = Field(
        default_factory=list,
        description="Maven scopes removed from dependency:tree output, e.g. test",
    )


class ToolsConfig(BaseModel):
    """Explicit paths for external tools; PATH is searched when unset."""

    pip: str | None = Field(default=None, description="Path to pip")
    mvn: str | None = Field(default=None, description="Path to mvn")
    dpkg: str | None = Field(default=None, description="Path to dpkg")


class OutputConfig(BaseModel):
    """Configuration for produced documents."""

    directory: str = Field(
        default="./depdetect-output",
        description="Directory for BDIO documents and scratch files",
    )
    project_name: str | None = Field(
        default=None,
        description="Project name (defaults to the name found by the detectors)",
    )
    project_version: str | None = Field(
        default=None,
        description="Project version (defaults to the version found by the detectors)",
    )


class DepDetectConfig(BaseModel):
    """Complete depdetect configuration."""

    version: int = Field(default=1, description="Configuration file version")
    search: SearchConfig = Field(default_factory=SearchConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        """Validate configuration version."""
        if v != 1:
            raise ValueError("version must be 1")
        return v

    def detectable_options(self) -> DetectableOptions:
        return DetectableOptions(
            include_dev_dependencies=self.execution.include_dev_dependencies,
            include_build_dependencies=self.execution.include_build_dependencies,
            maven_excluded_scopes=tuple(self.execution.maven_excluded_scopes),
        )

    def create_services(self) -> DetectableServices:
        """Build the runner, resolver and id factory shared by all detectables."""
        return DetectableServices(
            runner=ExecutableRunner(timeout=self.execution.timeout_seconds),
            resolver=ExecutableResolver(overrides=self.tools.model_dump()),
            external_id_factory=ExternalIdFactory(),
        )


ENVIRONMENT_OVERRIDES: dict[str, tuple[str, str]] = {
    "SEARCH_DEPTH": ("search", "depth"),
    "PARALLEL_WORKERS": ("execution", "parallel_workers"),
    "EXECUTABLE_TIMEOUT": ("execution", "timeout_seconds"),
    "PIP_PATH": ("tools", "pip"),
    "MAVEN_PATH": ("tools", "mvn"),
    "DPKG_PATH": ("tools", "dpkg"),
    "OUTPUT_DIRECTORY": ("output", "directory"),
    "PROJECT_NAME": ("output", "project_name"),
    "PROJECT_VERSION": ("output", "project_version"),
}


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest .depdetect.yml configuration file.

    Searches from start_path up to the root directory.

    Args:
        start_path: Starting directory for search (defaults to cwd).

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while True:
        for name in CONFIG_FILE_NAMES:
            config_path = current / name
            if config_path.exists():
                return config_path
        if current == current.parent:
            return None
        current = current.parent


def load_config(
    config_path: Path | None = None,
    env_prefix: str = "DEPDETECT_",
) -> DepDetectConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    Args:
        config_path: Path to config file (searches if not provided).
        env_prefix: Prefix for environment variables.

    Returns:
        Loaded configuration.

    Raises:
        ConfigurationError: If the file is not valid YAML or a value is invalid.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path and config_path.exists():
        try:
            with open(config_path) as f:
                file_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}: {e}",
                hint="Run 'depdetect config validate' to check the file.",
            ) from e
        if file_data:
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
            config_data = file_data

    for suffix, (section, key) in ENVIRONMENT_OVERRIDES.items():
        value = os.environ.get(f"{env_prefix}{suffix}")
        if value:
            if not isinstance(config_data.get(section), dict):
                config_data[section] = {}
            config_data[section][key] = value

    try:
        return DepDetectConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            hint="Check .depdetect.yml and DEPDETECT_* environment variables.",
        ) from e


def generate_example_config() -> str:
    """Generate an example configuration file.

    Returns:
        YAML string of example configuration.
    """
    example = """# depdetect configuration

version: 1

# Directory search
search:
  # Maximum depth below the source path
  depth: 3
  # Directory names or relative glob patterns to skip
  exclude_patterns:
    - node_modules
    - .git
    - __pycache__
    - .venv
    - venv
    - build
    - dist
    - .gradle
    - target
  # Only run these detectors or groups (empty = all)
  included_detectors: []
  # Never run these detectors or groups, e.g. maven-cli or clang
  excluded_detectors: []

# External tools and concurrency
execution:
  # Seconds an external tool may run before it is killed
  timeout_seconds: 300
  # Directories evaluated concurrently (defaults to the CPU count)
  # parallel_workers: 4
  include_dev_dependencies: true
  include_build_dependencies: true
  # Maven scopes to drop, e.g. [test, provided]
  maven_excluded_scopes: []

# Explicit tool paths (PATH is searched when unset)
tools: {}
  # pip: /usr/bin/pip3
  # mvn: /opt/maven/bin/mvn
  # dpkg: /usr/bin/dpkg

# Produced documents
output:
  directory: ./depdetect-output
  # project_name: my-project
  # project_version: 1.0.0
"""
    return example
