"""External tool resolution and invocation."""

from depdetect.executable.resolver import ExecutableResolver
from depdetect.executable.runner import (
    DEFAULT_TIMEOUT_SECONDS,
    Executable,
    ExecutableOutput,
    ExecutableRunner,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "Executable",
    "ExecutableOutput",
    "ExecutableResolver",
    "ExecutableRunner",
]
