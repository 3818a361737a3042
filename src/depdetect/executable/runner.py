"""Scoped invocation of external tools."""

import os
import subprocess
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from depdetect.errors import (
    ExecutableCancelledError,
    ExecutableFailedError,
    ExecutableNotFoundError,
    ExecutableRunnerError,
    ExecutableTimeoutError,
)
from depdetect.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class Executable:
    """A process to start: tool, arguments, working directory, environment."""

    working_directory: Path
    command: str
    arguments: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        working_directory: str | Path,
        command: str | Path,
        arguments: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
    ) -> "Executable":
        return cls(
            working_directory=Path(working_directory),
            command=str(command),
            arguments=tuple(str(argument) for argument in arguments),
            environment=dict(environment or {}),
        )

    def command_line(self) -> list[str]:
        return [self.command, *self.arguments]

    def __str__(self) -> str:
        return " ".join(self.command_line())


@dataclass(frozen=True)
class ExecutableOutput:
    """Everything observable about a finished process."""

    command_line: list[str]
    return_code: int
    standard_output: str
    error_output: str

    @property
    def succeeded(self) -> bool:
        return self.return_code == 0

    def standard_output_lines(self) -> list[str]:
        return self.standard_output.splitlines()

    def error_output_lines(self) -> list[str]:
        return self.error_output.splitlines()


class ExecutableRunner:
    """Run external tools synchronously with a timeout.

    A non-zero exit code is not an error here; callers interpret return codes
    according to their tool. Processes still running when :meth:`cancel` is
    called are terminated, and every later :meth:`execute` call raises
    :class:`ExecutableCancelledError`.
    """

    def __init__(
        self,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            timeout: Seconds a process may run before it is killed. ``None``
                waits forever.
            environment: Base environment for every process. Defaults to a
                copy of the current process environment.
        """
        self.timeout = timeout
        self._environment = dict(os.environ if environment is None else environment)
        self._processes: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def execute(self, executable: Executable) -> ExecutableOutput:
        """Start the process, capture its output and wait for it to exit.

        Args:
            executable: The process to run.

        Returns:
            The captured output and return code.

        Raises:
            ExecutableNotFoundError: The command does not exist.
            ExecutableRunnerError: The process could not be started.
            ExecutableTimeoutError: The process was killed after the timeout.
            ExecutableCancelledError: The runner was cancelled.
        """
        command_line = executable.command_line()
        if self._cancelled.is_set():
            raise ExecutableCancelledError(command_line)

        environment = {**self._environment, **executable.environment}
        logger.debug("Running %s in %s", executable, executable.working_directory)

        try:
            process = subprocess.Popen(
                command_line,
                cwd=str(executable.working_directory),
                env=environment,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise ExecutableNotFoundError(command_line) from e
        except OSError as e:
            raise ExecutableRunnerError(
                command_line, message=f"Failed to start {executable.command}: {e}"
            ) from e

        with process:
            with self._lock:
                self._processes.add(process)
                # cancel() may have run after the first check and missed this process
                if self._cancelled.is_set():
                    process.terminate()
            try:
                stdout, stderr = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                process.kill()
                process.communicate()
                raise ExecutableTimeoutError(command_line, self.timeout or 0.0) from e
            except BaseException:
                process.kill()
                raise
            finally:
                with self._lock:
                    self._processes.discard(process)

        if self._cancelled.is_set():
            raise ExecutableCancelledError(command_line)

        logger.debug("%s exited with %d", executable.command, process.returncode)
        return ExecutableOutput(
            command_line=command_line,
            return_code=process.returncode,
            standard_output=stdout or "",
            error_output=stderr or "",
        )

    def execute_successfully(self, executable: Executable) -> ExecutableOutput:
        """Like :meth:`execute` but raise when the exit code is non-zero."""
        output = self.execute(executable)
        if not output.succeeded:
            raise ExecutableFailedError(
                output.command_line, output.return_code, output.error_output
            )
        return output

    def cancel(self) -> None:
        """Terminate every running process and refuse new ones."""
        self._cancelled.set()
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            logger.debug("Terminating pid %d", process.pid)
            try:
                process.terminate()
            except OSError:
                logger.debug("Process %d already exited", process.pid)
