"""Custom exceptions for depdetect with user-friendly error messages."""


class DepDetectError(Exception):
    """Base exception with user-friendly message and optional hint.

    Attributes:
        message: The main error message.
        hint: Optional hint for resolving the error.
    """

    def __init__(self, message: str, hint: str = "") -> None:
        """Initialize the exception.

        Args:
            message: The main error message.
            hint: Optional hint for resolving the error.
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigurationError(DepDetectError):
    """Invalid configuration."""

    pass


class ScanError(DepDetectError):
    """The scan could not be started or was aborted as a whole."""

    pass


class ExecutableRunnerError(DepDetectError):
    """An external tool could not be run to completion."""

    def __init__(
        self,
        command: list[str],
        message: str = "",
        hint: str = "",
    ) -> None:
        self.command = command
        if not message:
            message = f"Failed to run: {' '.join(command)}"
        super().__init__(message, hint)


class ExecutableTimeoutError(ExecutableRunnerError):
    """An external tool exceeded its timeout and was killed."""

    def __init__(
        self,
        command: list[str],
        timeout: float,
        message: str = "",
        hint: str = "Increase execution.timeout_seconds or DEPDETECT_EXECUTABLE_TIMEOUT.",
    ) -> None:
        self.timeout = timeout
        if not message:
            message = f"Timed out after {timeout:g}s: {' '.join(command)}"
        super().__init__(command, message, hint)


class ExecutableNotFoundError(ExecutableRunnerError):
    """The command of an external tool does not exist."""

    def __init__(self, command: list[str], message: str = "", hint: str = "") -> None:
        self.executable = command[0]
        if not message:
            message = f"Executable '{self.executable}' was not found"
        if not hint:
            hint = "Install the tool or set its path in the 'tools' section of .depdetect.yml."
        super().__init__(command, message, hint)


class ExecutableCancelledError(ExecutableRunnerError):
    """An external tool was terminated because the scan was cancelled."""

    def __init__(self, command: list[str], message: str = "", hint: str = "") -> None:
        if not message:
            message = f"Cancelled: {' '.join(command)}"
        super().__init__(command, message, hint)


class ExecutableFailedError(ExecutableRunnerError):
    """An external tool exited with a non-zero return code."""

    def __init__(
        self,
        command: list[str],
        return_code: int,
        error_output: str = "",
        message: str = "",
        hint: str = "",
    ) -> None:
        self.return_code = return_code
        self.error_output = error_output
        if not message:
            message = f"Command exited with code {return_code}: {' '.join(command)}"
        super().__init__(command, message, hint)


class DetectableParseError(DepDetectError):
    """A manifest, lockfile or tool output could not be parsed."""

    def __init__(
        self,
        source: str = "",
        message: str = "",
        hint: str = "",
    ) -> None:
        self.source = source
        if not message:
            message = f"Failed to parse {source}" if source else "Failed to parse input"
        super().__init__(message, hint)
