"""Logging setup shared by the CLI and the detector pipeline."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

_configured = False


def configure_logging(
    level: str = "INFO",
    format_string: str | None = None,
) -> None:
    """Route log records to stderr through rich.

    The handler is installed once per process; later calls only change the
    root level. Directories are evaluated on worker threads, so DEBUG output
    carries the thread name.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_string: Optional custom format string.
    """
    global _configured

    root_logger = logging.getLogger()
    if _configured:
        root_logger.setLevel(level.upper())
        return

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=False,
    )
    if format_string is None:
        format_string = "[%(threadName)s] %(message)s" if level.upper() == "DEBUG" else "%(message)s"
    handler.setFormatter(logging.Formatter(format_string))

    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given module name.

    Args:
        name: Module name (typically __name__).

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


class LogContext:
    """Temporarily run a logger at another level.

    Example:
        with LogContext(get_logger("depdetect.detectables"), "DEBUG"):
            pipeline.run(path)
    """

    def __init__(self, logger: logging.Logger | str, level: str) -> None:
        self.logger = logging.getLogger(logger) if isinstance(logger, str) else logger
        self.new_level = getattr(logging, level.upper())
        self.original_level = self.logger.level

    def __enter__(self) -> "LogContext":
        self.logger.setLevel(self.new_level)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        self.logger.setLevel(self.original_level)


def log_to_file(
    filepath: str | Path,
    level: str = "DEBUG",
    format_string: str = FILE_FORMAT,
) -> logging.FileHandler:
    """Also write log records to a file.

    The root logger level is lowered when needed so that records at *level*
    reach the file even if the console is quieter.

    Args:
        filepath: Path to the log file; parent directories are created.
        level: Log level for the file handler.
        format_string: Format for file records.

    Returns:
        The configured FileHandler, already attached to the root logger.
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler_level = getattr(logging, level.upper())
    handler.setLevel(handler_level)
    handler.setFormatter(logging.Formatter(format_string))

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    current_level = root_logger.getEffectiveLevel()
    if current_level > handler_level:
        for existing in root_logger.handlers:
            if existing is not handler and existing.level == logging.NOTSET:
                existing.setLevel(current_level)
        root_logger.setLevel(handler_level)
    return handler
