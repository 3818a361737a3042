"""Tests for logging utilities."""

import logging
from pathlib import Path

from rich.logging import RichHandler

from depdetect.utils.logging import LogContext, configure_logging, get_logger, log_to_file


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_single_handler(self) -> None:
        """Test that repeated calls do not stack handlers."""
        configure_logging("INFO")
        configure_logging("WARNING")

        root = logging.getLogger()
        assert len([h for h in root.handlers if isinstance(h, RichHandler)]) == 1
        assert root.level == logging.WARNING


class TestLogContext:
    """Tests for LogContext."""

    def test_restores_level(self) -> None:
        """Test that the original level comes back."""
        logger = get_logger("depdetect.test.context")
        logger.setLevel(logging.ERROR)

        with LogContext(logger, "DEBUG"):
            assert logger.level == logging.DEBUG

        assert logger.level == logging.ERROR

    def test_by_name(self) -> None:
        """Test passing a logger name."""
        with LogContext("depdetect.test.named", "warning") as context:
            assert context.logger is logging.getLogger("depdetect.test.named")
            assert context.logger.level == logging.WARNING


class TestLogToFile:
    """Tests for log_to_file."""

    def test_writes_records(self, temp_dir: Path) -> None:
        """Test that DEBUG records reach the file while the root is quieter."""
        root = logging.getLogger()
        previous_level = root.level
        root.setLevel(logging.WARNING)
        path = temp_dir / "nested" / "depdetect.log"

        handler = log_to_file(path)
        try:
            get_logger("depdetect.test.file").debug("hello %s", "file")
            handler.flush()
        finally:
            root.removeHandler(handler)
            handler.close()
            root.setLevel(previous_level)

        content = path.read_text(encoding="utf-8")
        assert "hello file" in content
        assert "depdetect.test.file" in content
        assert "DEBUG" in content
