"""
Tests for logging_manager module.

Tests the SeedbankLogger file layout, the safe_logger function and the
NullLogger class that provide null-safe logging throughout the codebase,
and the CLI error helper.
"""
import threading
from unittest.mock import MagicMock

import click
import pytest

from seedbank.core.exceptions import FatalPersistenceError
from seedbank.core.logging_manager import (
    NullLogger,
    SeedbankLogger,
    handle_cli_error,
    safe_logger,
    setup_logger,
)


class TestSeedbankLogger:
    """Tests for the file-backed logger."""

    def test_creates_component_and_error_logs(self, tmp_path):
        """Logger should write to <component>.log and errors.log."""
        logger = SeedbankLogger(tmp_path / "logs", "seed")
        logger.log_info("started", {"kinds": ["comic"]})
        logger.log_error(ValueError("broken"), {"key": "solo-leveling"})
        logger.close()

        main_log = (tmp_path / "logs" / "seed.log").read_text(encoding="utf-8")
        error_log = (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8")

        assert "INFO - started" in main_log
        assert '"kinds": ["comic"]' in main_log
        assert "ValueError: broken" in error_log
        assert "key=solo-leveling" in error_log

    def test_log_operation_serializes_details(self, tmp_path):
        """log_operation should serialize non-JSON values with str()."""
        logger = SeedbankLogger(tmp_path, "seed")
        logger.log_operation("run_complete", {"path": tmp_path})
        logger.close()

        text = (tmp_path / "seed.log").read_text(encoding="utf-8")
        assert "OPERATION - run_complete" in text
        assert str(tmp_path) in text

    def test_concurrent_writes_are_all_recorded(self, tmp_path):
        """Lines logged from worker threads should all reach the file."""
        logger = SeedbankLogger(tmp_path, "seed")

        def work(n):
            for i in range(20):
                logger.log_debug(f"worker {n} line {i}")

        threads = [threading.Thread(target=work, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        logger.close()

        lines = (tmp_path / "seed.log").read_text(encoding="utf-8").splitlines()
        assert len([line for line in lines if "DEBUG - worker" in line]) == 80

    def test_log_cli_error_formats_message(self, tmp_path):
        """log_cli_error should return a one-line message and log details."""
        logger = SeedbankLogger(tmp_path, "seed")
        message = logger.log_cli_error(FatalPersistenceError("unable to open database"))
        logger.close()

        assert message == "❌ FatalPersistenceError: unable to open database"
        assert "unable to open database" in (tmp_path / "errors.log").read_text(encoding="utf-8")

    def test_setup_logger_uses_operations_subdirectory(self, tmp_path):
        """setup_logger should place logs under <log_dir>/operations."""
        logger = setup_logger(tmp_path, "seed")
        logger.log_info("hello")
        logger.close()

        assert (tmp_path / "operations" / "seed.log").exists()


class TestNullLogger:
    """Tests for NullLogger class."""

    def test_null_logger_methods_are_no_ops(self):
        """NullLogger logging methods should do nothing."""
        logger = NullLogger()
        logger.log_operation("test_op", {"key": "value"})
        logger.log_error(ValueError("test error"), {"context": "test"})
        logger.log_debug("debug message", {"key": "value"})
        logger.log_info("info message", {"key": "value"})
        logger.log_warning("warning message", {"key": "value"})
        logger.close()

    def test_null_logger_log_cli_error_returns_formatted(self):
        """NullLogger.log_cli_error should return formatted error string."""
        result = NullLogger().log_cli_error(ValueError("test error"), {"context": "test"})
        assert "ValueError" in result
        assert "test error" in result


class TestSafeLogger:
    """Tests for safe_logger function."""

    def test_safe_logger_returns_logger_when_provided(self):
        """safe_logger should return the same logger when not None."""
        mock_logger = MagicMock(spec=SeedbankLogger)
        assert safe_logger(mock_logger) is mock_logger

    def test_safe_logger_returns_null_logger_when_none(self):
        """safe_logger should return NullLogger when logger is None."""
        assert isinstance(safe_logger(None), NullLogger)

    def test_safe_logger_null_logger_is_singleton(self):
        """safe_logger should return the same NullLogger instance."""
        assert safe_logger(None) is safe_logger(None)

    def test_works_with_log_details(self):
        """safe_logger should forward log calls with details dict."""
        mock_logger = MagicMock(spec=SeedbankLogger)
        details = {"file": "comics.json", "records": 42}

        safe_logger(mock_logger).log_operation("load", details)
        mock_logger.log_operation.assert_called_once_with("load", details)

        safe_logger(None).log_operation("load", details)


class TestHandleCliError:
    """Tests for the click error helper."""

    def test_exits_with_code_and_logs(self):
        """handle_cli_error should log through the context logger and exit."""
        mock_logger = MagicMock(spec=SeedbankLogger)
        mock_logger.log_cli_error.return_value = "❌ ValueError: bad"
        ctx = click.Context(click.Command("seed"), obj={"logger": mock_logger, "verbose": False})

        with pytest.raises(SystemExit) as exc_info:
            handle_cli_error(ctx, ValueError("bad"), "seed", {"kinds": ["comic"]}, exit_code=2)

        assert exc_info.value.code == 2
        context = mock_logger.log_cli_error.call_args[0][1]
        assert context == {"operation": "seed", "kinds": ["comic"]}

    def test_works_without_logger(self):
        """handle_cli_error should fall back to NullLogger."""
        ctx = click.Context(click.Command("seed"), obj={})
        with pytest.raises(SystemExit):
            handle_cli_error(ctx, ValueError("bad"), "seed")
