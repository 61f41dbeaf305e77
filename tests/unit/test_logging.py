"""
Unit tests for logging setup and correlation tracking.
"""

import json
import logging

import pytest

from hyperv_lab.config import LoggingConfig
from hyperv_lab.exceptions import ConfigurationError
from hyperv_lab.logging import (
    CorrelationFilter,
    JSONFormatter,
    TextFormatter,
    _parse_size,
    get_correlation_id,
    logging_context,
    set_correlation_id,
    clear_correlation_id,
    setup_logging,
)


def make_record(message="Importing VM vm1...", **extra):
    record = logging.LogRecord(
        name="hyperv_lab.importer", level=logging.INFO, pathname=__file__,
        lineno=10, msg=message, args=(), exc_info=None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def reset_correlation():
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestFormatters:
    """Test cases for log formatters."""

    def test_json_formatter(self):
        """Test that extra fields end up in the JSON document."""
        record = make_record(vm_id="id-1", correlation_id="abc123")

        entry = json.loads(JSONFormatter(include_caller_info=False).format(record))

        assert entry['message'] == "Importing VM vm1..."
        assert entry['level'] == "INFO"
        assert entry['correlation_id'] == "abc123"
        assert entry['vm_id'] == "id-1"
        assert 'function' not in entry

    def test_text_formatter(self):
        """Test the console line layout."""
        line = TextFormatter().format(make_record())

        assert line.endswith("[INFO] Importing VM vm1...")

    def test_correlation_filter(self):
        """Test that records carry the current run id."""
        record = make_record()
        CorrelationFilter().filter(record)
        assert record.correlation_id == "-"

        set_correlation_id("run-1")
        CorrelationFilter().filter(record)
        assert record.correlation_id == "run-1"


class TestLoggingContext:
    """Test cases for logging_context."""

    def test_context_sets_and_restores_correlation_id(self):
        """Test nesting of run ids."""
        set_correlation_id("outer")

        with logging_context(correlation_id="inner") as correlation_id:
            assert correlation_id == "inner"
            assert get_correlation_id() == "inner"

        assert get_correlation_id() == "outer"

    def test_context_logs_failure(self, caplog):
        """Test that a failing operation is logged as an error."""
        logger = logging.getLogger("hyperv_lab.test")

        with pytest.raises(ValueError):
            with logging_context(logger=logger, operation="deploy of demo"):
                raise ValueError("boom")

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert errors[0].getMessage() == "Failed deploy of demo: boom"
        assert errors[0].error_type == "ValueError"
        assert get_correlation_id() is None


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_console_handler(self, restore_root_logger):
        """Test the default console configuration."""
        setup_logging(LoggingConfig(level="DEBUG"))

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, TextFormatter)

    def test_file_handler(self, restore_root_logger, tmp_path):
        """Test writing JSON lines to a rotating file."""
        log_file = tmp_path / "logs" / "lab.log"
        setup_logging(LoggingConfig(format="json", output="file", file_path=str(log_file)))

        logging.getLogger("hyperv_lab.deploy").info("Lab deployed successfully")
        for handler in restore_root_logger.handlers:
            handler.flush()

        lines = log_file.read_text(encoding='utf-8').splitlines()
        assert json.loads(lines[-1])['message'] == "Lab deployed successfully"

    def test_file_output_requires_path(self, restore_root_logger):
        """Test that file output without a path is rejected."""
        with pytest.raises(ConfigurationError):
            setup_logging(LoggingConfig(output="file"))


class TestParseSize:
    """Test cases for _parse_size."""

    def test_units(self):
        assert _parse_size("10MB") == 10 * 1024 ** 2
        assert _parse_size("1.5kb") == 1536
        assert _parse_size("512") == 512

    def test_invalid(self):
        with pytest.raises(ConfigurationError):
            _parse_size("lots")
