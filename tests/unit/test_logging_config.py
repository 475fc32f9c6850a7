"""
Unit tests for logging configuration
"""

import json
import logging
import sys

import pytest

from sqlsession.core.config import StoreSettings
from sqlsession.core.logging_config import (
    SessionIdLogFilter,
    StructuredFormatter,
    build_logging_config,
    setup_logging,
)

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


def make_record(msg, *args, exc_info=None):
    return logging.LogRecord(
        name="sqlsession.store",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestSessionIdLogFilter:
    """Test masking of session ids"""

    def test_inline_id_masked(self):
        """Test ids embedded in the message"""
        record = make_record("Stored session s3cr3tT0kenValue42xyz via sqlite upsert")
        assert SessionIdLogFilter().filter(record) is True
        assert record.getMessage() == "Stored session s3cr**** via sqlite upsert"

    def test_argument_id_masked(self):
        """Test ids passed as formatting arguments"""
        record = make_record("Stored session %s", "abcd1234efgh5678ijkl")
        SessionIdLogFilter().filter(record)
        assert record.getMessage() == "Stored session abcd****"
        assert record.args is None

    def test_words_and_short_values_untouched(self):
        """Test that ordinary text survives"""
        message = "Database operation failed: sqlalchemy.exc.OperationalError in table sessions (42)"
        record = make_record(message)
        SessionIdLogFilter().filter(record)
        assert record.getMessage() == message


class TestStructuredFormatter:
    """Test JSON log lines"""

    def test_fields(self):
        """Test the emitted keys"""
        entry = json.loads(StructuredFormatter().format(make_record("hello %s", "world")))
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "sqlsession.store"
        assert "exception" not in entry

    def test_exception_included(self):
        """Test that exception details are serialized"""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record("failed", exc_info=sys.exc_info())

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["exception"]["type"] == "RuntimeError"
        assert entry["exception"]["message"] == "boom"


class TestBuildLoggingConfig:
    """Test the dictConfig mapping"""

    def test_standard_formatter_by_default(self):
        """Test the plain formatter and level"""
        config = build_logging_config(StoreSettings(_env_file=None, log_level="DEBUG"))
        handler = config["handlers"]["console"]
        assert handler["formatter"] == "standard"
        assert handler["filters"] == ["session_id_filter"]
        assert config["loggers"]["sqlsession"]["level"] == "DEBUG"

    def test_structured_formatter(self):
        """Test switching to JSON lines"""
        config = build_logging_config(StoreSettings(_env_file=None, structured_logging=True))
        assert config["handlers"]["console"]["formatter"] == "structured"

    def test_setup_logging_applies(self):
        """Test that the mapping is accepted by dictConfig"""
        logger = logging.getLogger("sqlsession")
        previous = (logger.level, list(logger.handlers), logger.propagate)
        try:
            setup_logging(StoreSettings(_env_file=None, log_level="WARNING"))
            assert logger.level == logging.WARNING
            assert logger.propagate is False
            assert any(
                isinstance(f, SessionIdLogFilter)
                for handler in logger.handlers
                for f in handler.filters
            )
        finally:
            logger.setLevel(previous[0])
            logger.handlers = previous[1]
            logger.propagate = previous[2]
