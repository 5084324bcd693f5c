"""Unit tests for JSON logging."""

import json
import logging

from oplog_tailer.utils.logging import (
    CorrelationContext, JSONFormatter, configure_logging, get_correlation_id, set_correlation_id,
    clear_correlation_id
)


def _record(**extra):
    logger = logging.getLogger("oplog_tailer.test")
    return logger.makeRecord(
        "oplog_tailer.test", logging.INFO, __file__, 10, "Starting oplog stream from %s", ("start",),
        None, extra=extra
    )


class TestJSONFormatter:
    """Test JSONFormatter."""
    
    def test_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "oplog_tailer.test"
        assert data["message"] == "Starting oplog stream from start"
        assert "correlation_id" not in data
    
    def test_extra_fields_flattened(self):
        data = json.loads(JSONFormatter().format(_record(oplog="oplog.rs", await_data=True)))
        assert data["oplog"] == "oplog.rs"
        assert data["await_data"] is True
        assert "args" not in data
    
    def test_correlation_id(self):
        with CorrelationContext("session-1"):
            data = json.loads(JSONFormatter().format(_record()))
        assert data["correlation_id"] == "session-1"


class TestCorrelationContext:
    """Test correlation ID propagation."""
    
    def test_generates_id(self):
        with CorrelationContext() as correlation_id:
            assert correlation_id
            assert get_correlation_id() == correlation_id
        assert get_correlation_id() is None
    
    def test_restores_previous_id(self):
        set_correlation_id("outer")
        try:
            with CorrelationContext("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"
        finally:
            clear_correlation_id()


def test_configure_logging_json():
    logger = configure_logging("debug", json_output=True)
    try:
        assert logger.name == "oplog_tailer"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
    finally:
        logger.handlers.clear()
        logger.propagate = True


def test_configure_logging_plain():
    logger = configure_logging("warning", json_output=False)
    try:
        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
    finally:
        logger.handlers.clear()
        logger.propagate = True
