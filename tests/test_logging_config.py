"""
Tests for logging configuration and screening context.
"""

import io
import json
import logging
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from services.logging_config import (
    JsonFormatter,
    ReadableFormatter,
    configure_logging,
    get_logger,
    screening_context,
    screening_id_var,
)


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message="Calculated credit", **extra_data):
    record = logging.LogRecord("calculator.test", logging.INFO, __file__, 10, message, None, None)
    if extra_data:
        record.extra_data = extra_data
    return record


class TestFormatters:
    """Tests for the JSON and readable formatters."""

    def test_json_formatter(self):
        """Test records become one JSON object."""
        data = json.loads(JsonFormatter().format(make_record(target_group="V")))
        assert data["level"] == "INFO"
        assert data["logger"] == "calculator.test"
        assert data["message"] == "Calculated credit"
        assert data["target_group"] == "V"
        assert "screening_id" not in data

    def test_json_formatter_includes_screening_id(self):
        """Test the screening id context is attached."""
        token = screening_id_var.set("scr-42")
        try:
            data = json.loads(JsonFormatter().format(make_record()))
        finally:
            screening_id_var.reset(token)
        assert data["screening_id"] == "scr-42"

    def test_screening_context_resets(self):
        """Test the screening id only applies inside the block."""
        with screening_context("scr-9"):
            inside = json.loads(JsonFormatter().format(make_record()))
        outside = json.loads(JsonFormatter().format(make_record()))
        assert inside["screening_id"] == "scr-9"
        assert "screening_id" not in outside
        assert screening_id_var.get() is None

    def test_readable_formatter(self):
        """Test extra data is appended to readable lines."""
        line = ReadableFormatter().format(make_record(target_group="V"))
        assert "INFO" in line
        assert "[calculator.test] Calculated credit" in line
        assert line.endswith("| target_group=V")


class TestConfigureLogging:
    """Tests for configure_logging and get_logger."""

    def test_json_output_to_stream(self):
        """Test context logger output with screening context."""
        stream = io.StringIO()
        configure_logging(level="INFO", json_output=True, stream=stream)

        token = screening_id_var.set("scr-7")
        try:
            get_logger("services.test", component="batch").info("Batch finished")
        finally:
            screening_id_var.reset(token)

        data = json.loads(stream.getvalue().strip())
        assert data["message"] == "Batch finished"
        assert data["screening_id"] == "scr-7"
        assert data["component"] == "batch"

    def test_level_filters(self):
        """Test records below the level are dropped."""
        stream = io.StringIO()
        configure_logging(level="WARNING", stream=stream)
        logging.getLogger("calculator.test").info("hidden")
        logging.getLogger("calculator.test").warning("shown")
        output = stream.getvalue()
        assert "hidden" not in output
        assert "shown" in output

    def test_log_file_is_json(self, tmp_path):
        """Test file output is always JSON."""
        log_file = tmp_path / "logs" / "engine.log"
        configure_logging(level="INFO", stream=io.StringIO(), log_file=log_file)
        logging.getLogger("calculator.test").info("to file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        data = json.loads(log_file.read_text().strip())
        assert data["message"] == "to file"
