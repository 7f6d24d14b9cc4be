"""Unit tests for formgen.core.logging_config."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from formgen.core.logging_config import JSONFormatter, configure_logging


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="formgen.services.bundle_assembler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Generated form %s",
        args=("001-Review",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "formgen.services.bundle_assembler"
        assert entry["message"] == "Generated form 001-Review"
        assert entry["timestamp"].endswith("+00:00")
        assert "node_id" not in entry

    def test_node_id_included(self):
        entry = json.loads(JSONFormatter().format(_record(node_id="Task_1")))
        assert entry["node_id"] == "Task_1"

    def test_exception_included(self):
        try:
            raise RuntimeError("lookup failed")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: lookup failed" in entry["exception"]


class TestConfigureLogging:
    def test_production_uses_json(self, restore_root_logger):
        configure_logging("production", "warning")
        root = restore_root_logger
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING

    def test_development_is_human_readable(self, restore_root_logger):
        configure_logging("development", "debug")
        root = restore_root_logger
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        configure_logging("production", "chatty")
        assert restore_root_logger.level == logging.INFO
