"""Unit tests for logging configuration."""

import json
import logging

from archival.logging_config import JsonFormatter, RunIdFilter, _create_dev_formatter, run_id_var


def _record(msg="Archived enrollment 42", **extra) -> logging.LogRecord:
    record = logging.LogRecord("archival.committer", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRunIdFilter:
    """Tests for RunIdFilter."""

    def test_adds_current_run_id(self):
        token = run_id_var.set("run-1")
        try:
            record = _record()
            assert RunIdFilter().filter(record)
            assert record.run_id == "run-1"
        finally:
            run_id_var.reset(token)

    def test_placeholder_outside_a_run(self):
        record = _record()
        RunIdFilter().filter(record)
        assert record.run_id == "-"


class TestFormatters:
    """Tests for the production and development formatters."""

    def test_json_includes_run_id_and_extras(self):
        record = _record(run_id="run-7", kind="enrollment", entity_id=42)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == "Archived enrollment 42"
        assert payload["level"] == "INFO"
        assert payload["run_id"] == "run-7"
        assert payload["kind"] == "enrollment"
        assert payload["entity_id"] == 42

    def test_json_omits_placeholder_run_id(self):
        payload = json.loads(JsonFormatter().format(_record(run_id="-")))
        assert "run_id" not in payload

    def test_json_stringifies_unserializable_extras(self):
        payload = json.loads(JsonFormatter().format(_record(run_id="-", path=object())))
        assert isinstance(payload["path"], str)

    def test_dev_format_shows_run_id(self):
        line = _create_dev_formatter().format(_record(run_id="run-3"))
        assert "run=run-3" in line
        assert "[archival.committer]" in line
