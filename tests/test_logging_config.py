"""JSON log formatting."""

from __future__ import annotations

import json
import logging

from catalog_ingestion.logging_config import JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("ingestion.engine", logging.INFO, __file__, 1, "Retrieved %d %s", (3, "users"), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_fields_are_included():
    line = json.loads(
        JsonFormatter().format(
            _record(provider="okta:main", task_id="okta:main:refresh", correlation_id="abc", instances=3)
        )
    )
    assert line["message"] == "Retrieved 3 users"
    assert line["logger"] == "ingestion.engine"
    assert line["provider"] == "okta:main"
    assert line["correlation_id"] == "abc"
    assert line["instances"] == 3


def test_absent_fields_are_omitted():
    line = json.loads(JsonFormatter().format(_record()))
    assert "provider" not in line
    assert "correlation_id" not in line
