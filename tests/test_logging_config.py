"""Structured logging formatter tests."""

import json
import logging

from montage_flow.middleware.logging_config import JSONFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord("montage_flow.services.status_machine", logging.INFO, __file__, 10,
                               "montage=%s moved", ("m1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_keeps_workflow_fields():
    out = json.loads(JSONFormatter().format(_record(montage_id="m1", from_status="lead", to_status="cancelled")))
    assert out["message"] == "montage=m1 moved"
    assert out["montage_id"] == "m1"
    assert out["to_status"] == "cancelled"
    assert "rule_id" not in out


def test_configure_logging_does_not_stack_handlers(app):
    configure_logging(app)
    configure_logging(app)
    tagged = [h for h in logging.getLogger().handlers if getattr(h, "_montage_flow", False)]
    assert len(tagged) == 1
