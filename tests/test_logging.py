from __future__ import annotations

import json
import logging

import pytest

from flowlog_inventory.logging import (
    JsonFormatter,
    LogConfig,
    PlainFormatter,
    logging_configured,
    setup_logging,
)


@pytest.fixture()
def _restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    sdk_level = logging.getLogger("azure").level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.getLogger("azure").setLevel(sdk_level)


def _record(msg: str = "Flow log updated", **extra) -> logging.LogRecord:
    base = {"name": "flowlog_inventory.cli", "levelname": "INFO", "levelno": logging.INFO, "msg": msg}
    base.update(extra)
    return logging.makeLogRecord(base)


def test_plain_format_renders_step_scope_and_error() -> None:
    line = PlainFormatter().format(
        _record(
            step="reconcile",
            phase="partition",
            subscription="Prod",
            location="westeurope",
            flow_log="fl1",
            duration_ms=42,
            error="denied",
        )
    )
    assert " INFO flowlog_inventory.cli: " in line
    assert line.endswith(
        "[reconcile:partition] Flow log updated subscription=Prod location=westeurope flow_log=fl1 "
        "(duration_ms=42): denied"
    )


def test_plain_format_without_context_is_just_the_message() -> None:
    line = PlainFormatter().format(_record("Listing subscriptions"))
    assert line.endswith("flowlog_inventory.cli: Listing subscriptions")


def test_json_format_keeps_known_fields_only() -> None:
    payload = json.loads(
        JsonFormatter().format(
            _record(step="export", counts={"Enabled": 2}, location=None, internal_state=object())
        )
    )
    assert payload["message"] == "Flow log updated"
    assert payload["level"] == "INFO"
    assert payload["step"] == "export"
    assert payload["counts"] == {"Enabled": 2}
    assert payload["timestamp"].endswith("Z")
    assert "location" not in payload
    assert "internal_state" not in payload


def test_setup_logging_writes_run_log_file(tmp_path, _restore_root_logger) -> None:
    log_file = tmp_path / "logs" / "run.log"
    setup_logging(LogConfig(level="debug", json_logs=True, log_file=log_file))
    assert logging_configured()
    assert logging.getLogger("azure").level == logging.WARNING

    logging.getLogger("flowlog_inventory.test").info("Import started", extra={"step": "import", "what_if": True})
    for handler in logging.getLogger().handlers:
        handler.flush()

    entry = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert entry["message"] == "Import started"
    assert entry["what_if"] is True


def test_setup_logging_replaces_its_own_handlers(_restore_root_logger) -> None:
    setup_logging(LogConfig())
    setup_logging(LogConfig(level="WARNING"))
    root = logging.getLogger()
    own = [h for h in root.handlers if (h.get_name() or "").startswith("flowlog-inv")]
    assert len(own) == 1
    assert root.level == logging.WARNING
