from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Fields commands attach through `extra=`. Other record attributes are not rendered.
EVENT_FIELDS: Tuple[str, ...] = ("step", "phase", "event", "duration_ms")
SCOPE_FIELDS: Tuple[str, ...] = ("subscription", "subscription_id", "location", "flow_log")
DETAIL_FIELDS: Tuple[str, ...] = (
    "what_if",
    "method",
    "input",
    "output",
    "subscriptions",
    "counts",
    "config",
    "error",
)

# The Azure SDK logs every HTTP request and token lookup at INFO.
SDK_LOGGERS: Tuple[str, ...] = (
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "msal",
)

_HANDLER_NAME = "flowlog-inv"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[Path] = None


def _timestamp(record: logging.LogRecord, timespec: str) -> str:
    moment = datetime.fromtimestamp(record.created, timezone.utc)
    return moment.isoformat(timespec=timespec).replace("+00:00", "Z")


def _fields(record: logging.LogRecord, names: Tuple[str, ...]) -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for name in names:
        value = getattr(record, name, None)
        if value is not None:
            found[name] = value
    return found


class JsonFormatter(logging.Formatter):
    """One JSON object per line: base fields plus whichever structured fields are set."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": _timestamp(record, "milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_fields(record, EVENT_FIELDS + SCOPE_FIELDS + DETAIL_FIELDS))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


class PlainFormatter(logging.Formatter):
    """
    `<timestamp> <LEVEL> <logger>: [step:phase] message subscription=.. location=.. (duration_ms=N): error`
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        message = record.getMessage()
        step = getattr(record, "step", None)
        phase = getattr(record, "phase", None)
        if step or phase:
            message = f"[{step or 'unknown'}:{phase or 'unknown'}] {message}"
        scope = _fields(record, SCOPE_FIELDS)
        if scope:
            message = f"{message} " + " ".join(f"{k}={v}" for k, v in scope.items())
        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            message = f"{message} (duration_ms={duration_ms})"
        error = getattr(record, "error", None)
        if error:
            message = f"{message}: {error}"
        line = f"{_timestamp(record, 'seconds')} {record.levelname} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_from_str(level: str) -> int:
    value = logging.getLevelName((level or "INFO").upper())
    return value if isinstance(value, int) else logging.INFO


def _own_handlers(root: logging.Logger) -> List[logging.Handler]:
    return [h for h in root.handlers if (h.get_name() or "").startswith(_HANDLER_NAME)]


def logging_configured() -> bool:
    return bool(_own_handlers(logging.getLogger()))


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """
    Install the stdout handler, plus a file handler when config.log_file is set.

    Handlers from an earlier call are replaced; handlers installed by others
    (test runners, embedding applications) are left alone.
    """
    config = config or LogConfig()
    level = _level_from_str(config.level)
    formatter: logging.Formatter = JsonFormatter() if config.json_logs else PlainFormatter()

    handlers: List[logging.Handler] = []
    stream = logging.StreamHandler(stream=sys.stdout)
    stream.set_name(_HANDLER_NAME)
    handlers.append(stream)
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.set_name(f"{_HANDLER_NAME}-file")
        handlers.append(file_handler)

    root = logging.getLogger()
    for old in _own_handlers(root):
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
