from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .auth.providers import AUTH_METHODS
from .normalize.schema import normalize_location
from .util.concurrency import default_worker_count

# --------
# Defaults
# --------
ALLOWED_CONFIG_KEYS = {
    "log_level",
    "json_logs",
    "log_file",
    "auth",
    "tenant_id",
    "default_subscription",
    "subscriptions",
    "all_subscriptions",
    "location",
    "output",
    "input",
    "what_if",
    "workers",
    "include_ta_interval",
}
BOOL_CONFIG_KEYS = {"json_logs", "all_subscriptions", "what_if", "include_ta_interval"}
INT_CONFIG_KEYS = {"workers"}
PATH_CONFIG_KEYS = {"log_file", "output", "input"}
STR_CONFIG_KEYS = {"log_level", "auth", "tenant_id", "default_subscription", "location"}


@dataclass(frozen=True)
class RunConfig:
    # General
    json_logs: bool = False
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Scope
    subscriptions: Optional[List[str]] = None
    all_subscriptions: bool = False
    default_subscription: Optional[str] = None
    location: Optional[str] = None

    # Export / import
    output: Optional[Path] = None
    input: Optional[Path] = None
    include_ta_interval: bool = False
    what_if: bool = False

    # Performance
    workers: int = field(default_factory=default_worker_count)

    # Auth
    auth: str = "auto"  # auto|cli|managed_identity|default
    tenant_id: Optional[str] = None

    # Internal/derived
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            # Try YAML first then JSON
            try:
                data = yaml.safe_load(text) or {}
            except yaml.YAMLError:
                data = json.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _split_list(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key == "subscriptions":
            normalized[key] = _split_list(value, key)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
        else:
            normalized[key] = value
    auth = normalized.get("auth")
    if auth is not None:
        auth = str(auth).lower()
        if auth not in AUTH_METHODS:
            raise ValueError(f"Config field 'auth' must be one of: {', '.join(sorted(AUTH_METHODS))}")
        normalized["auth"] = auth
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowlog-inv",
        description="Export Azure Network Watcher flow logs to CSV and apply CSV-driven changes",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
        # Auth
        p.add_argument(
            "--auth",
            default=None,
            choices=list(AUTH_METHODS),
            help="Auth method (default: auto)",
        )
        p.add_argument("--tenant", dest="tenant_id", default=None, help="Restrict to subscriptions of this tenant")
        p.add_argument(
            "--default-subscription",
            default=None,
            help="Subscription used for rows without SubscriptionName",
        )

    # export
    p_exp = subparsers.add_parser("export", help="List flow logs at a location and write them to CSV")
    add_common(p_exp)
    scope = p_exp.add_mutually_exclusive_group()
    scope.add_argument(
        "--all-subscriptions",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Export from every accessible subscription",
    )
    scope.add_argument("--subscriptions", default=None, help="Comma-separated subscription names or ids")
    p_exp.add_argument("--location", default=None, help="Azure location, e.g. westeurope")
    p_exp.add_argument("--output", type=Path, default=None, help="CSV file to write")
    p_exp.add_argument(
        "--with-ta-interval",
        dest="include_ta_interval",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Add the TAInterval column (implied for multiple subscriptions)",
    )

    # import
    p_imp = subparsers.add_parser("import", help="Apply the statuses of a CSV file to live flow logs")
    add_common(p_imp)
    p_imp.add_argument("--input", type=Path, default=None, help="CSV file with desired statuses")
    p_imp.add_argument("--subscriptions", default=None, help="Only apply rows of these subscriptions")
    p_imp.add_argument("--location", default=None, help="Only apply rows of this location")
    p_imp.add_argument(
        "--what-if",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Validate changes without persisting them",
    )
    p_imp.add_argument("--workers", type=int, default=None, help="Max parallel flow log updates (default: CPU count)")

    # validate-auth
    p_val = subparsers.add_parser("validate-auth", help="Validate authentication setup")
    add_common(p_val)

    # list-subscriptions
    p_ls = subparsers.add_parser("list-subscriptions", help="List accessible subscriptions")
    add_common(p_ls)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of: export|import|validate-auth|list-subscriptions
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    # defaults
    base: Dict[str, Any] = {
        "json_logs": False,
        "log_level": "INFO",
        "log_file": None,
        "subscriptions": None,
        "all_subscriptions": False,
        "default_subscription": None,
        "location": None,
        "output": None,
        "input": None,
        "include_ta_interval": False,
        "what_if": False,
        "workers": default_worker_count(),
        "auth": "auto",
        "tenant_id": None,
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "json_logs": _env_bool("FLOWLOG_INV_JSON_LOGS"),
            "log_level": _env_str("FLOWLOG_INV_LOG_LEVEL"),
            "log_file": _env_str("FLOWLOG_INV_LOG_FILE"),
            "subscriptions": _env_str("FLOWLOG_INV_SUBSCRIPTIONS"),
            "default_subscription": _env_str("FLOWLOG_INV_DEFAULT_SUBSCRIPTION"),
            "location": _env_str("FLOWLOG_INV_LOCATION"),
            "what_if": _env_bool("FLOWLOG_INV_WHAT_IF"),
            "workers": _env_int("FLOWLOG_INV_WORKERS"),
            "auth": _env_str("FLOWLOG_INV_AUTH"),
            "tenant_id": _env_str("AZURE_TENANT_ID"),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "log_file": getattr(ns, "log_file", None),
            "subscriptions": getattr(ns, "subscriptions", None),
            "all_subscriptions": getattr(ns, "all_subscriptions", None),
            "default_subscription": getattr(ns, "default_subscription", None),
            "location": getattr(ns, "location", None),
            "output": getattr(ns, "output", None),
            "input": getattr(ns, "input", None),
            "include_ta_interval": getattr(ns, "include_ta_interval", None),
            "what_if": getattr(ns, "what_if", None),
            "workers": getattr(ns, "workers", None),
            "auth": getattr(ns, "auth", None),
            "tenant_id": getattr(ns, "tenant_id", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    # Normalize/construct types
    subs_raw = merged.get("subscriptions")
    subscriptions = _split_list(subs_raw, "subscriptions") if subs_raw else None
    workers = default_worker_count() if merged.get("workers") is None else int(merged["workers"])
    if workers < 1:
        raise ValueError("workers must be >= 1")
    auth = str(merged["auth"] or "auto").lower()
    if auth not in AUTH_METHODS:
        raise ValueError(f"auth must be one of: {', '.join(sorted(AUTH_METHODS))}")
    location = merged.get("location")
    all_subscriptions = bool(merged["all_subscriptions"])
    include_ta_interval = bool(merged["include_ta_interval"]) or all_subscriptions or len(subscriptions or []) > 1

    cfg = RunConfig(
        json_logs=bool(merged["json_logs"]),
        log_level=(merged.get("log_level") or "INFO").upper(),
        log_file=Path(merged["log_file"]) if merged.get("log_file") else None,
        subscriptions=subscriptions or None,
        all_subscriptions=all_subscriptions,
        default_subscription=merged.get("default_subscription") or None,
        location=normalize_location(location) if location else None,
        output=Path(merged["output"]) if merged.get("output") else None,
        input=Path(merged["input"]) if merged.get("input") else None,
        include_ta_interval=include_ta_interval,
        what_if=bool(merged["what_if"]),
        workers=workers,
        auth=auth,
        tenant_id=merged.get("tenant_id") or None,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "log_file": str(cfg.log_file) if cfg.log_file else None,
        "subscriptions": cfg.subscriptions,
        "all_subscriptions": cfg.all_subscriptions,
        "default_subscription": cfg.default_subscription,
        "location": cfg.location,
        "output": str(cfg.output) if cfg.output else None,
        "input": str(cfg.input) if cfg.input else None,
        "include_ta_interval": cfg.include_ta_interval,
        "what_if": cfg.what_if,
        "workers": cfg.workers,
        "auth": cfg.auth,
        "tenant_id": cfg.tenant_id,
        "started_at": cfg.started_at,
    }
