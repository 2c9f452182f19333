from __future__ import annotations

import logging
import sys
from time import perf_counter
from typing import Any, Dict, List, Optional

from rich.console import Console

from .auth.providers import AuthContext, AuthError, resolve_auth
from .azure.clients import SubscriptionInfo, list_subscriptions
from .azure.discovery import export_inventory, make_session_opener, resolve_export_scopes
from .config import RunConfig, dump_config, load_run_config
from .export.csv import read_csv, write_csv
from .logging import LogConfig, get_logger, logging_configured, setup_logging
from .normalize.schema import ActionReport
from .reconcile.reconciler import reconcile, summarize
from .report import render_action_table, render_inventory_table, render_summary_table
from .util.errors import AuthResolutionError, ConfigError, as_exit_code

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "warning", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _resolve_auth(cfg: RunConfig) -> AuthContext:
    try:
        return resolve_auth(cfg.auth, cfg.tenant_id)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def _accessible_subscriptions(ctx: AuthContext) -> List[SubscriptionInfo]:
    try:
        return list_subscriptions(ctx)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def cmd_export(cfg: RunConfig, console: Optional[Console] = None) -> int:
    if not cfg.location:
        raise ConfigError("export requires --location")
    if cfg.output is None:
        raise ConfigError("export requires --output")
    timers = _StepTimers()
    _log_event(LOG, logging.INFO, "Export started", step="export", phase="start", timers=timers, location=cfg.location)

    ctx = _resolve_auth(cfg)
    subs = _accessible_subscriptions(ctx)
    scopes = resolve_export_scopes(
        subs,
        all_subscriptions=cfg.all_subscriptions,
        requested=cfg.subscriptions,
        default_subscription=cfg.default_subscription,
    )
    records = export_inventory(make_session_opener(ctx, subs, cfg.default_subscription), scopes, cfg.location)
    if not records:
        _log_event(
            LOG,
            logging.WARNING,
            "No flow logs found in any subscription",
            step="export",
            phase="skipped",
            timers=timers,
            location=cfg.location,
        )
        return 0

    render_inventory_table(records, include_ta_interval=cfg.include_ta_interval, console=console)
    count = write_csv(records, cfg.output, include_ta_interval=cfg.include_ta_interval)
    _log_event(
        LOG,
        logging.INFO,
        f"Exported {count} flow log(s)",
        step="export",
        phase="complete",
        timers=timers,
        output=str(cfg.output),
        subscriptions=len(scopes),
    )
    return 0


def cmd_import(cfg: RunConfig, console: Optional[Console] = None) -> int:
    if cfg.input is None:
        raise ConfigError("import requires --input")
    timers = _StepTimers()
    _log_event(
        LOG,
        logging.INFO,
        "Import started",
        step="import",
        phase="start",
        timers=timers,
        input=str(cfg.input),
        what_if=cfg.what_if,
    )

    # Schema problems surface before any authentication round trip.
    records = read_csv(cfg.input)
    ctx = _resolve_auth(cfg)
    subs = _accessible_subscriptions(ctx)

    def _render(scope: str, location: Optional[str], reports: List[ActionReport]) -> None:
        title = f"Actions: {scope or cfg.default_subscription or 'default'}"
        if location:
            title = f"{title} ({location})"
        render_action_table(reports, title=title, console=console)

    reports = reconcile(
        records,
        make_session_opener(ctx, subs, cfg.default_subscription),
        subscription_filter=cfg.subscriptions,
        location=cfg.location,
        what_if=cfg.what_if,
        workers=cfg.workers,
        on_partition=_render,
        subscriptions=subs,
        default_subscription=cfg.default_subscription,
    )
    counts = summarize(reports)
    failed = sum(1 for r in reports if r.failed)
    status = "COMPLETED_WITH_FAILURES" if failed else "OK"
    render_summary_table(status=status, counts=counts, what_if=cfg.what_if, console=console)
    _log_event(
        LOG,
        logging.WARNING if failed else logging.INFO,
        f"Import complete: {len(reports)} record(s), {failed} failed",
        step="import",
        phase="complete",
        timers=timers,
        counts=counts,
    )
    return 0


def cmd_validate_auth(cfg: RunConfig) -> int:
    ctx = _resolve_auth(cfg)
    subs = _accessible_subscriptions(ctx)
    LOG.info("Authentication validated", extra={"method": ctx.method, "subscriptions": len(subs)})
    # Print to stdout a concise success message (no secrets)
    print(f"OK: authentication validated ({ctx.method}); {len(subs)} accessible subscription(s)")
    return 0


def cmd_list_subscriptions(cfg: RunConfig) -> int:
    ctx = _resolve_auth(cfg)
    for sub in _accessible_subscriptions(ctx):
        print(f"{sub.subscription_id},{sub.name},{sub.state}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs, log_file=cfg.log_file))
        LOG.debug("Resolved configuration", extra={"config": dump_config(cfg)})

        if command == "export":
            code = cmd_export(cfg)
        elif command == "import":
            code = cmd_import(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        elif command == "list-subscriptions":
            code = cmd_list_subscriptions(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        # Map to consistent exit code and log
        if not logging_configured():
            setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
