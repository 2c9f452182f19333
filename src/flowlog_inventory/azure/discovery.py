from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Sequence

from ..auth.providers import AuthContext
from ..logging import get_logger
from ..normalize.classify import classify_target
from ..normalize.schema import FlowLogRecord, FlowLogStatus, TargetResourceType, normalize_location
from ..util.errors import ClassificationError, ConfigError
from .clients import SubscriptionInfo, resolve_subscription
from .flowlogs import ScopeSession, open_scope, ta_interval_of

LOG = get_logger(__name__)

SessionOpener = Callable[[str], ScopeSession]


def record_from_flow_log(flow_log: Any, *, scope: str, location: str) -> FlowLogRecord:
    """
    Build an inventory record from an SDK flow log model.

    A target id that cannot be classified is logged and exported as Unknown
    with no resource group.
    """
    target_id = str(getattr(flow_log, "target_resource_id", "") or "")
    try:
        target = classify_target(target_id)
        resource_type = target.resource_type
        resource_group = target.resource_group
        target_name = target.resource_name
    except ClassificationError as e:
        LOG.warning(
            "Unable to classify flow log target",
            extra={"flow_log": flow_log.name, "subscription": scope, "error": str(e)},
        )
        resource_type = TargetResourceType.UNKNOWN
        resource_group = ""
        target_name = target_id.rstrip("/").split("/")[-1] if target_id else ""

    status = FlowLogStatus.ENABLED if getattr(flow_log, "enabled", False) else FlowLogStatus.DISABLED
    return FlowLogRecord(
        name=str(flow_log.name),
        subscription_scope=scope,
        location=normalize_location(getattr(flow_log, "location", None) or location),
        resource_group=resource_group,
        target_resource_name=target_name,
        target_resource_type=resource_type,
        status=status.value,
        ta_interval=ta_interval_of(flow_log),
    )


def iter_flow_log_records(session: ScopeSession, location: str) -> Iterable[FlowLogRecord]:
    for flow_log in session.list_flow_logs(location):
        yield record_from_flow_log(flow_log, scope=session.scope, location=location)


def resolve_export_scopes(
    subscriptions: Sequence[SubscriptionInfo],
    *,
    all_subscriptions: bool,
    requested: Optional[Sequence[str]] = None,
    default_subscription: Optional[str] = None,
) -> List[str]:
    """
    Return subscription names to export. Explicit names are checked up front so a
    typo fails before any listing happens.
    """
    if all_subscriptions:
        return [s.name for s in subscriptions]
    wanted = [r for r in (requested or []) if r.strip()]
    if not wanted:
        if not default_subscription:
            raise ConfigError("export requires --all-subscriptions, --subscriptions or --default-subscription")
        wanted = [default_subscription]
    return [resolve_subscription(name, subscriptions).name for name in wanted]


def export_inventory(
    open_session: SessionOpener,
    scopes: Sequence[str],
    location: str,
) -> List[FlowLogRecord]:
    """
    List and classify every flow log at location in each scope, in scope order.
    Scopes without flow logs are logged and skipped.
    """
    location = normalize_location(location)
    records: List[FlowLogRecord] = []
    for scope in scopes:
        session = open_session(scope)
        scoped = list(iter_flow_log_records(session, location))
        if not scoped:
            LOG.info(
                "No flow logs found",
                extra={"step": "export", "phase": "skipped", "subscription": session.scope, "location": location},
            )
            continue
        LOG.info(
            f"Found {len(scoped)} flow log(s)",
            extra={"step": "export", "phase": "scope", "subscription": session.scope, "location": location},
        )
        records.extend(scoped)
    return records


def make_session_opener(
    ctx: AuthContext,
    subscriptions: Sequence[SubscriptionInfo],
    default_subscription: Optional[str] = None,
) -> SessionOpener:
    def _open(scope: str) -> ScopeSession:
        return open_scope(ctx, scope, subscriptions, default_subscription)

    return _open
