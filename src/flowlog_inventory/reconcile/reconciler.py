from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..azure.clients import SubscriptionInfo
from ..logging import get_logger
from ..normalize.schema import (
    ALLOWED_TA_INTERVALS,
    ActionFailure,
    ActionOutcome,
    ActionReport,
    FlowLogRecord,
    FlowLogStatus,
    normalize_location,
)
from ..util.concurrency import ConcurrentCollector, parallel_for_each
from ..util.errors import ContextSwitchError, CsvSchemaError, InvalidStatusError, azure_error_message

LOG = get_logger(__name__)

# Opens the per-subscription handle (see azure.flowlogs.ScopeSession); any
# object with get_flow_log/set_enabled/update_ta_interval/delete will do.
SessionOpener = Callable[[str], Any]
PartitionCallback = Callable[[str, Optional[str], List[ActionReport]], None]

_ACTIONS = {
    FlowLogStatus.ENABLED: ("enable", ActionOutcome.ENABLED),
    FlowLogStatus.DISABLED: ("disable", ActionOutcome.DISABLED),
    FlowLogStatus.DELETED: ("delete", ActionOutcome.DELETED),
    FlowLogStatus.UPDATED: ("update", ActionOutcome.UPDATED),
}


def _where(record: FlowLogRecord, position: int) -> str:
    if record.source_line is not None:
        return f"line {record.source_line}"
    return f"record {position}"


def scope_identity(
    scope: str,
    subscriptions: Optional[Sequence[SubscriptionInfo]] = None,
    default_subscription: Optional[str] = None,
) -> str:
    """
    Return a comparable identity for a record scope.

    An empty scope stands for default_subscription. A scope naming an accessible
    subscription by display name or id resolves to that subscription's id, so the
    name and the id of one subscription compare equal. Anything else compares as
    case-folded text.
    """
    effective = (scope or "").strip() or (default_subscription or "").strip()
    if effective:
        for sub in subscriptions or ():
            if sub.matches(effective):
                return sub.subscription_id.lower()
    return effective.lower()


def validate_desired_state(
    records: Sequence[FlowLogRecord],
    *,
    subscriptions: Optional[Sequence[SubscriptionInfo]] = None,
    default_subscription: Optional[str] = None,
) -> None:
    """
    Reject the whole desired state if any record has an empty name, an unknown
    status, an Updated status without a supported analytics interval, or
    addresses the same flow log as an earlier record.
    """
    allowed = ", ".join(s.value for s in FlowLogStatus)
    seen: Dict[Tuple[str, str, str], Tuple[FlowLogRecord, int]] = {}
    for position, rec in enumerate(records, start=1):
        if not rec.name:
            raise CsvSchemaError(f"Name is empty at {_where(rec, position)}")
        key = (
            scope_identity(rec.subscription_scope, subscriptions, default_subscription),
            rec.location,
            rec.name.lower(),
        )
        if key in seen:
            first, first_position = seen[key]
            raise CsvSchemaError(
                f"Flow log '{rec.name}' in {rec.location or 'an unspecified location'} is listed more than once "
                f"({_where(first, first_position)} and {_where(rec, position)})"
            )
        seen[key] = (rec, position)
        try:
            status = FlowLogStatus(rec.status)
        except ValueError:
            raise InvalidStatusError(
                f"Invalid status '{rec.status}' for flow log '{rec.name}'. Expected one of: {allowed}"
            ) from None
        if status is FlowLogStatus.UPDATED and rec.ta_interval not in ALLOWED_TA_INTERVALS:
            raise InvalidStatusError(
                f"Flow log '{rec.name}' is marked Updated but TAInterval is '{rec.ta_interval}'. "
                f"Expected one of: {', '.join(str(i) for i in ALLOWED_TA_INTERVALS)}"
            )


def group_by_scope(records: Iterable[FlowLogRecord]) -> Dict[str, List[FlowLogRecord]]:
    """Group records by subscription scope, keeping first-seen scope order."""
    groups: Dict[str, List[FlowLogRecord]] = {}
    for rec in records:
        groups.setdefault(rec.subscription_scope, []).append(rec)
    return groups


def _report(record: FlowLogRecord, action: ActionOutcome, failure: Optional[ActionFailure] = None) -> ActionReport:
    return ActionReport(
        name=record.name,
        action=action,
        subscription_scope=record.subscription_scope,
        location=record.location,
        target_resource_type=record.target_resource_type,
        failure=failure,
    )


def _failed(record: FlowLogRecord, verb: str, exc: BaseException) -> ActionReport:
    return _report(record, ActionOutcome.FAILED, ActionFailure(verb=verb, message=azure_error_message(exc)))


def reconcile_record(session: Any, record: FlowLogRecord, *, what_if: bool = False) -> ActionReport:
    """
    Converge one live flow log towards the record's desired status.

    Every platform error is captured in the returned report; the status must
    already have been validated.
    """
    desired = FlowLogStatus(record.status)
    try:
        live = session.get_flow_log(record.location, record.name)
    except Exception as e:
        return _failed(record, "get", e)

    if desired is FlowLogStatus.ENABLED and live.enabled:
        return _report(record, ActionOutcome.IGNORED_ALREADY_ENABLED)
    if desired is FlowLogStatus.DISABLED and not live.enabled:
        return _report(record, ActionOutcome.IGNORED_ALREADY_DISABLED)

    verb, outcome = _ACTIONS[desired]
    try:
        if desired is FlowLogStatus.ENABLED:
            session.set_enabled(live, True, what_if=what_if)
        elif desired is FlowLogStatus.DISABLED:
            session.set_enabled(live, False, what_if=what_if)
        elif desired is FlowLogStatus.DELETED:
            session.delete(live, what_if=what_if)
        else:
            session.update_ta_interval(live, int(record.ta_interval), what_if=what_if)  # type: ignore[arg-type]
    except Exception as e:
        return _failed(record, verb, e)
    return _report(record, outcome)


def _in_filter(
    scope: str,
    scope_filter: Optional[Sequence[str]],
    subscriptions: Optional[Sequence[SubscriptionInfo]],
    default_subscription: Optional[str],
) -> bool:
    if not scope_filter:
        return True
    identity = scope_identity(scope, subscriptions, default_subscription)
    wanted = {scope_identity(s, subscriptions) for s in scope_filter if s.strip()}
    return identity in wanted


def reconcile(
    records: Sequence[FlowLogRecord],
    open_session: SessionOpener,
    *,
    subscription_filter: Optional[Sequence[str]] = None,
    location: Optional[str] = None,
    what_if: bool = False,
    workers: Optional[int] = None,
    on_partition: Optional[PartitionCallback] = None,
    subscriptions: Optional[Sequence[SubscriptionInfo]] = None,
    default_subscription: Optional[str] = None,
) -> List[ActionReport]:
    """
    Apply desired-state records scope by scope.

    Records are validated before any scope is opened. Each (scope, location)
    partition runs on its own bounded thread pool and is fully reported before
    the next scope is opened. A scope that cannot be opened aborts the run.
    Reports are returned in completion order.

    subscriptions and default_subscription let the scope filter and the
    duplicate check see a row scope the way the session opener resolves it.
    """
    validate_desired_state(records, subscriptions=subscriptions, default_subscription=default_subscription)
    location_filter = normalize_location(location) if location else None
    collector: ConcurrentCollector[ActionReport] = ConcurrentCollector()

    for scope, scoped in group_by_scope(records).items():
        if not _in_filter(scope, subscription_filter, subscriptions, default_subscription):
            LOG.info(
                "Subscription excluded by filter",
                extra={"step": "reconcile", "phase": "skipped", "subscription": scope},
            )
            continue

        try:
            session = open_session(scope)
        except ContextSwitchError:
            raise
        except Exception as e:
            raise ContextSwitchError(f"Unable to switch to subscription '{scope}': {e}") from e

        partition = scoped
        if location_filter:
            partition = [r for r in scoped if r.location == location_filter]
        if not partition:
            LOG.info(
                "No records for location",
                extra={"step": "reconcile", "phase": "skipped", "subscription": scope, "location": location_filter},
            )
            continue

        partition_reports: ConcurrentCollector[ActionReport] = ConcurrentCollector()

        def _work(rec: FlowLogRecord) -> None:
            report = reconcile_record(session, rec, what_if=what_if)
            partition_reports.add(report)
            collector.add(report)

        LOG.info(
            f"Reconciling {len(partition)} flow log(s)",
            extra={"step": "reconcile", "phase": "partition", "subscription": scope, "what_if": what_if},
        )
        parallel_for_each(_work, partition, max_workers=workers or 0)
        if on_partition is not None:
            on_partition(scope, location_filter, partition_reports.snapshot())

    return collector.snapshot()


def summarize(reports: Iterable[ActionReport]) -> Dict[str, int]:
    """Count reports per outcome label, e.g. {"Enabled": 2, "Failed": 1}."""
    counts: Dict[str, int] = {}
    for rep in reports:
        key = rep.action.value
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items()))
