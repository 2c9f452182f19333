from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..auth.providers import AuthContext
from ..logging import get_logger
from ..normalize.schema import TA_INTERVAL_NOT_AVAILABLE, TaInterval, normalize_location
from ..util.errors import AzureClientError, ContextSwitchError, map_azure_error
from .clients import SubscriptionInfo, get_network_client, resolve_subscription

LOG = get_logger(__name__)

WatcherRef = Tuple[str, str]


class FlowLogNotFoundError(AzureClientError):
    """Raised when a flow log or its network watcher does not exist."""


@dataclass
class LiveFlowLog:
    """A flow log as read from the platform, plus the watcher that owns it."""

    name: str
    location: str
    enabled: bool
    target_resource_id: str
    ta_interval: TaInterval
    watcher: WatcherRef
    model: Any


def _watcher_ref_from_id(watcher_id: str) -> WatcherRef:
    parts = watcher_id.split("/")
    try:
        rg = parts[parts.index("resourceGroups") + 1]
    except (ValueError, IndexError) as e:
        raise AzureClientError(f"Unexpected network watcher id: {watcher_id}") from e
    return rg, parts[-1]


def analytics_settings(flow_log: Any) -> Any:
    """
    Return the nested traffic analytics settings of a flow log model, if configured.
    """
    fac = getattr(flow_log, "flow_analytics_configuration", None)
    if fac is None:
        return None
    return getattr(fac, "network_watcher_flow_analytics_configuration", None)


def ta_interval_of(flow_log: Any) -> TaInterval:
    settings = analytics_settings(flow_log)
    if settings is None:
        return TA_INTERVAL_NOT_AVAILABLE
    interval = getattr(settings, "traffic_analytics_interval", None)
    if interval is None:
        return TA_INTERVAL_NOT_AVAILABLE
    return int(interval)


class ScopeSession:
    """
    Flow log operations bound to one subscription.

    Mutations accept what_if; when set the request is built and validated but
    not sent to the platform.
    """

    def __init__(self, subscription: SubscriptionInfo, network_client: Any) -> None:
        self.subscription = subscription
        self._client = network_client
        self._lock = threading.Lock()
        self._watchers: Optional[Dict[str, WatcherRef]] = None

    @property
    def scope(self) -> str:
        return self.subscription.name

    def _load_watchers(self) -> Dict[str, WatcherRef]:
        with self._lock:
            if self._watchers is None:
                try:
                    watchers = list(self._client.network_watchers.list_all())
                except Exception as e:
                    mapped = map_azure_error(
                        e, f"Azure SDK error while listing network watchers in {self.subscription.name}"
                    )
                    if mapped:
                        raise mapped from e
                    raise
                by_location: Dict[str, WatcherRef] = {}
                for w in watchers:
                    by_location.setdefault(normalize_location(w.location), _watcher_ref_from_id(w.id))
                self._watchers = by_location
            return self._watchers

    def watcher_for(self, location: str) -> Optional[WatcherRef]:
        return self._load_watchers().get(normalize_location(location))

    def list_flow_logs(self, location: str) -> List[Any]:
        watcher = self.watcher_for(location)
        if watcher is None:
            return []
        rg, name = watcher
        try:
            return list(self._client.flow_logs.list(rg, name))
        except Exception as e:
            mapped = map_azure_error(e, f"Azure SDK error while listing flow logs in {location}")
            if mapped:
                raise mapped from e
            raise

    def get_flow_log(self, location: str, name: str) -> LiveFlowLog:
        watcher = self.watcher_for(location)
        if watcher is None:
            raise FlowLogNotFoundError(f"No network watcher found in location '{location}'")
        rg, watcher_name = watcher
        model = self._client.flow_logs.get(rg, watcher_name, name)
        return LiveFlowLog(
            name=name,
            location=normalize_location(location),
            enabled=bool(model.enabled),
            target_resource_id=str(getattr(model, "target_resource_id", "") or ""),
            ta_interval=ta_interval_of(model),
            watcher=watcher,
            model=model,
        )

    def _persist(self, live: LiveFlowLog, operation: str, what_if: bool) -> None:
        rg, watcher_name = live.watcher
        if what_if:
            LOG.info(
                f"What if: {operation} flow log '{live.name}' in {live.location} ({self.subscription.name})",
                extra={"step": "reconcile", "phase": "what_if", "flow_log": live.name},
            )
            return
        poller = self._client.flow_logs.begin_create_or_update(rg, watcher_name, live.name, live.model)
        poller.result()

    def set_enabled(self, live: LiveFlowLog, enabled: bool, *, what_if: bool = False) -> None:
        live.model.enabled = enabled
        self._persist(live, "enable" if enabled else "disable", what_if)
        live.enabled = enabled

    def update_ta_interval(self, live: LiveFlowLog, interval: int, *, what_if: bool = False) -> None:
        """
        Re-submit the full flow log with a new analytics interval; every other
        field (enabled flag, target, storage, retention, workspace) is sent as read.
        """
        settings = analytics_settings(live.model)
        if settings is None:
            raise AzureClientError(f"Traffic analytics is not configured for flow log '{live.name}'")
        settings.traffic_analytics_interval = int(interval)
        self._persist(live, f"set traffic analytics interval to {interval} for", what_if)
        live.ta_interval = int(interval)

    def delete(self, live: LiveFlowLog, *, what_if: bool = False) -> None:
        rg, watcher_name = live.watcher
        if what_if:
            LOG.info(
                f"What if: delete flow log '{live.name}' in {live.location} ({self.subscription.name})",
                extra={"step": "reconcile", "phase": "what_if", "flow_log": live.name},
            )
            return
        self._client.flow_logs.begin_delete(rg, watcher_name, live.name).result()


def open_scope(
    ctx: AuthContext,
    scope: str,
    subscriptions: Sequence[SubscriptionInfo],
    default_subscription: Optional[str] = None,
) -> ScopeSession:
    """
    Resolve a subscription scope and bind a network client to it.
    Any failure is a ContextSwitchError.
    """
    sub = resolve_subscription(scope, subscriptions, default_subscription)
    try:
        client = get_network_client(ctx, sub.subscription_id)
    except Exception as e:
        raise ContextSwitchError(f"Unable to switch to subscription '{sub.name}': {e}") from e
    LOG.debug("Switched subscription scope", extra={"subscription": sub.name, "subscription_id": sub.subscription_id})
    return ScopeSession(sub, client)
