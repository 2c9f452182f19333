from __future__ import annotations

import types

import pytest

from flowlog_inventory.azure import flowlogs as fl_mod
from flowlog_inventory.azure.clients import SubscriptionInfo
from flowlog_inventory.util.errors import AzureClientError, ContextSwitchError

WATCHER_ID = (
    "/subscriptions/s1/resourceGroups/NetworkWatcherRG/providers/Microsoft.Network/networkWatchers/NetworkWatcher_westeurope"
)


class DummyPoller:
    def __init__(self) -> None:
        self.waited = False

    def result(self):
        self.waited = True
        return None


class DummyFlowLogs:
    def __init__(self, models) -> None:
        self.models = models
        self.updates = []
        self.deletes = []

    def list(self, rg, watcher):
        return iter(self.models.values())

    def get(self, rg, watcher, name):
        return self.models[name]

    def begin_create_or_update(self, rg, watcher, name, parameters):
        self.updates.append((rg, watcher, name, parameters))
        return DummyPoller()

    def begin_delete(self, rg, watcher, name):
        self.deletes.append((rg, watcher, name))
        return DummyPoller()


class DummyWatchers:
    def __init__(self) -> None:
        self.calls = 0

    def list_all(self):
        self.calls += 1
        return [types.SimpleNamespace(id=WATCHER_ID, location="westeurope")]


def _model(enabled: bool = True, interval=60):
    analytics = None
    if interval is not None:
        analytics = types.SimpleNamespace(
            network_watcher_flow_analytics_configuration=types.SimpleNamespace(
                enabled=True,
                workspace_id="ws-guid",
                workspace_region="westeurope",
                workspace_resource_id="/subscriptions/s1/resourceGroups/rg/providers/Microsoft.OperationalInsights/workspaces/ws",
                traffic_analytics_interval=interval,
            )
        )
    return types.SimpleNamespace(
        name="fl1",
        location="westeurope",
        enabled=enabled,
        target_resource_id="/subscriptions/s1/resourceGroups/rg/providers/Microsoft.Network/networkSecurityGroups/nsg1",
        storage_id="/subscriptions/s1/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/st",
        retention_policy=types.SimpleNamespace(days=30, enabled=True),
        flow_analytics_configuration=analytics,
    )


def _session(model):
    client = types.SimpleNamespace(network_watchers=DummyWatchers(), flow_logs=DummyFlowLogs({"fl1": model}))
    sub = SubscriptionInfo(subscription_id="s1", name="Prod", state="Enabled")
    return fl_mod.ScopeSession(sub, client), client


def test_get_flow_log_reads_state_and_caches_watchers() -> None:
    session, client = _session(_model(enabled=False, interval=10))
    live = session.get_flow_log("West Europe", "fl1")
    session.get_flow_log("westeurope", "fl1")

    assert live.enabled is False
    assert live.ta_interval == 10
    assert live.watcher == ("NetworkWatcherRG", "NetworkWatcher_westeurope")
    assert client.network_watchers.calls == 1


def test_location_without_watcher() -> None:
    session, _ = _session(_model())
    assert session.list_flow_logs("eastus") == []
    with pytest.raises(fl_mod.FlowLogNotFoundError, match="eastus"):
        session.get_flow_log("eastus", "fl1")


def test_set_enabled_persists_full_model() -> None:
    model = _model(enabled=True)
    session, client = _session(model)
    live = session.get_flow_log("westeurope", "fl1")

    session.set_enabled(live, False)

    ((rg, watcher, name, params),) = client.flow_logs.updates
    assert (rg, watcher, name) == ("NetworkWatcherRG", "NetworkWatcher_westeurope", "fl1")
    assert params is model
    assert params.enabled is False
    assert params.storage_id.endswith("storageAccounts/st")


def test_what_if_never_calls_the_platform() -> None:
    session, client = _session(_model(enabled=False))
    live = session.get_flow_log("westeurope", "fl1")

    session.set_enabled(live, True, what_if=True)
    session.update_ta_interval(live, 10, what_if=True)
    session.delete(live, what_if=True)

    assert client.flow_logs.updates == []
    assert client.flow_logs.deletes == []


def test_update_interval_keeps_other_fields() -> None:
    model = _model(enabled=False, interval=60)
    session, client = _session(model)
    live = session.get_flow_log("westeurope", "fl1")

    session.update_ta_interval(live, 10)

    ((_, _, _, params),) = client.flow_logs.updates
    settings = params.flow_analytics_configuration.network_watcher_flow_analytics_configuration
    assert settings.traffic_analytics_interval == 10
    assert settings.workspace_id == "ws-guid"
    assert params.enabled is False
    assert params.retention_policy.days == 30


def test_update_without_analytics_fails() -> None:
    session, client = _session(_model(interval=None))
    live = session.get_flow_log("westeurope", "fl1")
    assert live.ta_interval == "N/A"
    with pytest.raises(AzureClientError, match="not configured"):
        session.update_ta_interval(live, 10)
    assert client.flow_logs.updates == []


def test_delete_waits_for_completion() -> None:
    session, client = _session(_model())
    live = session.get_flow_log("westeurope", "fl1")
    session.delete(live)
    assert client.flow_logs.deletes == [("NetworkWatcherRG", "NetworkWatcher_westeurope", "fl1")]


def test_open_scope_wraps_client_errors(monkeypatch) -> None:
    subs = [SubscriptionInfo(subscription_id="s1", name="Prod", state="Enabled")]

    def _boom(ctx, subscription_id):
        raise RuntimeError("no network client")

    monkeypatch.setattr(fl_mod, "get_network_client", _boom)
    with pytest.raises(ContextSwitchError, match="Prod"):
        fl_mod.open_scope(object(), "prod", subs)

    monkeypatch.setattr(fl_mod, "get_network_client", lambda ctx, subscription_id: object())
    session = fl_mod.open_scope(object(), "s1", subs)
    assert session.scope == "Prod"
