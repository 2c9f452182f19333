from __future__ import annotations

import types

import pytest

from flowlog_inventory.auth.providers import AuthContext
from flowlog_inventory.azure import clients as clients_mod
from flowlog_inventory.util.errors import AzureClientError, ContextSwitchError


class DummyAzureError(Exception):
    __module__ = "azure.core.exceptions"


def _sub(sub_id: str, name: str, state: str = "Enabled", tenant: str = "t1"):
    return types.SimpleNamespace(
        subscription_id=sub_id,
        display_name=name,
        state=types.SimpleNamespace(value=state),
        tenant_id=tenant,
    )


class DummySubscriptionClient:
    def __init__(self, items) -> None:
        self.subscriptions = types.SimpleNamespace(list=lambda: iter(items))


def test_list_subscriptions_filters_tenant_and_state(monkeypatch) -> None:
    items = [
        _sub("s3", "zeta"),
        _sub("s1", "Alpha"),
        _sub("s2", "beta", state="Disabled"),
        _sub("s4", "other-tenant", tenant="t2"),
    ]
    monkeypatch.setattr(clients_mod, "get_subscription_client", lambda ctx: DummySubscriptionClient(items))

    ctx = AuthContext(method="cli", credential=object(), tenant_id="T1")
    subs = clients_mod.list_subscriptions(ctx)
    assert [(s.subscription_id, s.name) for s in subs] == [("s1", "Alpha"), ("s3", "zeta")]

    everything = clients_mod.list_subscriptions(AuthContext("cli", object(), None), include_inactive=True)
    assert len(everything) == 4


def test_list_subscriptions_maps_sdk_errors(monkeypatch) -> None:
    def _raise():
        raise DummyAzureError("AuthorizationFailed")

    client = types.SimpleNamespace(subscriptions=types.SimpleNamespace(list=_raise))
    monkeypatch.setattr(clients_mod, "get_subscription_client", lambda ctx: client)

    with pytest.raises(AzureClientError, match="AuthorizationFailed"):
        clients_mod.list_subscriptions(AuthContext("cli", object(), None))


def test_resolve_subscription_by_name_id_or_default() -> None:
    subs = [
        clients_mod.SubscriptionInfo(subscription_id="aaaa-1111", name="Prod", state="Enabled"),
        clients_mod.SubscriptionInfo(subscription_id="bbbb-2222", name="Dev", state="Enabled"),
    ]
    assert clients_mod.resolve_subscription("prod", subs).subscription_id == "aaaa-1111"
    assert clients_mod.resolve_subscription("BBBB-2222", subs).name == "Dev"
    assert clients_mod.resolve_subscription("", subs, default_subscription="Dev").name == "Dev"

    with pytest.raises(ContextSwitchError, match="not found"):
        clients_mod.resolve_subscription("Staging", subs)
    with pytest.raises(ContextSwitchError, match="default-subscription"):
        clients_mod.resolve_subscription("  ", subs)
