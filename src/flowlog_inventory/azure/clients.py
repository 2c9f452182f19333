from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..auth.providers import AuthContext, AuthError, make_client
from ..util.errors import ContextSwitchError, map_azure_error

try:
    from azure.mgmt.network import NetworkManagementClient  # type: ignore
    from azure.mgmt.resource import SubscriptionClient  # type: ignore
except Exception:  # pragma: no cover - surfaced in CLI validate
    NetworkManagementClient = None  # type: ignore
    SubscriptionClient = None  # type: ignore


ACTIVE_SUBSCRIPTION_STATES = {"enabled"}


@dataclass(frozen=True)
class SubscriptionInfo:
    subscription_id: str
    name: str
    state: str
    tenant_id: Optional[str] = None

    def matches(self, scope: str) -> bool:
        wanted = scope.strip().lower()
        return wanted in (self.subscription_id.lower(), self.name.lower())


def get_subscription_client(ctx: AuthContext) -> Any:
    """
    Create SubscriptionClient for the tenant-wide subscription listing.
    """
    if SubscriptionClient is None:  # pragma: no cover
        raise AuthError("azure-mgmt-resource is not installed.")
    return make_client(SubscriptionClient, ctx)


def get_network_client(ctx: AuthContext, subscription_id: str) -> Any:
    """
    Create NetworkManagementClient bound to one subscription.
    """
    if NetworkManagementClient is None:  # pragma: no cover
        raise AuthError("azure-mgmt-network is not installed.")
    return make_client(NetworkManagementClient, ctx, subscription_id=subscription_id)


def _state_text(state: Any) -> str:
    value = getattr(state, "value", state)
    return str(value or "")


def list_subscriptions(ctx: AuthContext, *, include_inactive: bool = False) -> List[SubscriptionInfo]:
    """
    Return subscriptions visible to the credential, sorted by name then id.

    When the context carries a tenant id only that tenant's subscriptions are kept.
    Disabled and warned subscriptions are dropped unless include_inactive is set.
    """
    client = get_subscription_client(ctx)
    try:
        raw = list(client.subscriptions.list())
    except Exception as e:
        mapped = map_azure_error(e, "Azure SDK error while listing subscriptions")
        if mapped:
            raise mapped from e
        raise

    subs: List[SubscriptionInfo] = []
    for item in raw:
        tenant = getattr(item, "tenant_id", None)
        if ctx.tenant_id and tenant and tenant.lower() != ctx.tenant_id.lower():
            continue
        info = SubscriptionInfo(
            subscription_id=str(item.subscription_id),
            name=str(item.display_name or item.subscription_id),
            state=_state_text(getattr(item, "state", None)),
            tenant_id=tenant,
        )
        if not include_inactive and info.state.lower() not in ACTIVE_SUBSCRIPTION_STATES:
            continue
        subs.append(info)
    subs.sort(key=lambda s: (s.name.lower(), s.subscription_id))
    return subs


def resolve_subscription(
    scope: str,
    subscriptions: Sequence[SubscriptionInfo],
    default_subscription: Optional[str] = None,
) -> SubscriptionInfo:
    """
    Match a scope (display name or id, case-insensitive) to an accessible subscription.
    An empty scope falls back to default_subscription.
    """
    wanted = (scope or "").strip() or (default_subscription or "").strip()
    if not wanted:
        raise ContextSwitchError(
            "No subscription given for records without SubscriptionName. "
            "Set --default-subscription or FLOWLOG_INV_DEFAULT_SUBSCRIPTION."
        )
    for sub in subscriptions:
        if sub.matches(wanted):
            return sub
    raise ContextSwitchError(f"Unable to switch to subscription '{wanted}': not found or not accessible")
