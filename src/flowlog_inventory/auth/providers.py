from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..util.errors import AzureClientError, azure_error_message, map_azure_error

try:
    from azure import identity as azure_identity  # type: ignore
except Exception:  # pragma: no cover - import error surfaced at runtime/CI
    azure_identity = None  # type: ignore

AUTH_METHODS = ("auto", "cli", "managed_identity", "default")
MANAGEMENT_SCOPE = "https://management.azure.com/.default"
DEFAULT_RETRY_TOTAL = 5


@dataclass(frozen=True)
class AuthContext:
    """
    Holds a resolved Azure credential used to construct management clients.
    tenant_id restricts which subscriptions are considered in scope.
    """

    method: str  # cli|managed_identity|default (resolved final)
    credential: Any
    tenant_id: Optional[str]


class AuthError(RuntimeError):
    pass


def _require_azure_identity() -> None:
    if azure_identity is None:
        raise AuthError(
            "azure-identity is not installed. Install dependencies and try again: pip install ."
        )


def _probe(credential: Any) -> None:
    """
    Request a management token so a missing login fails here rather than on first API call.
    """
    credential.get_token(MANAGEMENT_SCOPE)


def resolve_auth(method: str, tenant_id: Optional[str]) -> AuthContext:
    """
    Resolve auth according to requested method.
    - auto: Azure CLI login -> managed identity -> DefaultAzureCredential chain
    - cli: the account of `az login`
    - managed_identity: the host's managed identity
    - default: DefaultAzureCredential without interactive sources
    """
    _require_azure_identity()
    method = (method or "auto").lower()

    def ctx_from_cli() -> AuthContext:
        kwargs: Dict[str, Any] = {}
        if tenant_id:
            kwargs["tenant_id"] = tenant_id
        credential = azure_identity.AzureCliCredential(**kwargs)  # type: ignore[union-attr]
        return AuthContext(method="cli", credential=credential, tenant_id=tenant_id)

    def ctx_from_mi() -> AuthContext:
        credential = azure_identity.ManagedIdentityCredential()  # type: ignore[union-attr]
        return AuthContext(method="managed_identity", credential=credential, tenant_id=tenant_id)

    def ctx_from_default() -> AuthContext:
        kwargs: Dict[str, Any] = {"exclude_interactive_browser_credential": True}
        if tenant_id:
            kwargs["additionally_allowed_tenants"] = [tenant_id]
        credential = azure_identity.DefaultAzureCredential(**kwargs)  # type: ignore[union-attr]
        return AuthContext(method="default", credential=credential, tenant_id=tenant_id)

    def probed(build: Callable[[], AuthContext], label: str) -> AuthContext:
        try:
            ctx = build()
            _probe(ctx.credential)
        except Exception as e:
            mapped = map_azure_error(e, f"Azure SDK error while resolving {label} credentials")
            if mapped:
                raise AuthError(str(mapped)) from e
            raise AuthError(f"Failed to resolve {label} credentials: {e}") from e
        return ctx

    builders: Dict[str, Tuple[Callable[[], AuthContext], str]] = {
        "cli": (ctx_from_cli, "Azure CLI"),
        "managed_identity": (ctx_from_mi, "managed identity"),
        "default": (ctx_from_default, "default"),
    }
    if method in builders:
        build, label = builders[method]
        return probed(build, label)
    if method != "auto":
        raise AuthError(f"Unsupported auth method: {method}")

    errors: List[str] = []
    for name in ("cli", "managed_identity", "default"):
        build, label = builders[name]
        try:
            return probed(build, label)
        except AuthError as e:
            errors.append(str(e))
    raise AuthError(
        "Failed to resolve auth in 'auto' mode. Tried Azure CLI, managed identity, then the default chain.\n"
        f"Last error: {errors[-1] if errors else 'unknown'}"
    )


def make_client(
    client_cls: Any,
    ctx: AuthContext,
    subscription_id: Optional[str] = None,
    retry_total: int = DEFAULT_RETRY_TOTAL,
) -> Any:
    """
    Construct an Azure management client of type client_cls using the provided AuthContext.
    Subscription-scoped clients receive the subscription id as their second argument.
    """
    kwargs: Dict[str, Any] = {"retry_total": retry_total}
    try:
        if subscription_id:
            return client_cls(ctx.credential, subscription_id, **kwargs)
        return client_cls(ctx.credential, **kwargs)
    except Exception as e:
        mapped = map_azure_error(e, f"Azure SDK error while creating {getattr(client_cls, '__name__', 'client')}")
        if mapped:
            raise mapped from e
        raise AzureClientError(f"Failed to create Azure client: {azure_error_message(e)}") from e
