from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    AZURE_ERROR = 4
    RUNTIME_ERROR = 5


class FlowLogInventoryError(Exception):
    """Base error for flow log export and reconciliation."""


class ConfigError(FlowLogInventoryError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(FlowLogInventoryError):
    """Raised when authentication cannot be resolved."""


class AzureClientError(FlowLogInventoryError):
    """Raised when Azure SDK operations fail in a non-retriable way."""


class ContextSwitchError(AzureClientError):
    """Raised when a subscription scope cannot be opened."""


class CsvSchemaError(FlowLogInventoryError):
    """Raised when a desired-state CSV is missing, empty or malformed."""


class InvalidStatusError(FlowLogInventoryError):
    """Raised when a desired-state record carries an unsupported status."""


class ClassificationError(FlowLogInventoryError):
    """Raised when a target resource id cannot be classified."""


class ExportError(FlowLogInventoryError):
    """Raised when exporting artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, CsvSchemaError, InvalidStatusError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, AzureClientError):
        return int(ExitCode.AZURE_ERROR)
    if isinstance(exc, (ExportError, ClassificationError, FlowLogInventoryError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def _azure_error_types() -> tuple[type[BaseException], ...]:
    try:
        from azure.core.exceptions import AzureError  # type: ignore
    except Exception:
        return ()
    return (AzureError,)


def is_azure_error(exc: BaseException) -> bool:
    """
    Return True if the exception looks like an Azure SDK error.
    """
    azure_types = _azure_error_types()
    if azure_types and isinstance(exc, azure_types):
        return True
    return exc.__class__.__module__.startswith("azure.")


def azure_error_message(exc: BaseException) -> str:
    """
    Return the platform error text, preferring the service message over the repr.
    """
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    return str(exc)


def map_azure_error(exc: BaseException, context: str) -> AzureClientError | None:
    """
    Wrap Azure SDK errors with AzureClientError for consistent exit codes.
    """
    if not is_azure_error(exc):
        return None
    return AzureClientError(f"{context}: {azure_error_message(exc)}")
