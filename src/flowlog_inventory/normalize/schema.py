from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

TA_INTERVAL_NOT_AVAILABLE = "N/A"
ALLOWED_TA_INTERVALS = (10, 60)

TaInterval = Union[int, str, None]


class TargetResourceType(str, Enum):
    NIC = "NIC"
    SUBNET = "Subnet"
    VNET = "VNet"
    NSG = "NSG"
    UNKNOWN = "Unknown"


class FlowLogStatus(str, Enum):
    ENABLED = "Enabled"
    DISABLED = "Disabled"
    DELETED = "Deleted"
    UPDATED = "Updated"


class ActionOutcome(str, Enum):
    ENABLED = "Enabled"
    DISABLED = "Disabled"
    DELETED = "Deleted"
    UPDATED = "Updated"
    IGNORED_ALREADY_ENABLED = "Ignored (already enabled)"
    IGNORED_ALREADY_DISABLED = "Ignored (already disabled)"
    FAILED = "Failed"

    @property
    def is_ignored(self) -> bool:
        return self in (ActionOutcome.IGNORED_ALREADY_ENABLED, ActionOutcome.IGNORED_ALREADY_DISABLED)


# Column names are part of the import contract and must match exactly.
CSV_BASE_FIELDS: Tuple[str, ...] = (
    "Name",
    "SubscriptionName",
    "Location",
    "ResourceGroup",
    "TargetResourceName",
    "TargetResourceType",
    "Status",
)
CSV_TA_INTERVAL_FIELD = "TAInterval"
CSV_EXTENDED_FIELDS: Tuple[str, ...] = CSV_BASE_FIELDS + (CSV_TA_INTERVAL_FIELD,)
CSV_REQUIRED_FIELDS: Tuple[str, ...] = CSV_BASE_FIELDS


def normalize_location(value: Optional[str]) -> str:
    """Lowercase an Azure location and drop spaces ("West Europe" -> "westeurope")."""
    return "".join(str(value or "").split()).lower()


@dataclass(frozen=True)
class FlowLogRecord:
    """
    One flow log, either exported from live state or read back as desired state.

    Only name, location and subscription_scope address the live resource; the
    target fields are informational.
    """

    name: str
    location: str
    status: str
    subscription_scope: str = ""
    resource_group: str = ""
    target_resource_name: str = ""
    target_resource_type: TargetResourceType = TargetResourceType.UNKNOWN
    ta_interval: TaInterval = None
    # Physical line of the CSV row this record was read from, if any.
    source_line: Optional[int] = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.subscription_scope, self.location, self.name)


@dataclass(frozen=True)
class ActionFailure:
    verb: str
    message: str

    def __str__(self) -> str:
        return f"Failed to {self.verb}: {self.message}"


@dataclass(frozen=True)
class ActionReport:
    name: str
    action: ActionOutcome
    subscription_scope: str = ""
    location: str = ""
    target_resource_type: TargetResourceType = TargetResourceType.UNKNOWN
    failure: Optional[ActionFailure] = None

    @property
    def failed(self) -> bool:
        return self.action is ActionOutcome.FAILED

    @property
    def label(self) -> str:
        if self.failure is not None:
            return str(self.failure)
        return self.action.value
