from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..util.errors import ClassificationError
from .schema import TargetResourceType

# Order matters: a subnet or NIC id also contains its parent virtualNetworks segment.
CLASSIFICATION_ORDER: Tuple[Tuple[str, TargetResourceType], ...] = (
    ("networkInterfaces", TargetResourceType.NIC),
    ("subnets", TargetResourceType.SUBNET),
    ("virtualNetworks", TargetResourceType.VNET),
    ("networkSecurityGroups", TargetResourceType.NSG),
)

# "/subscriptions/{id}/resourceGroups/{rg}/..." splits into "", "subscriptions", id, "resourceGroups", rg
RESOURCE_GROUP_INDEX = 4


@dataclass(frozen=True)
class TargetClassification:
    resource_type: TargetResourceType
    resource_group: str
    resource_name: str


def classify_resource_type(target_resource_id: str) -> TargetResourceType:
    for segment, resource_type in CLASSIFICATION_ORDER:
        if segment in target_resource_id:
            return resource_type
    return TargetResourceType.UNKNOWN


def classify_target(target_resource_id: str) -> TargetClassification:
    """
    Classify a flow log target resource id and extract its resource group and name.

    The id is used as-is: no case folding and no trailing slash handling.
    Raises ClassificationError when the id is too short to hold a resource group.
    """
    if not isinstance(target_resource_id, str) or not target_resource_id:
        raise ClassificationError("Target resource id is empty")
    parts = target_resource_id.split("/")
    if len(parts) <= RESOURCE_GROUP_INDEX + 1:
        raise ClassificationError(
            f"Target resource id has {len(parts)} segments, expected at least {RESOURCE_GROUP_INDEX + 2}: "
            f"{target_resource_id}"
        )
    return TargetClassification(
        resource_type=classify_resource_type(target_resource_id),
        resource_group=parts[RESOURCE_GROUP_INDEX],
        resource_name=parts[-1],
    )
