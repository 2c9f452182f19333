from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .normalize.schema import ActionOutcome, ActionReport, FlowLogRecord, FlowLogStatus

STATUS_STYLES: Dict[str, str] = {
    FlowLogStatus.ENABLED.value: "green",
    FlowLogStatus.DISABLED.value: "yellow",
    FlowLogStatus.DELETED.value: "magenta",
    FlowLogStatus.UPDATED.value: "cyan",
}

ACTION_STYLES: Dict[ActionOutcome, str] = {
    ActionOutcome.ENABLED: "green",
    ActionOutcome.UPDATED: "green",
    ActionOutcome.DISABLED: "yellow",
    ActionOutcome.DELETED: "magenta",
    ActionOutcome.IGNORED_ALREADY_ENABLED: "dim",
    ActionOutcome.IGNORED_ALREADY_DISABLED: "dim",
    ActionOutcome.FAILED: "bold red",
}


def _styled(text: str, style: Optional[str]) -> Text:
    return Text(text, style=style or "")


def render_inventory_table(
    records: Iterable[FlowLogRecord],
    *,
    include_ta_interval: bool = False,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Flow Logs", show_header=True, header_style="bold")
    for column in ("Name", "Subscription", "Location", "ResourceGroup", "Target", "Type", "Status"):
        table.add_column(column)
    if include_ta_interval:
        table.add_column("TAInterval", justify="right")
    for rec in sorted(records, key=lambda r: (r.subscription_scope.lower(), r.name.lower())):
        row = [
            rec.name,
            rec.subscription_scope,
            rec.location,
            rec.resource_group,
            rec.target_resource_name,
            rec.target_resource_type.value,
            _styled(rec.status, STATUS_STYLES.get(rec.status)),
        ]
        if include_ta_interval:
            row.append("N/A" if rec.ta_interval is None else str(rec.ta_interval))
        table.add_row(*row)
    (console or Console()).print(table)


def render_action_table(
    reports: Sequence[ActionReport],
    *,
    title: str = "Actions",
    console: Optional[Console] = None,
) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Subscription")
    table.add_column("Type")
    table.add_column("Action")
    for rep in sorted(reports, key=lambda r: (r.subscription_scope.lower(), r.name.lower())):
        table.add_row(
            rep.name,
            rep.subscription_scope,
            rep.target_resource_type.value,
            _styled(rep.label, ACTION_STYLES.get(rep.action)),
        )
    (console or Console()).print(table)


def render_summary_table(
    *,
    status: str,
    counts: Dict[str, int],
    what_if: bool,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Reconcile Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("What if", "yes" if what_if else "no")
    for label, count in counts.items():
        table.add_row(label, str(count))
    table.add_row("Total", str(sum(counts.values())))
    (console or Console()).print(table)
