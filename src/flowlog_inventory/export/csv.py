from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from ..normalize.schema import (
    CSV_BASE_FIELDS,
    CSV_EXTENDED_FIELDS,
    CSV_REQUIRED_FIELDS,
    CSV_TA_INTERVAL_FIELD,
    TA_INTERVAL_NOT_AVAILABLE,
    FlowLogRecord,
    TaInterval,
    TargetResourceType,
    normalize_location,
)
from ..util.errors import CsvSchemaError, ExportError

SUPPORTED_DELIMITERS = (",", ";")
WRITE_DELIMITER = ","


def _format_ta_interval(value: TaInterval) -> str:
    if value is None:
        return TA_INTERVAL_NOT_AVAILABLE
    text = str(value).strip()
    return text or TA_INTERVAL_NOT_AVAILABLE


def _record_row(record: FlowLogRecord, include_ta_interval: bool) -> List[str]:
    row = [
        record.name,
        record.subscription_scope,
        record.location,
        record.resource_group,
        record.target_resource_name,
        record.target_resource_type.value,
        record.status,
    ]
    if include_ta_interval:
        row.append(_format_ta_interval(record.ta_interval))
    return row


def write_csv(
    records: Iterable[FlowLogRecord],
    path: Path,
    *,
    include_ta_interval: bool = False,
) -> int:
    """
    Write flow log records to CSV with the exact import header.
    Rows are ordered by subscription, location, then name. Returns the row count.
    """
    fields: Sequence[str] = CSV_EXTENDED_FIELDS if include_ta_interval else CSV_BASE_FIELDS
    ordered = sorted(records, key=lambda r: r.key)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, delimiter=WRITE_DELIMITER)
            writer.writerow(fields)
            for rec in ordered:
                writer.writerow(_record_row(rec, include_ta_interval))
    except OSError as e:
        raise ExportError(f"Failed to write CSV {path}: {e}") from e
    return len(ordered)


def detect_delimiter(first_line: str) -> str:
    """
    Return the first comma or semicolon found in the header line.
    """
    for ch in first_line:
        if ch in SUPPORTED_DELIMITERS:
            return ch
    raise CsvSchemaError(
        "Unable to detect CSV delimiter: the first line contains neither ',' nor ';'"
    )


def validate_columns(header: Optional[Sequence[str]]) -> None:
    present = {h.strip() for h in (header or []) if h}
    missing = [field for field in CSV_REQUIRED_FIELDS if field not in present]
    if missing:
        raise CsvSchemaError(
            f"CSV is missing required column(s): {', '.join(missing)}. "
            f"Expected columns: {', '.join(CSV_REQUIRED_FIELDS)}"
        )


def _parse_ta_interval(raw: Optional[str], has_column: bool) -> TaInterval:
    if not has_column:
        return None
    text = (raw or "").strip()
    if not text or text.upper() == TA_INTERVAL_NOT_AVAILABLE:
        return TA_INTERVAL_NOT_AVAILABLE
    try:
        return int(text)
    except ValueError:
        # Kept verbatim; only Updated records require a usable interval.
        return text


def _parse_target_type(raw: str) -> TargetResourceType:
    try:
        return TargetResourceType(raw)
    except ValueError:
        return TargetResourceType.UNKNOWN


def _record_from_row(row: Dict[str, str], has_ta_column: bool, line: Optional[int] = None) -> FlowLogRecord:
    def col(name: str) -> str:
        return (row.get(name) or "").strip()

    return FlowLogRecord(
        name=col("Name"),
        subscription_scope=col("SubscriptionName"),
        location=normalize_location(col("Location")),
        resource_group=col("ResourceGroup"),
        target_resource_name=col("TargetResourceName"),
        target_resource_type=_parse_target_type(col("TargetResourceType")),
        status=col("Status"),
        ta_interval=_parse_ta_interval(row.get(CSV_TA_INTERVAL_FIELD), has_ta_column),
        source_line=line,
    )


def read_csv(path: Path) -> List[FlowLogRecord]:
    """
    Read desired-state records from a comma or semicolon separated file.

    The delimiter is taken from the first line; the header is validated against
    the required column set before any row is parsed.
    """
    if not path.exists():
        raise CsvSchemaError(f"CSV file not found: {path}")
    text = path.read_text(encoding="utf-8-sig")
    if not text.strip():
        raise CsvSchemaError(f"CSV file is empty: {path}")

    first_line = text.splitlines()[0]
    delimiter = detect_delimiter(first_line)

    reader = csv.DictReader(io.StringIO(text, newline=""), delimiter=delimiter)
    if reader.fieldnames is not None:
        reader.fieldnames = [h.strip() for h in reader.fieldnames]
    validate_columns(reader.fieldnames)
    has_ta_column = CSV_TA_INTERVAL_FIELD in (reader.fieldnames or [])

    records: List[FlowLogRecord] = []
    for row in reader:
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        records.append(_record_from_row(row, has_ta_column, reader.line_num))
    return records
