from __future__ import annotations

from pathlib import Path

import pytest

from flowlog_inventory.export.csv import detect_delimiter, read_csv, write_csv
from flowlog_inventory.normalize.schema import (
    CSV_BASE_FIELDS,
    CSV_EXTENDED_FIELDS,
    FlowLogRecord,
    TargetResourceType,
)
from flowlog_inventory.util.errors import CsvSchemaError


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_semicolon_header_is_detected(tmp_path) -> None:
    path = _write(
        tmp_path / "in.csv",
        "Name;SubscriptionName;Location;ResourceGroup;TargetResourceName;TargetResourceType;Status\n"
        "fl1;Prod;West Europe;rg1;nsg1;NSG;Disabled\n",
    )
    records = read_csv(path)
    assert records == [
        FlowLogRecord(
            name="fl1",
            subscription_scope="Prod",
            location="westeurope",
            resource_group="rg1",
            target_resource_name="nsg1",
            target_resource_type=TargetResourceType.NSG,
            status="Disabled",
        )
    ]


def test_first_delimiter_in_header_wins() -> None:
    assert detect_delimiter("Name,Sub;Location") == ","
    assert detect_delimiter("Name;Sub,Location") == ";"


def test_header_without_delimiter_fails(tmp_path) -> None:
    path = _write(tmp_path / "in.csv", "Name Status\nfl1 Enabled\n")
    with pytest.raises(CsvSchemaError, match="delimiter"):
        read_csv(path)


def test_empty_and_missing_files_fail(tmp_path) -> None:
    with pytest.raises(CsvSchemaError, match="empty"):
        read_csv(_write(tmp_path / "empty.csv", "  \n"))
    with pytest.raises(CsvSchemaError, match="not found"):
        read_csv(tmp_path / "nope.csv")


def test_missing_column_is_named(tmp_path) -> None:
    header = ",".join(f for f in CSV_BASE_FIELDS if f != "Status")
    path = _write(tmp_path / "in.csv", f"{header}\nfl1,Prod,westeurope,rg1,nsg1,NSG\n")
    with pytest.raises(CsvSchemaError) as exc:
        read_csv(path)
    message = str(exc.value)
    assert "missing required column(s): Status" in message
    assert "Expected columns: Name, SubscriptionName" in message


def test_ta_interval_column_is_optional_and_parsed(tmp_path) -> None:
    path = _write(
        tmp_path / "in.csv",
        "\ufeff" + ",".join(CSV_EXTENDED_FIELDS) + "\n"
        "fl1,Prod,westeurope,rg1,sub1,Subnet,Updated,10\n"
        " fl2 ,Prod,westeurope,rg1,nic1,NIC,Enabled,N/A\n"
        ",,,,,,,\n"
        "fl3,Prod,westeurope,rg1,vnet1,VNet,Disabled,\n",
    )
    records = read_csv(path)
    assert [r.name for r in records] == ["fl1", "fl2", "fl3"]
    assert [r.ta_interval for r in records] == [10, "N/A", "N/A"]
    assert [r.source_line for r in records] == [2, 3, 5]
    assert records[1].target_resource_type is TargetResourceType.NIC

    base = _write(tmp_path / "base.csv", ",".join(CSV_BASE_FIELDS) + "\nfl1,Prod,westeurope,rg1,x,Bogus,Enabled\n")
    (rec,) = read_csv(base)
    assert rec.ta_interval is None
    assert rec.target_resource_type is TargetResourceType.UNKNOWN


def test_written_file_reads_back_with_exact_header(tmp_path) -> None:
    records = [
        FlowLogRecord(
            name="b",
            subscription_scope="Prod",
            location="westeurope",
            resource_group="rg",
            target_resource_name="nsg",
            target_resource_type=TargetResourceType.NSG,
            status="Enabled",
            ta_interval=60,
        ),
        FlowLogRecord(name="a", subscription_scope="Prod", location="westeurope", status="Disabled"),
    ]
    path = tmp_path / "out" / "inventory.csv"
    assert write_csv(records, path, include_ta_interval=True) == 2

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CSV_EXTENDED_FIELDS)
    assert lines[1].startswith("a,") and lines[1].endswith(",N/A")
    assert read_csv(path)[1].ta_interval == 60


def test_base_layout_has_no_ta_column(tmp_path) -> None:
    path = tmp_path / "inventory.csv"
    write_csv([FlowLogRecord(name="a", location="westeurope", status="Enabled")], path)
    assert path.read_text(encoding="utf-8").splitlines()[0] == ",".join(CSV_BASE_FIELDS)
