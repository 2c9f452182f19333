from __future__ import annotations

from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1] / "src" / "flowlog_inventory"


def test_package_is_a_namespace_package() -> None:
    assert PACKAGE_ROOT.is_dir()
    assert not list(PACKAGE_ROOT.rglob("__init__.py"))
