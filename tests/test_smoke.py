from __future__ import annotations

import importlib

import pytest

from _fake_clickhouse import FakeClickHouse
from quotech.clickhouse import probe


@pytest.mark.unit
def test_import_package() -> None:
    importlib.import_module("quotech")


@pytest.mark.unit
def test_import_cli_main() -> None:
    importlib.import_module("quotech.cli.main")


@pytest.mark.integration
def test_fake_clickhouse_smoke(fake_ch: FakeClickHouse) -> None:
    probe(fake_ch)
    assert fake_ch.calls == ["SELECT 1"]
