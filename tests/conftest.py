"""Shared fixtures for datasheet tests."""

from __future__ import annotations

import os

import pytest

from datasheet.config import clear_settings
from datasheet.log import set_level
from datasheet.models import Column, NumberFormat
from datasheet.store import DatasetStore


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Run every test without user config files or DATASHEET_* variables."""
    for key in list(os.environ):
        if key.startswith("DATASHEET_"):
            monkeypatch.delenv(key)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("APPDATA", str(home))
    monkeypatch.chdir(tmp_path)
    clear_settings()
    yield
    clear_settings()
    set_level("WARNING")


@pytest.fixture
def qty_columns() -> list[Column]:
    """A single number column."""
    return [Column(id="c1", name="Qty", type="number")]


@pytest.fixture
def qty_rows() -> list[list[str]]:
    """Two valid numbers and one unparseable cell."""
    return [["1,234"], ["-50"], ["abc"]]


@pytest.fixture
def us_format() -> NumberFormat:
    return NumberFormat(thousands_separator=",", decimal_separator=".")


@pytest.fixture
def qty_store(qty_columns, qty_rows, us_format) -> DatasetStore:
    """A store loaded with the Qty dataset."""
    store = DatasetStore(number_format=us_format)
    store.load(qty_columns, qty_rows)
    return store


@pytest.fixture
def sales_columns() -> list[Column]:
    """Region (text), Amount (number) and Date (date) columns."""
    return [
        Column(id="region", name="Region", type="text"),
        Column(id="amount", name="Amount", type="number"),
        Column(id="date", name="Date", type="date"),
    ]


@pytest.fixture
def sales_rows() -> list[list[str]]:
    return [
        ["North", "1,000", "01/01/2024"],
        ["South", "500", "15/02/2024"],
        ["North", "1000", "20/04/2024"],
        ["North", "", "05/05/2024"],
        ["South", "abc", "30/06/2024"],
    ]


@pytest.fixture
def sales_store(sales_columns, sales_rows, us_format) -> DatasetStore:
    """A store loaded with the sales dataset, dates as DD/MM/YYYY."""
    store = DatasetStore(number_format=us_format, date_format="DD/MM/YYYY")
    store.load(sales_columns, sales_rows)
    return store
