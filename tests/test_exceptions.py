"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from datasheet.exceptions import (
    CellIndexError,
    ColumnNotFoundError,
    DatasheetError,
    FormatConfigError,
)


class TestDatasheetError:
    """Tests for the base exception."""

    def test_message_only(self):
        """Without context the message is the string form."""
        assert str(DatasheetError("boom")) == "boom"

    def test_context_is_rendered(self):
        """Context keywords are appended in order."""
        err = DatasheetError("boom", row=3, column_id="c1")
        assert err.context == {"row": 3, "column_id": "c1"}
        assert str(err) == "boom (row=3, column_id='c1')"


class TestSubclasses:
    """Tests for the specific exceptions."""

    @pytest.mark.parametrize("cls", [ColumnNotFoundError, CellIndexError, FormatConfigError])
    def test_hierarchy(self, cls):
        """Every error is a DatasheetError."""
        assert issubclass(cls, DatasheetError)

    def test_format_error_is_not_value_error(self):
        """Format errors escape pydantic validation unchanged."""
        assert not issubclass(FormatConfigError, ValueError)

    def test_column_not_found(self):
        """The column id is kept as an attribute and in context."""
        err = ColumnNotFoundError("missing", column_id="c9")
        assert err.column_id == "c9"
        assert str(err) == "missing (column_id='c9')"

    def test_cell_index(self):
        """Row and column are recorded."""
        err = CellIndexError("out of range", row=5, column=2)
        assert (err.row, err.column) == (5, 2)
        assert "row=5" in str(err)

    def test_format_config(self):
        """The offending setting is recorded."""
        err = FormatConfigError("bad", setting="date_format")
        assert err.setting == "date_format"
        assert err.message == "bad"
