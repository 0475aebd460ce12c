"""Tests for DatasetStore mutations, commits and exports."""

from __future__ import annotations

import logging

import pytest

from datasheet.aggregation import PivotView
from datasheet.config import clear_settings
from datasheet.exceptions import CellIndexError, ColumnNotFoundError, DatasheetError, FormatConfigError
from datasheet.models import (
    Column,
    ColumnFilter,
    ColumnType,
    FilterCondition,
    NumberFormat,
    PivotSpec,
    SortLevel,
)
from datasheet.store import DatasetStore, normalize_rows


class TestLoad:
    """Tests for loading datasets."""

    def test_validation_on_load(self, qty_store):
        """Loading computes the validation state."""
        assert qty_store.state.validation.parse_errors == {2: (0,)}
        assert qty_store.state.row_count == 3
        assert qty_store.state.column_count == 1

    def test_rows_are_normalized_with_one_warning(self, caplog):
        """Short rows are padded, long rows truncated, and a single warning is logged."""
        store = DatasetStore()
        with caplog.at_level(logging.WARNING, logger="datasheet"):
            store.load(["A", "B"], [["a"], ["b", "c", "d"], ["e", "f"]])
        assert store.state.rows == (("a", None), ("b", "c"), ("e", "f"))
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "2 row(s)" in warnings[0].getMessage()

    def test_normalize_rows(self):
        """normalize_rows reports how many rows changed length."""
        rows, mismatched = normalize_rows([[1], [1, 2]], 2)
        assert rows == ((1, None), (1, 2))
        assert mismatched == 1

    def test_column_names_become_text_columns(self):
        """Plain names load as text columns with generated ids."""
        store = DatasetStore()
        store.load(["Name"], [["x"]])
        column = store.state.columns[0]
        assert column.type is ColumnType.TEXT
        assert column.id.startswith("col_")

    def test_load_resets_view_configuration(self, qty_store, qty_columns):
        """A new dataset starts without filters, sorting or selection."""
        qty_store.set_sort([SortLevel(column_id="c1")])
        qty_store.select_row(0)
        qty_store.load(qty_columns, [["1"]])
        assert qty_store.state.sort_levels == ()
        assert qty_store.state.selected_row is None

    def test_detect_types(self):
        """detect=True classifies columns and adopts confident formats."""
        store = DatasetStore(number_format=NumberFormat(thousands_separator="", decimal_separator=","))
        store.load(
            ["When", "Qty", "Name"],
            [["01/03/2024", "1,234.5", "North"], ["15/03/2024", "2,000", "South"]],
            detect=True,
        )
        state = store.state
        assert [c.type for c in state.columns] == [ColumnType.DATE, ColumnType.NUMBER, ColumnType.TEXT]
        assert state.number_format == NumberFormat(thousands_separator=",", decimal_separator=".")
        assert state.date_format == "DD/MM/YYYY"
        assert state.validation.parse_errors == {}

    def test_date_format_without_tokens(self, qty_columns):
        """A date pattern without tokens is rejected."""
        with pytest.raises(FormatConfigError):
            DatasetStore().load(qty_columns, [], date_format="abc")

    def test_defaults_from_settings(self, monkeypatch):
        """Store formats default to the format settings."""
        monkeypatch.setenv("DATASHEET_FORMAT__THOUSANDS_SEPARATOR", ".")
        monkeypatch.setenv("DATASHEET_FORMAT__DECIMAL_SEPARATOR", ",")
        monkeypatch.setenv("DATASHEET_FORMAT__DATE_FORMAT", "YYYY-MM-DD")
        clear_settings()
        state = DatasetStore().state
        assert state.number_format == NumberFormat(thousands_separator=".", decimal_separator=",")
        assert state.date_format == "YYYY-MM-DD"

    def test_close(self, qty_store):
        """Closing drops the data and every selector."""
        qty_store.cache.row_parse_errors(0)
        qty_store.close()
        assert qty_store.state.rows == ()
        assert len(qty_store.cache) == 0


class TestCellEdits:
    """Tests for edit_cell()."""

    def test_fix_invalid_cell(self, qty_store):
        """A corrected cell loses its parse error."""
        qty_store.edit_cell(2, "c1", "42")
        assert qty_store.state.rows[2] == ("42",)
        assert qty_store.state.validation.parse_errors == {}

    def test_edit_by_column_index(self, qty_store):
        """Columns can be addressed by index."""
        qty_store.edit_cell(1, 0, "x")
        assert qty_store.state.validation.parse_errors == {1: (0,), 2: (0,)}

    def test_same_value_is_a_no_op(self, qty_store):
        """Writing the current value does not commit."""
        before = qty_store.state
        assert qty_store.edit_cell(0, "c1", "1,234") is before

    def test_bad_coordinates(self, qty_store):
        """Out-of-range rows and unknown columns raise."""
        with pytest.raises(CellIndexError):
            qty_store.edit_cell(9, "c1", "1")
        with pytest.raises(ColumnNotFoundError):
            qty_store.edit_cell(0, "nope", "1")
        with pytest.raises(CellIndexError):
            qty_store.edit_cell(0, 4, "1")


class TestColumnEdits:
    """Tests for column mutations."""

    def test_rename_flags_duplicates(self, sales_store):
        """Renaming into an existing name flags both columns."""
        sales_store.rename_column("amount", "Region")
        duplicates = sales_store.state.validation.duplicate_columns
        assert duplicates.duplicate_names == ("Region",)
        assert duplicates.duplicate_column_indices == (0, 1)
        assert sales_store.state.columns[1].id == "amount"

    def test_change_type_rechecks_that_column(self, sales_store):
        """Only the changed column's parse errors are recomputed."""
        assert sales_store.state.validation.parse_errors == {4: (1,)}
        sales_store.change_column_type("region", "number")
        assert sales_store.state.validation.parse_errors == {
            0: (0,),
            1: (0,),
            2: (0,),
            3: (0,),
            4: (0, 1),
        }
        sales_store.change_column_type("amount", ColumnType.TEXT)
        assert 1 not in sales_store.state.validation.parse_errors[4]

    def test_change_type_drops_unavailable_conditions(self, sales_store, caplog):
        """Conditions whose operator the new type lacks are removed."""
        sales_store.set_column_filter(
            "amount",
            [
                FilterCondition(operator="greater_than", value=0),
                FilterCondition(operator="is_not_empty"),
            ],
        )
        with caplog.at_level(logging.WARNING, logger="datasheet"):
            sales_store.change_column_type("amount", "text")
        (remaining,) = sales_store.state.filters
        assert [c.operator for c in remaining.conditions] == ["is_not_empty"]
        assert "Dropped 1 filter condition(s)" in caplog.text

    def test_change_type_with_date_format(self, qty_store):
        """A column pattern can be set together with the type."""
        qty_store.load([Column(id="d", name="D")], [["03/2024"], ["nope"]])
        qty_store.change_column_type("d", "date", date_format="MM/YYYY")
        assert qty_store.state.columns[0].date_format == "MM/YYYY"
        assert qty_store.state.validation.parse_errors == {1: (0,)}

    def test_resize_is_clamped(self, qty_store):
        """Widths below the configured minimum are raised to it."""
        qty_store.resize_column("c1", 5)
        assert qty_store.state.columns[0].width == 40
        qty_store.resize_column("c1", 220)
        assert qty_store.state.columns[0].width == 220

    def test_add_column_shifts_indices(self, qty_store):
        """Inserting before existing columns shifts errors and selection."""
        qty_store.select_column("c1")
        qty_store.add_column("Notes", index=0, column_id="notes")
        state = qty_store.state
        assert [c.id for c in state.columns] == ["notes", "c1"]
        assert state.rows[0] == (None, "1,234")
        assert state.validation.parse_errors == {2: (1,)}
        assert state.validation.empty_columns == (0,)
        assert state.selected_column == 1

    def test_add_column_with_existing_id(self, qty_store):
        """Column ids stay unique."""
        with pytest.raises(DatasheetError):
            qty_store.add_column("Again", column_id="c1")

    def test_delete_column_cleans_configuration(self, sales_store):
        """Filters, sort levels and metrics on a deleted column go away."""
        sales_store.set_column_filter("amount", [FilterCondition(operator="greater_than", value=0)])
        sales_store.set_sort([SortLevel(column_id="amount"), SortLevel(column_id="region")])
        sales_store.set_aggregation(
            {"group_by": ["region"], "metrics": [{"type": "sum", "column_id": "amount"}]}
        )
        sales_store.delete_column("amount")
        state = sales_store.state
        assert [c.id for c in state.columns] == ["region", "date"]
        assert state.filters == ()
        assert state.sort_levels == (SortLevel(column_id="region"),)
        assert state.aggregation.metrics == ()
        assert state.validation.parse_errors == {}
        assert state.rows[0] == ("North", "01/01/2024")

    def test_delete_last_group_by_clears_aggregation(self, sales_store):
        """An aggregation with nothing left is removed."""
        sales_store.set_aggregation({"group_by": ["region"]})
        sales_store.delete_column("region")
        assert sales_store.state.aggregation is None

    def test_delete_column_prunes_pivot(self, sales_store):
        """Pivot dimensions and values on a deleted column are removed."""
        sales_store.set_pivot(
            {
                "rows": ["region"],
                "columns": [{"column_id": "date", "time_unit": "quarter"}],
                "values": [{"type": "sum", "column_id": "amount"}],
            }
        )
        sales_store.delete_column("date")
        assert sales_store.state.pivot.columns == ()
        sales_store.delete_column("amount")
        assert sales_store.state.pivot.values == ()
        sales_store.delete_column("region")
        assert sales_store.state.pivot is None

    def test_delete_column_drops_stale_selectors(self, sales_store):
        """Selectors for the removed column index and id leave the cache."""
        cache = sales_store.cache
        cache.column_validation(2)
        cache.is_column_selected(0)
        cache.unique_values("amount")
        direction = cache.sort_direction("region")
        cache.cell_validation(0, 2)
        assert len(cache) == 7
        sales_store.delete_column("amount")
        assert len(cache) == 3
        assert cache.sort_direction("region") is direction


class TestRowEdits:
    """Tests for row insertion and deletion."""

    def test_insert_row_shifts_errors(self, qty_store):
        """Errors below the insertion point move down; the new row is validated."""
        qty_store.select_row(1)
        qty_store.insert_row(0, ["oops"])
        state = qty_store.state
        assert state.rows[0] == ("oops",)
        assert state.validation.parse_errors == {0: (0,), 3: (0,)}
        assert state.selected_row == 2

    def test_append_empty_row(self, qty_store):
        """Rows are appended empty by default."""
        qty_store.insert_row()
        assert qty_store.state.rows[-1] == (None,)
        assert qty_store.state.row_count == 4

    def test_insert_fills_empty_column(self, qty_store):
        """A value in a previously empty column clears its empty flag."""
        qty_store.add_column("Notes", column_id="notes")
        qty_store.insert_row(values=["1", "hello"])
        assert qty_store.state.validation.empty_columns == ()

    def test_delete_row(self, qty_store):
        """Later rows and their errors move up; a deleted selection is cleared."""
        qty_store.select_row(0)
        qty_store.delete_row(0)
        state = qty_store.state
        assert state.rows == (("-50",), ("abc",))
        assert state.validation.parse_errors == {1: (0,)}
        assert state.selected_row is None

    def test_delete_row_drops_stale_selectors(self, qty_store):
        """Selectors for rows past the new end leave the cache."""
        cache = qty_store.cache
        first = cache.row_parse_errors(0)
        cache.cell_validation(2, 0)
        cache.is_row_selected(1)
        assert len(cache) == 4
        qty_store.delete_row(0)
        assert len(cache) == 2
        assert cache.row_parse_errors(0) is first

    def test_delete_last_value_marks_column_empty(self):
        """Removing the only value makes the column empty."""
        store = DatasetStore()
        store.load(["A"], [["x"], [""]])
        store.delete_row(0)
        assert store.state.validation.empty_columns == (0,)

    def test_delete_bad_row(self, qty_store):
        """Deleting a missing row raises."""
        with pytest.raises(CellIndexError):
            qty_store.delete_row(3)


class TestViewConfiguration:
    """Tests for filters, sorting, aggregation and selection."""

    def test_set_column_filter_and_clear(self, qty_store):
        """Per-column filters replace earlier ones; no conditions removes the filter."""
        qty_store.set_column_filter("c1", [{"operator": "less_than", "value": 0}])
        assert qty_store.visible_view().rows == (("-50",),)
        qty_store.set_column_filter("c1", [])
        assert qty_store.state.filters == ()
        qty_store.set_filters([ColumnFilter(column_id="c1", conditions=[FilterCondition(operator="is_empty")])])
        qty_store.clear_filters()
        assert qty_store.visible_view().row_indices == (0, 1, 2)

    def test_filter_on_unknown_column(self, qty_store):
        """set_column_filter checks the column; set_filters keeps unknown ids."""
        with pytest.raises(ColumnNotFoundError):
            qty_store.set_column_filter("nope", [])
        qty_store.set_filters([{"column_id": "nope", "conditions": [{"operator": "is_empty"}]}])
        assert qty_store.visible_view().row_indices == (0, 1, 2)

    def test_validate_filter_condition(self, qty_store):
        """Messages use the store's formats."""
        condition = FilterCondition(operator="between", value="1,000", value_end="2,000")
        assert qty_store.validate_filter_condition("c1", condition) is None
        reversed_range = FilterCondition(operator="between", value="2,000", value_end="1,000")
        assert (
            qty_store.validate_filter_condition("c1", reversed_range)
            == "Start must be less than or equal to end."
        )

    def test_sort_levels_stay_unique(self, sales_store):
        """Editing levels never produces two levels on one column."""
        sales_store.set_sort([SortLevel(column_id="region"), SortLevel(column_id="amount", direction="desc")])
        sales_store.update_sort_level(0, {"column_id": "amount"})
        assert sales_store.state.sort_levels == (
            SortLevel(column_id="amount"),
            SortLevel(column_id="region", direction="desc"),
        )
        sales_store.add_sort_level()
        assert [lvl.column_id for lvl in sales_store.state.sort_levels] == ["amount", "region", "date"]
        sales_store.add_sort_level()
        assert len(sales_store.state.sort_levels) == 3
        sales_store.move_sort_level(2, "up")
        sales_store.remove_sort_level(0)
        assert [lvl.column_id for lvl in sales_store.state.sort_levels] == ["date", "region"]

    def test_set_sort_drops_repeats(self, sales_store):
        """Repeated columns keep their first level."""
        sales_store.set_sort([{"column_id": "region"}, {"column_id": "region", "direction": "desc"}])
        assert sales_store.state.sort_levels == (SortLevel(column_id="region"),)

    def test_inactive_aggregation_is_cleared(self, sales_store):
        """An empty spec means no aggregation."""
        sales_store.set_aggregation({"group_by": [], "metrics": []})
        assert sales_store.state.aggregation is None

    def test_pivot_replaces_aggregation(self, sales_store):
        """A pivot is shown instead of the aggregation, which returns once the pivot is cleared."""
        sales_store.set_aggregation({"group_by": ["region"], "metrics": [{"type": "count"}]})
        sales_store.set_pivot({"rows": ["region"], "values": [{"type": "sum", "column_id": "amount"}]})
        view = sales_store.visible_view()
        assert isinstance(view.aggregated, PivotView)
        assert view.rows == (("North", 2000.0), ("South", 500.0))
        assert [c.name for c in view.columns] == ["Region", "Sum of Amount"]

        sales_store.set_pivot(None)
        view = sales_store.visible_view()
        assert not isinstance(view.aggregated, PivotView)
        assert view.rows == (("North", 3), ("South", 2))

    def test_pivot_runs_after_filters(self, sales_store):
        """Only filtered rows reach the pivot."""
        sales_store.set_column_filter("region", [FilterCondition(operator="equals", value="South")])
        sales_store.set_pivot({"columns": ["region"], "values": [{"type": "count"}]})
        assert sales_store.visible_view().rows == ((2,),)

    def test_inactive_pivot_is_cleared(self, sales_store):
        """An empty pivot spec is stored as None and commits nothing new."""
        sales_store.set_pivot(PivotSpec())
        assert sales_store.state.pivot is None

    def test_select_bad_row(self, qty_store):
        """Selecting a missing row raises."""
        with pytest.raises(CellIndexError):
            qty_store.select_row(5)


class TestFormats:
    """Tests for dataset format changes."""

    def test_number_format_revalidates_number_columns(self):
        """Changing separators re-parses number cells."""
        store = DatasetStore(number_format=NumberFormat())
        store.load([Column(id="n", name="N", type="number")], [["1.234.567"], ["2,5"]])
        assert store.state.validation.parse_errors == {0: (0,)}
        store.set_number_format({"thousands_separator": ".", "decimal_separator": ","})
        assert store.state.validation.parse_errors == {}

    def test_date_format_revalidates_date_columns(self):
        """Changing the date pattern re-parses date cells without their own pattern."""
        store = DatasetStore(date_format="DD/MM/YYYY")
        store.load(
            [
                Column(id="d", name="D", type="date"),
                Column(id="own", name="Own", type="date", date_format="YYYY"),
            ],
            [["03/15/2024", "2024"]],
        )
        assert store.state.validation.parse_errors == {0: (0,)}
        store.set_date_format("MM/DD/YYYY")
        assert store.state.validation.parse_errors == {}
        assert store.state.date_format == "MM/DD/YYYY"

    def test_date_format_without_tokens(self, qty_store):
        """Patterns need at least one date token."""
        with pytest.raises(FormatConfigError):
            qty_store.set_date_format("abc")

    def test_same_separators_are_rejected(self, qty_store):
        """Identical thousands and decimal separators are invalid."""
        with pytest.raises(FormatConfigError):
            qty_store.set_number_format({"thousands_separator": ",", "decimal_separator": ","})

    def test_revalidate_matches_incremental_state(self, sales_store):
        """A full rescan agrees with incrementally maintained validation."""
        sales_store.edit_cell(0, "amount", "zzz")
        sales_store.insert_row(2, ["West", "", "bad date"])
        sales_store.delete_row(1)
        before = sales_store.state
        assert sales_store.revalidate() is before
        assert sales_store.empty_column_indices() == before.validation.empty_columns


class TestSubscriptions:
    """Tests for commit notifications."""

    def test_listener_receives_reason(self, qty_store):
        """Listeners get the new state and the change reason."""
        events = []
        unsubscribe = qty_store.subscribe(lambda state, reason: events.append((reason, state)))
        qty_store.select_row(1)
        assert events == [("select_row", qty_store.state)]
        unsubscribe()
        qty_store.select_row(0)
        assert len(events) == 1

    def test_no_op_does_not_notify(self, qty_store):
        """Unchanged state is not committed."""
        events = []
        qty_store.subscribe(lambda state, reason: events.append(reason))
        qty_store.set_filters([])
        qty_store.select_row(None)
        assert events == []

    def test_failing_listener_is_logged(self, qty_store, caplog):
        """A listener error does not stop the others."""
        seen = []

        def broken(state, reason):
            raise RuntimeError("boom")

        qty_store.subscribe(broken)
        qty_store.subscribe(lambda state, reason: seen.append(reason))
        with caplog.at_level(logging.ERROR, logger="datasheet"):
            qty_store.select_row(0)
        assert seen == ["select_row"]
        assert "Listener failed while handling 'select_row'" in caplog.text

    def test_unsubscribe_unknown(self, qty_store):
        """Removing an unknown listener reports False."""
        assert qty_store.unsubscribe(print) is False


class TestExport:
    """Tests for display tables and CSV output."""

    def test_csv(self, qty_store):
        """Every field is quoted; values use display formatting."""
        assert qty_store.to_csv() == '"Qty"\n"1,234"\n"-50"\n"abc"\n'

    def test_visible_table_follows_view(self, qty_store):
        """The exported table reflects the filtered, sorted view."""
        qty_store.set_sort([SortLevel(column_id="c1", direction="desc")])
        headers, rows = qty_store.to_display_table()
        assert headers == ["Qty"]
        assert rows == [["abc"], ["1,234"], ["-50"]]
        _, source = qty_store.to_display_table(visible=False)
        assert source == [["1,234"], ["-50"], ["abc"]]


class TestFromDataFrame:
    """Tests for loading pandas DataFrames."""

    def test_from_dataframe(self):
        """Dtypes map to column types and cells become plain values."""
        pd = pytest.importorskip("pandas")
        frame = pd.DataFrame(
            {
                "when": pd.to_datetime(["2024-03-01", "2024-03-02 10:30:00"]),
                "qty": [1, 2],
                "price": [1.5, None],
                "code": ["007", "010"],
                "name": ["a", "b"],
            }
        )
        store = DatasetStore.from_dataframe(frame)
        state = store.state
        assert [c.name for c in state.columns] == ["when", "qty", "price", "code", "name"]
        assert [c.type for c in state.columns] == [
            ColumnType.DATE,
            ColumnType.NUMBER,
            ColumnType.NUMBER,
            ColumnType.TEXT,
            ColumnType.TEXT,
        ]
        assert state.rows[0] == ("2024-03-01", 1, 1.5, "007", "a")
        assert state.rows[1] == ("2024-03-02T10:30:00", 2, None, "010", "b")
        assert state.validation.parse_errors == {}
