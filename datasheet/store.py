"""Dataset store: one explicit state object and one commit point.

``DatasetState`` is an immutable snapshot of everything the grid needs:
columns, rows, filter/sort/aggregation/pivot configuration, validation flags,
selection and locale formats. ``DatasetStore`` owns the current snapshot
and routes every logical change (cell edit, column rename, type change,
format change, row insert/delete) through ``_commit``, so validation is
always refreshed in the same place and subscribers are notified once per
change.

Usage:
    store = DatasetStore()
    store.load(
        [Column(id="c1", name="Qty", type="number")],
        [["1,234"], ["-50"], ["abc"]],
    )
    store.state.validation.parse_errors   # {2: (0,)}
    store.set_filters([ColumnFilter(column_id="c1", conditions=[
        FilterCondition(operator="greater_than", value=0),
    ])])
    store.visible_view().rows            # (("1,234",),)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

from .config import get_settings
from .detection import apply_detected_types, detect_column_formats, detect_dataframe_types
from .exceptions import CellIndexError, ColumnNotFoundError, DatasheetError, FormatConfigError
from .export import to_csv, to_display_table
from .filters import resolve_operator, validate_condition
from .formatting import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_NUMBER_FORMAT,
    has_date_tokens,
    is_blank,
)
from .log import debug, exception, info, warn
from .models import (
    AggregationSpec,
    Column,
    ColumnFilter,
    ColumnType,
    FilterCondition,
    NumberFormat,
    PivotSpec,
    SortLevel,
    ValidationState,
)
from .selectors import DerivedStateCache
from .sorting import (
    add_sort_level,
    move_sort_level,
    normalize_sort_levels,
    remove_sort_level,
    update_sort_level,
)
from .validation import (
    column_date_format,
    find_duplicate_columns,
    find_empty_columns,
    is_column_empty,
    recheck_columns,
    remove_column_from_errors,
    revalidate_cell,
    shift_parse_errors,
    validate_dataset,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .selectors import VisibleView


Row = tuple[Any, ...]


@dataclass(frozen=True)
class DatasetState:
    """Immutable snapshot of a loaded dataset and its view configuration.

    Attributes
    ----------
    columns : tuple[Column, ...]
        Column metadata in display order.
    rows : tuple[tuple[Any, ...], ...]
        Raw cell values; every row has exactly ``len(columns)`` cells.
    filters : tuple[ColumnFilter, ...]
        Active filters, combined with AND.
    sort_levels : tuple[SortLevel, ...]
        Sort levels in priority order; never two on the same column.
    aggregation : AggregationSpec or None
        Group-by and metrics, or None for the raw view.
    pivot : PivotSpec or None
        Pivot dimensions and values; when set it replaces aggregation.
    validation : ValidationState
        Duplicate names, empty columns and cell parse errors.
    selected_row, selected_column : int or None
        Current selection in source coordinates.
    number_format : NumberFormat
        Dataset separators.
    date_format : str
        Dataset date pattern; columns may override it.
    """

    columns: tuple[Column, ...] = ()
    rows: tuple[Row, ...] = ()
    filters: tuple[ColumnFilter, ...] = ()
    sort_levels: tuple[SortLevel, ...] = ()
    aggregation: AggregationSpec | None = None
    pivot: PivotSpec | None = None
    validation: ValidationState = field(default_factory=ValidationState)
    selected_row: int | None = None
    selected_column: int | None = None
    number_format: NumberFormat = DEFAULT_NUMBER_FORMAT
    date_format: str = DEFAULT_DATE_FORMAT

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)


def _as_column(value: Column | dict[str, Any] | str) -> Column:
    if isinstance(value, Column):
        return value
    if isinstance(value, str):
        return Column(name=value)
    return Column.model_validate(value)


def normalize_rows(rows: Iterable[Sequence[Any]], width: int) -> tuple[tuple[Row, ...], int]:
    """Pad short rows with empty cells and truncate long ones.

    Returns
    -------
    tuple
        The normalized rows and how many rows had the wrong length.
    """
    normalized: list[Row] = []
    mismatched = 0
    for row in rows:
        cells = tuple(row)
        if len(cells) != width:
            mismatched += 1
            cells = cells[:width] + (None,) * (width - len(cells))
        normalized.append(cells)
    return tuple(normalized), mismatched


def _dataframe_cell(value: Any) -> Any:
    """Convert a pandas cell to a plain Python value."""
    import pandas as pd  # type: ignore[import-untyped]

    if value is None:
        return None
    if not isinstance(value, (list, tuple, dict)) and pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        stamp = value.to_pydatetime().replace(tzinfo=None)
        if stamp.hour == stamp.minute == stamp.second == 0 and not stamp.microsecond:
            return stamp.date().isoformat()
        return stamp.isoformat(timespec="seconds")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value


class DatasetStore:
    """Owns the current DatasetState and applies every change to it.

    Parameters
    ----------
    number_format : NumberFormat, optional
        Initial separators; defaults to the ``format`` settings.
    date_format : str, optional
        Initial date pattern; defaults to the ``format`` settings.
    """

    def __init__(
        self,
        number_format: NumberFormat | None = None,
        date_format: str | None = None,
    ) -> None:
        settings = get_settings()
        if number_format is None:
            number_format = NumberFormat(
                thousands_separator=settings.format.thousands_separator,
                decimal_separator=settings.format.decimal_separator,
            )
        self._defaults = (number_format, date_format or settings.format.date_format)
        self._state = DatasetState(number_format=number_format, date_format=self._defaults[1])
        self._listeners: list[Callable[[DatasetState, str], None]] = []
        self.cache = DerivedStateCache()

    @property
    def state(self) -> DatasetState:
        """The current snapshot."""
        return self._state

    # --- Commit / subscription ---

    def subscribe(self, listener: Callable[[DatasetState, str], None]) -> Callable[[], None]:
        """Register ``listener(state, reason)``; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Callable[[DatasetState, str], None]) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def _commit(self, new_state: DatasetState, reason: str) -> DatasetState:
        """Install ``new_state`` and notify listeners.

        Listener failures are logged and do not stop other listeners.
        """
        if new_state is self._state:
            return new_state
        self._state = new_state
        debug(f"Commit: {reason}")
        for listener in list(self._listeners):
            try:
                listener(new_state, reason)
            except Exception:
                exception(f"Listener failed while handling '{reason}'")
        return new_state

    # --- Lookup helpers ---

    def column_index(self, column: int | str) -> int:
        """Resolve a column id or index to an index.

        Raises
        ------
        ColumnNotFoundError
            If the id is unknown.
        CellIndexError
            If the index is out of range.
        """
        columns = self._state.columns
        if isinstance(column, int):
            if not 0 <= column < len(columns):
                raise CellIndexError(f"Column index {column} is out of range", column=column)
            return column
        for index, col in enumerate(columns):
            if col.id == column:
                return index
        raise ColumnNotFoundError(f"Unknown column '{column}'", column_id=column)

    def column(self, column: int | str) -> Column:
        return self._state.columns[self.column_index(column)]

    def _check_row(self, row: int) -> None:
        if not 0 <= row < len(self._state.rows):
            raise CellIndexError(f"Row index {row} is out of range", row=row)

    def _date_pattern(self, column: Column) -> str | None:
        return column_date_format(column, self._state.date_format)

    # --- Dataset lifecycle ---

    def load(
        self,
        columns: Sequence[Column | dict[str, Any] | str],
        rows: Iterable[Sequence[Any]],
        number_format: NumberFormat | None = None,
        date_format: str | None = None,
        detect: bool = False,
    ) -> DatasetState:
        """Replace the dataset and reset filters, sorting and selection.

        Parameters
        ----------
        columns : sequence
            Column models, dicts, or plain names (text columns).
        rows : iterable of rows
            Raw cell values. Rows of the wrong length are padded or
            truncated to the column count, with a single warning.
        number_format, date_format : optional
            Override the store's formats for this dataset.
        detect : bool
            Classify column types (and adopt detected formats) from the
            first rows, using the ``detection`` settings.
        """
        cols = [_as_column(c) for c in columns]
        normalized, mismatched = normalize_rows(rows, len(cols))
        if mismatched:
            warn(
                f"{mismatched} row(s) did not have {len(cols)} cells and were padded or truncated"
            )

        nf = number_format or self._state.number_format
        df = date_format or self._state.date_format
        if detect:
            detection = get_settings().detection
            result = detect_column_formats(
                normalized, detection.sample_rows, detection.column_type_confidence
            )
            cols = apply_detected_types(cols, result, detection.column_type_confidence)
            if number_format is None and result.number_format_confidence > detection.format_confidence:
                nf = result.number_format
            if date_format is None and result.date_format_confidence > detection.format_confidence:
                df = result.date_format

        if not has_date_tokens(df):
            raise FormatConfigError(f"Date format {df!r} has no date tokens", setting="date_format")

        columns_tuple = tuple(cols)
        state = DatasetState(
            columns=columns_tuple,
            rows=normalized,
            validation=validate_dataset(columns_tuple, normalized, nf, df),
            number_format=nf,
            date_format=df,
        )
        self.cache.clear()
        info(f"Loaded dataset with {len(normalized)} rows and {len(cols)} columns")
        return self._commit(state, "load")

    @classmethod
    def from_dataframe(cls, data: Any, **kwargs: Any) -> DatasetStore:
        """Create a store from a pandas DataFrame.

        Column types come from the dtypes; timestamps become ISO strings
        and missing values become empty cells. Keyword arguments go to
        the store constructor.
        """
        types = detect_dataframe_types(data)
        columns = [
            Column(name=str(name), type=types.get(str(name), ColumnType.TEXT))
            for name in data.columns
        ]
        rows = [
            tuple(_dataframe_cell(v) for v in record)
            for record in data.itertuples(index=False, name=None)
        ]
        store = cls(**kwargs)
        store.load(columns, rows)
        return store

    def close(self) -> DatasetState:
        """Drop the dataset and every derived selector."""
        self.cache.clear()
        nf, df = self._defaults
        return self._commit(DatasetState(number_format=nf, date_format=df), "close")

    # --- Cell edits ---

    def edit_cell(self, row: int, column: int | str, value: Any) -> DatasetState:
        """Set one cell and revalidate only that cell."""
        self._check_row(row)
        col = self.column_index(column)
        state = self._state
        current = state.rows[row]
        if current[col] == value and type(current[col]) is type(value):
            return state
        new_row = current[:col] + (value,) + current[col + 1 :]
        rows = state.rows[:row] + (new_row,) + state.rows[row + 1 :]
        validation = revalidate_cell(
            state.validation,
            state.columns,
            rows,
            row,
            col,
            state.number_format,
            state.date_format,
        )
        return self._commit(replace(state, rows=rows, validation=validation), "edit_cell")

    # --- Column edits ---

    def _replace_column(self, index: int, column: Column) -> tuple[Column, ...]:
        columns = self._state.columns
        return columns[:index] + (column,) + columns[index + 1 :]

    def rename_column(self, column: int | str, name: str) -> DatasetState:
        """Rename a column; only duplicate-name detection is recomputed."""
        index = self.column_index(column)
        state = self._state
        if state.columns[index].name == name:
            return state
        columns = self._replace_column(index, state.columns[index].model_copy(update={"name": name}))
        validation = state.validation.model_copy(
            update={"duplicate_columns": find_duplicate_columns(columns)}
        )
        return self._commit(replace(state, columns=columns, validation=validation), "rename_column")

    def change_column_type(
        self,
        column: int | str,
        column_type: ColumnType | str,
        date_format: str | None = None,
    ) -> DatasetState:
        """Change a column's declared type.

        Parse errors are recomputed for that column only, and filter
        conditions whose operator does not exist for the new type are
        dropped.
        """
        index = self.column_index(column)
        state = self._state
        new_type = ColumnType(column_type.lower() if isinstance(column_type, str) else column_type)
        old = state.columns[index]
        update: dict[str, Any] = {"type": new_type}
        if date_format is not None:
            if not has_date_tokens(date_format):
                raise FormatConfigError(
                    f"Date format {date_format!r} has no date tokens", setting="date_format"
                )
            update["date_format"] = date_format
        updated = old.model_copy(update=update)
        if updated == old:
            return state
        columns = self._replace_column(index, updated)
        errors = recheck_columns(
            state.validation.parse_errors,
            columns,
            state.rows,
            [index],
            state.number_format,
            state.date_format,
        )

        filters = []
        for flt in state.filters:
            if flt.column_id != updated.id:
                filters.append(flt)
                continue
            kept = tuple(c for c in flt.conditions if resolve_operator(new_type, c.operator))
            if len(kept) != len(flt.conditions):
                warn(
                    f"Dropped {len(flt.conditions) - len(kept)} filter condition(s) on "
                    f"'{updated.name}' not available for {new_type.value} columns"
                )
            if kept:
                filters.append(flt.model_copy(update={"conditions": kept}))

        validation = state.validation.model_copy(update={"parse_errors": errors})
        return self._commit(
            replace(state, columns=columns, validation=validation, filters=tuple(filters)),
            "change_column_type",
        )

    def resize_column(self, column: int | str, width: int) -> DatasetState:
        """Set a column's width, clamped to the configured minimum."""
        index = self.column_index(column)
        width = max(int(width), get_settings().grid.min_column_width)
        state = self._state
        if state.columns[index].width == width:
            return state
        columns = self._replace_column(index, state.columns[index].model_copy(update={"width": width}))
        return self._commit(replace(state, columns=columns), "resize_column")

    def add_column(
        self,
        name: str = "",
        column_type: ColumnType | str = ColumnType.TEXT,
        index: int | None = None,
        column_id: str | None = None,
    ) -> DatasetState:
        """Insert an empty column (appended by default)."""
        state = self._state
        position = len(state.columns) if index is None else index
        if not 0 <= position <= len(state.columns):
            raise CellIndexError(f"Column index {position} is out of range", column=position)
        kwargs: dict[str, Any] = {
            "name": name,
            "type": column_type,
            "width": get_settings().grid.default_column_width,
        }
        if column_id is not None:
            if any(col.id == column_id for col in state.columns):
                raise DatasheetError(f"Column id '{column_id}' already exists", column_id=column_id)
            kwargs["id"] = column_id
        new_column = Column(**kwargs)
        columns = state.columns[:position] + (new_column,) + state.columns[position:]
        rows = tuple(row[:position] + (None,) + row[position:] for row in state.rows)

        errors = {
            r: tuple(c + 1 if c >= position else c for c in cols)
            for r, cols in state.validation.parse_errors.items()
        }
        empty = tuple(
            sorted([c + 1 if c >= position else c for c in state.validation.empty_columns] + [position])
        )
        validation = ValidationState.model_construct(
            duplicate_columns=find_duplicate_columns(columns),
            empty_columns=empty,
            parse_errors=errors,
        )
        selected = state.selected_column
        if selected is not None and selected >= position:
            selected += 1
        return self._commit(
            replace(
                state,
                columns=columns,
                rows=rows,
                validation=validation,
                selected_column=selected,
            ),
            "add_column",
        )

    def delete_column(self, column: int | str) -> DatasetState:
        """Remove a column and every filter, sort level, group-by and pivot entry on it."""
        index = self.column_index(column)
        state = self._state
        removed = state.columns[index]
        columns = state.columns[:index] + state.columns[index + 1 :]
        rows = tuple(row[:index] + row[index + 1 :] for row in state.rows)

        validation = ValidationState.model_construct(
            duplicate_columns=find_duplicate_columns(columns),
            empty_columns=tuple(
                c - 1 if c > index else c for c in state.validation.empty_columns if c != index
            ),
            parse_errors=remove_column_from_errors(state.validation.parse_errors, index),
        )
        filters = tuple(f for f in state.filters if f.column_id != removed.id)
        levels = tuple(lvl for lvl in state.sort_levels if lvl.column_id != removed.id)
        aggregation = state.aggregation
        if aggregation is not None:
            aggregation = aggregation.model_copy(
                update={
                    "group_by": tuple(g for g in aggregation.group_by if g.column_id != removed.id),
                    "metrics": tuple(m for m in aggregation.metrics if m.column_id != removed.id),
                }
            )
            if not aggregation.is_active:
                aggregation = None
        pivot = state.pivot
        if pivot is not None:
            pivot = pivot.model_copy(
                update={
                    "rows": tuple(d for d in pivot.rows if d.column_id != removed.id),
                    "columns": tuple(d for d in pivot.columns if d.column_id != removed.id),
                    "values": tuple(v for v in pivot.values if v.column_id != removed.id),
                }
            )
            if not pivot.is_active:
                pivot = None

        selected = state.selected_column
        if selected == index:
            selected = None
        elif selected is not None and selected > index:
            selected -= 1
        new_state = self._commit(
            replace(
                state,
                columns=columns,
                rows=rows,
                validation=validation,
                filters=filters,
                sort_levels=levels,
                aggregation=aggregation,
                pivot=pivot,
                selected_column=selected,
            ),
            "delete_column",
        )
        self.cache.prune(new_state.row_count, new_state.column_count, {c.id for c in columns})
        return new_state

    # --- Row edits ---

    def insert_row(self, index: int | None = None, values: Sequence[Any] | None = None) -> DatasetState:
        """Insert a row (appended by default); missing cells are empty."""
        state = self._state
        position = len(state.rows) if index is None else index
        if not 0 <= position <= len(state.rows):
            raise CellIndexError(f"Row index {position} is out of range", row=position)
        (new_row,), mismatched = normalize_rows([values or ()], len(state.columns))
        if mismatched and values:
            warn(f"Inserted row had {len(values)} cells; expected {len(state.columns)}")
        rows = state.rows[:position] + (new_row,) + state.rows[position:]

        errors = self._errors_with_row(
            shift_parse_errors(state.validation.parse_errors, position, 1), position, new_row
        )
        empty = tuple(c for c in state.validation.empty_columns if is_blank(new_row[c]))

        selected = state.selected_row
        if selected is not None and selected >= position:
            selected += 1
        validation = state.validation.model_copy(update={"parse_errors": errors, "empty_columns": empty})
        return self._commit(
            replace(state, rows=rows, validation=validation, selected_row=selected), "insert_row"
        )

    def _errors_with_row(
        self, errors: dict[int, tuple[int, ...]], position: int, row: Row
    ) -> dict[int, tuple[int, ...]]:
        fresh = recheck_columns(
            {},
            self._state.columns,
            (row,),
            range(len(self._state.columns)),
            self._state.number_format,
            self._state.date_format,
        )
        if 0 in fresh:
            errors = dict(errors)
            errors[position] = fresh[0]
        return errors

    def delete_row(self, index: int) -> DatasetState:
        """Remove a row; later rows and their parse errors move up."""
        self._check_row(index)
        state = self._state
        removed = state.rows[index]
        rows = state.rows[:index] + state.rows[index + 1 :]
        errors = shift_parse_errors(state.validation.parse_errors, index, -1)
        empty = set(state.validation.empty_columns)
        for col, value in enumerate(removed):
            if not is_blank(value) and is_column_empty(rows, col):
                empty.add(col)

        selected = state.selected_row
        if selected == index:
            selected = None
        elif selected is not None and selected > index:
            selected -= 1
        validation = state.validation.model_copy(
            update={"parse_errors": errors, "empty_columns": tuple(sorted(empty))}
        )
        new_state = self._commit(
            replace(state, rows=rows, validation=validation, selected_row=selected), "delete_row"
        )
        self.cache.prune(new_state.row_count, new_state.column_count)
        return new_state

    # --- Filters ---

    def set_filters(self, filters: Sequence[ColumnFilter | dict[str, Any]]) -> DatasetState:
        """Replace all filters. Filters on unknown columns are kept but ignored."""
        parsed = tuple(
            f if isinstance(f, ColumnFilter) else ColumnFilter.model_validate(f) for f in filters
        )
        if parsed == self._state.filters:
            return self._state
        return self._commit(replace(self._state, filters=parsed), "set_filters")

    def set_column_filter(
        self, column_id: str, conditions: Sequence[FilterCondition | dict[str, Any]]
    ) -> DatasetState:
        """Replace the conditions of one column; no conditions removes its filter."""
        self.column_index(column_id)
        parsed = tuple(
            c if isinstance(c, FilterCondition) else FilterCondition.model_validate(c)
            for c in conditions
        )
        others = [f for f in self._state.filters if f.column_id != column_id]
        if parsed:
            others.append(ColumnFilter(column_id=column_id, conditions=parsed))
        return self.set_filters(others)

    def clear_filters(self) -> DatasetState:
        return self.set_filters(())

    def validate_filter_condition(self, column_id: str, condition: FilterCondition) -> str | None:
        """Check a condition against a column; returns a message or None."""
        column = self.column(column_id)
        return validate_condition(
            column.type, condition, self._state.number_format, self._date_pattern(column)
        )

    # --- Sorting ---

    def set_sort(self, levels: Sequence[SortLevel | dict[str, Any]]) -> DatasetState:
        """Replace the sort levels; repeated columns keep only their first level."""
        parsed = tuple(
            lvl if isinstance(lvl, SortLevel) else SortLevel.model_validate(lvl) for lvl in levels
        )
        normalized = normalize_sort_levels(parsed)
        if normalized == self._state.sort_levels:
            return self._state
        return self._commit(replace(self._state, sort_levels=normalized), "set_sort")

    def add_sort_level(self) -> DatasetState:
        return self.set_sort(add_sort_level(self._state.sort_levels, self._state.columns))

    def update_sort_level(self, index: int, level: SortLevel | dict[str, Any]) -> DatasetState:
        """Edit one level; moving onto a used column swaps the two levels."""
        updated = level if isinstance(level, SortLevel) else SortLevel.model_validate(level)
        return self.set_sort(update_sort_level(self._state.sort_levels, index, updated))

    def remove_sort_level(self, index: int) -> DatasetState:
        return self.set_sort(remove_sort_level(self._state.sort_levels, index))

    def move_sort_level(self, index: int, direction: Literal["up", "down"]) -> DatasetState:
        return self.set_sort(move_sort_level(self._state.sort_levels, index, direction))

    # --- Aggregation and pivot ---

    def set_aggregation(self, spec: AggregationSpec | dict[str, Any] | None) -> DatasetState:
        """Set or clear (``None``) the aggregation spec."""
        if spec is not None and not isinstance(spec, AggregationSpec):
            spec = AggregationSpec.model_validate(spec)
        if spec is not None and not spec.is_active:
            spec = None
        if spec == self._state.aggregation:
            return self._state
        return self._commit(replace(self._state, aggregation=spec), "set_aggregation")

    def set_pivot(self, spec: PivotSpec | dict[str, Any] | None) -> DatasetState:
        """Set or clear (``None``) the pivot spec.

        While a pivot is set the visible view is the pivot table and any
        aggregation spec is kept but not applied.
        """
        if spec is not None and not isinstance(spec, PivotSpec):
            spec = PivotSpec.model_validate(spec)
        if spec is not None and not spec.is_active:
            spec = None
        if spec == self._state.pivot:
            return self._state
        return self._commit(replace(self._state, pivot=spec), "set_pivot")

    # --- Selection ---

    def select_row(self, row: int | None) -> DatasetState:
        if row is not None:
            self._check_row(row)
        if row == self._state.selected_row:
            return self._state
        return self._commit(replace(self._state, selected_row=row), "select_row")

    def select_column(self, column: int | str | None) -> DatasetState:
        index = None if column is None else self.column_index(column)
        if index == self._state.selected_column:
            return self._state
        return self._commit(replace(self._state, selected_column=index), "select_column")

    # --- Formats ---

    def set_number_format(self, number_format: NumberFormat | dict[str, Any]) -> DatasetState:
        """Change separators; only number columns are revalidated."""
        if not isinstance(number_format, NumberFormat):
            number_format = NumberFormat.model_validate(number_format)
        state = self._state
        if number_format == state.number_format:
            return state
        targets = [i for i, c in enumerate(state.columns) if c.type is ColumnType.NUMBER]
        errors = recheck_columns(
            state.validation.parse_errors,
            state.columns,
            state.rows,
            targets,
            number_format,
            state.date_format,
        )
        validation = state.validation.model_copy(update={"parse_errors": errors})
        return self._commit(
            replace(state, number_format=number_format, validation=validation), "set_number_format"
        )

    def set_date_format(self, date_format: str) -> DatasetState:
        """Change the dataset date pattern.

        Date columns with their own pattern are unaffected and are not
        revalidated.

        Raises
        ------
        FormatConfigError
            If the pattern contains no date tokens.
        """
        if not has_date_tokens(date_format):
            raise FormatConfigError(
                f"Date format {date_format!r} has no date tokens", setting="date_format"
            )
        state = self._state
        if date_format == state.date_format:
            return state
        targets = [
            i
            for i, c in enumerate(state.columns)
            if c.type is ColumnType.DATE and not c.date_format
        ]
        errors = recheck_columns(
            state.validation.parse_errors,
            state.columns,
            state.rows,
            targets,
            state.number_format,
            date_format,
        )
        validation = state.validation.model_copy(update={"parse_errors": errors})
        return self._commit(
            replace(state, date_format=date_format, validation=validation), "set_date_format"
        )

    # --- Readers ---

    def revalidate(self) -> DatasetState:
        """Recompute validation from scratch."""
        state = self._state
        validation = validate_dataset(
            state.columns, state.rows, state.number_format, state.date_format
        )
        if validation == state.validation:
            return state
        return self._commit(replace(state, validation=validation), "revalidate")

    def visible_view(self) -> VisibleView:
        """Filtered, sorted and aggregated view (memoized)."""
        return self.cache.visible_view()(self._state)

    def unique_values(self, column_id: str) -> tuple[str, ...]:
        """Distinct values of a column from the original rows (memoized)."""
        self.column_index(column_id)
        return self.cache.unique_values(column_id)(self._state)

    def empty_column_indices(self) -> tuple[int, ...]:
        """Brute-force empty-column scan, independent of cached validation."""
        return find_empty_columns(self._state.columns, self._state.rows)

    def to_display_table(self, visible: bool = True) -> tuple[list[str], list[list[str]]]:
        """Headers and display strings for export."""
        state = self._state
        if visible:
            view = self.visible_view()
            columns, rows = view.columns, view.rows
        else:
            columns, rows = state.columns, state.rows
        return to_display_table(columns, rows, state.number_format, state.date_format)

    def to_csv(self, visible: bool = True) -> str:
        """CSV text of the (visible) dataset using display strings."""
        headers, rows = self.to_display_table(visible)
        return to_csv(headers, rows)
