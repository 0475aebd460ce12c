"""Validation engine: duplicate names, empty columns and cell parse errors.

Validation is advisory. Nothing here raises or blocks an edit; results
are flags the grid uses for highlighting. Parse errors are kept in a
row -> column-indices map that can be updated one cell at a time, so a
single edit never triggers a full rescan.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from .formatting import is_blank, parse_date_cell, parse_number
from .log import debug
from .models import ColumnType, DuplicateColumns, NumberFormat, ValidationState


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .models import Column


ParseErrors = dict[int, tuple[int, ...]]


def cell_value(row: Sequence[Any], index: int) -> Any:
    """Return a cell, treating cells past the end of a short row as empty."""
    return row[index] if index < len(row) else None


def column_date_format(column: Column, date_format: str | None) -> str | None:
    """Return the pattern a date column is parsed with."""
    return column.date_format or date_format


def cell_has_parse_error(
    value: Any,
    column: Column,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> bool:
    """Check whether a cell fails to parse under its column's declared type.

    Blank cells and text columns never carry parse errors.
    """
    if is_blank(value) or column.type is ColumnType.TEXT:
        return False
    if column.type is ColumnType.NUMBER:
        return parse_number(value, number_format) is None
    return parse_date_cell(value, column_date_format(column, date_format), number_format) is None


def find_duplicate_columns(columns: Sequence[Column]) -> DuplicateColumns:
    """Find column names used by more than one column.

    Names compare exactly: case, surrounding spaces and blank names all
    count, so two unnamed columns collide and "Qty" differs from "Qty ".
    """
    names = [col.name for col in columns]
    counts = Counter(names)
    duplicate_names = tuple(dict.fromkeys(name for name in names if counts[name] > 1))
    indices = tuple(i for i, name in enumerate(names) if counts[name] > 1)
    return DuplicateColumns(duplicate_names=duplicate_names, duplicate_column_indices=indices)


def is_column_empty(rows: Iterable[Sequence[Any]], index: int) -> bool:
    """True when no row has a non-blank value at ``index``."""
    return all(is_blank(cell_value(row, index)) for row in rows)


def find_empty_columns(columns: Sequence[Column], rows: Sequence[Sequence[Any]]) -> tuple[int, ...]:
    """Return indices of columns where every value is blank."""
    non_empty: set[int] = set()
    width = len(columns)
    for row in rows:
        for index in range(min(width, len(row))):
            if index not in non_empty and not is_blank(row[index]):
                non_empty.add(index)
        if len(non_empty) == width:
            break
    return tuple(i for i in range(width) if i not in non_empty)


def find_parse_errors(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> ParseErrors:
    """Scan every typed cell and map row index -> failing column indices."""
    typed = [i for i, col in enumerate(columns) if col.type is not ColumnType.TEXT]
    errors: ParseErrors = {}
    if not typed:
        return errors
    for row_index, row in enumerate(rows):
        failing = tuple(
            i
            for i in typed
            if cell_has_parse_error(cell_value(row, i), columns[i], number_format, date_format)
        )
        if failing:
            errors[row_index] = failing
    return errors


def update_parse_error(errors: Mapping[int, tuple[int, ...]], row: int, column: int, has_error: bool) -> ParseErrors:
    """Add or remove one cell's entry, returning a new map.

    Entries for other rows are carried over untouched. When nothing
    changes the input mapping is returned as-is.
    """
    current = errors.get(row, ())
    if has_error == (column in current):
        return errors if isinstance(errors, dict) else dict(errors)
    updated = dict(errors)
    if has_error:
        updated[row] = tuple(sorted((*current, column)))
    else:
        remaining = tuple(c for c in current if c != column)
        if remaining:
            updated[row] = remaining
        else:
            del updated[row]
    return updated


def recheck_columns(
    errors: Mapping[int, tuple[int, ...]],
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    column_indices: Iterable[int],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> ParseErrors:
    """Re-evaluate the given columns only, e.g. after a type change.

    Rows whose error set does not change keep their existing tuple.
    """
    targets = set(column_indices)
    updated: ParseErrors = {}
    for row_index, row in enumerate(rows):
        current = errors.get(row_index, ())
        kept = [c for c in current if c not in targets]
        fresh = [
            c
            for c in targets
            if c < len(columns)
            and cell_has_parse_error(cell_value(row, c), columns[c], number_format, date_format)
        ]
        merged = tuple(sorted(kept + fresh))
        if merged == current:
            if current:
                updated[row_index] = current
        elif merged:
            updated[row_index] = merged
    return updated


def shift_parse_errors(errors: Mapping[int, tuple[int, ...]], start: int, delta: int) -> ParseErrors:
    """Re-key rows at or after ``start`` by ``delta`` (row insert/delete).

    With a negative delta the row at ``start`` is the deleted one and its
    entry is dropped.
    """
    shifted: ParseErrors = {}
    for row_index, cols in errors.items():
        if row_index < start:
            shifted[row_index] = cols
        elif delta < 0 and row_index < start - delta:
            continue
        else:
            shifted[row_index + delta] = cols
    return shifted


def remove_column_from_errors(errors: Mapping[int, tuple[int, ...]], column: int) -> ParseErrors:
    """Drop a deleted column and re-index the columns to its right."""
    updated: ParseErrors = {}
    for row_index, cols in errors.items():
        remaining = tuple(c if c < column else c - 1 for c in cols if c != column)
        if remaining:
            updated[row_index] = remaining
    return updated


def validate_dataset(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> ValidationState:
    """Compute the full validation state for a dataset."""
    state = ValidationState.model_construct(
        duplicate_columns=find_duplicate_columns(columns),
        empty_columns=find_empty_columns(columns, rows),
        parse_errors=find_parse_errors(columns, rows, number_format, date_format),
    )
    debug(
        f"Validated {len(rows)} rows x {len(columns)} columns: "
        f"{len(state.duplicate_columns.duplicate_names)} duplicate names, "
        f"{len(state.empty_columns)} empty columns, {len(state.parse_errors)} rows with parse errors"
    )
    return state


def revalidate_cell(
    state: ValidationState,
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    row: int,
    column: int,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> ValidationState:
    """Update validation after one cell edit.

    Only the edited cell's parse entry and the edited column's emptiness
    are re-evaluated; duplicate names cannot change from a cell edit.
    """
    value = cell_value(rows[row], column)
    errors = update_parse_error(
        state.parse_errors,
        row,
        column,
        cell_has_parse_error(value, columns[column], number_format, date_format),
    )

    empty = state.empty_columns
    was_empty = column in empty
    if was_empty and not is_blank(value):
        empty = tuple(c for c in empty if c != column)
    elif not was_empty and is_blank(value) and is_column_empty(rows, column):
        empty = tuple(sorted((*empty, column)))

    if errors is state.parse_errors and empty is state.empty_columns:
        return state
    return state.model_copy(update={"parse_errors": errors, "empty_columns": empty})
