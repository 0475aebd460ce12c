"""Sort engine and sort-level editing.

Sorting is stable and multi-level: earlier levels take priority, ties
fall through to the next level and final ties keep the original row
order. The editing helpers keep one invariant: no two levels ever
reference the same column.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from .formatting import is_blank, natural_key, parse_number
from .log import debug, warn
from .models import ColumnType, SortDirection, SortLevel
from .validation import cell_value


if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Column, NumberFormat


def sort_key(value: Any, column_type: ColumnType, number_format: NumberFormat | None = None) -> tuple[Any, ...]:
    """Comparison key for one cell.

    Number columns compare numerically, with unparseable cells after the
    numbers in natural order. Other columns use natural, case-insensitive
    string order so "Item 2" sorts before "Item 10". Blank cells sort
    last in ascending order.
    """
    if is_blank(value):
        return (2,)
    if column_type is ColumnType.NUMBER:
        number = parse_number(value, number_format)
        if number is not None:
            return (0, number)
    return (1, natural_key(value))


def sort_row_indices(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    levels: Sequence[SortLevel],
    number_format: NumberFormat | None = None,
    indices: Sequence[int] | None = None,
) -> list[int]:
    """Return row indices in sorted order.

    Levels referencing unknown columns are skipped. Sorting runs from the
    last level to the first; each pass is stable, so earlier levels end
    up taking priority.
    """
    order = list(range(len(rows))) if indices is None else list(indices)
    positions = {col.id: i for i, col in enumerate(columns)}
    for level in reversed(levels):
        index = positions.get(level.column_id)
        if index is None:
            warn(f"Ignoring sort level on unknown column '{level.column_id}'")
            continue
        column_type = columns[index].type
        order.sort(
            key=lambda r, i=index, t=column_type: sort_key(cell_value(rows[r], i), t, number_format),
            reverse=level.direction is SortDirection.DESC,
        )
    return order


def apply_sort(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    levels: Sequence[SortLevel],
    number_format: NumberFormat | None = None,
) -> list[Sequence[Any]]:
    """Return the rows sorted by ``levels``; the input is not modified."""
    return [rows[i] for i in sort_row_indices(columns, rows, levels, number_format)]


# --- Level editing ---


def normalize_sort_levels(levels: Sequence[SortLevel]) -> tuple[SortLevel, ...]:
    """Drop levels that repeat an earlier level's column."""
    seen: set[str] = set()
    kept: list[SortLevel] = []
    for level in levels:
        if level.column_id in seen:
            warn(f"Dropping duplicate sort level for column '{level.column_id}'")
            continue
        seen.add(level.column_id)
        kept.append(level)
    return tuple(kept)


def add_sort_level(levels: Sequence[SortLevel], columns: Sequence[Column]) -> tuple[SortLevel, ...]:
    """Append an ascending level on the first column not yet used.

    Returns the levels unchanged when every column is already in use.
    """
    used = {level.column_id for level in levels}
    candidate = next((col for col in columns if col.id not in used), None)
    if candidate is None:
        debug("Every column already has a sort level")
        return tuple(levels)
    return (*levels, SortLevel(column_id=candidate.id))


def update_sort_level(
    levels: Sequence[SortLevel], index: int, updated: SortLevel
) -> tuple[SortLevel, ...]:
    """Replace the level at ``index``.

    If ``updated`` moves the level onto a column another level already
    uses, the two levels trade columns instead: each keeps its own
    position and direction, so no column is referenced twice.

    Example:
        levels = [SortLevel(column_id="c1"), SortLevel(column_id="c2", direction="desc")]
        update_sort_level(levels, 0, SortLevel(column_id="c2"))
        # -> [c2 asc, c1 desc]
    """
    if not 0 <= index < len(levels):
        return tuple(levels)
    result = list(levels)
    current = result[index]
    if updated.column_id != current.column_id:
        other = next(
            (i for i, level in enumerate(result) if level.column_id == updated.column_id and i != index),
            None,
        )
        if other is not None:
            result[other] = result[other].model_copy(update={"column_id": current.column_id})
            result[index] = current.model_copy(update={"column_id": updated.column_id})
            return tuple(result)
    result[index] = updated
    return tuple(result)


def remove_sort_level(levels: Sequence[SortLevel], index: int) -> tuple[SortLevel, ...]:
    """Drop the level at ``index``; later levels move up one priority."""
    return tuple(level for i, level in enumerate(levels) if i != index)


def move_sort_level(
    levels: Sequence[SortLevel], index: int, direction: Literal["up", "down"]
) -> tuple[SortLevel, ...]:
    """Swap a level with its neighbour. Moves past either end are no-ops."""
    target = index - 1 if direction == "up" else index + 1
    if not (0 <= index < len(levels) and 0 <= target < len(levels)):
        return tuple(levels)
    result = list(levels)
    result[index], result[target] = result[target], result[index]
    return tuple(result)
