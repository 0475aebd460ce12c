"""Filter evaluation engine.

Each column type has its own operator catalog. A ColumnFilter holds one
or more conditions for a single column; conditions on a column combine
with AND, and filters on different columns combine with AND as well.

Configuration checks (``validate_condition``) are separate from
evaluation. The evaluator is defined for every configuration, including
half-finished ones: a condition that fails validation never matches.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from .formatting import (
    fold_text,
    granularity_from_format,
    is_blank,
    natural_key,
    parse_date,
    parse_date_cell,
    parse_number,
    truncate_date,
)
from .log import debug, warn
from .models import ColumnType, DateGranularity
from .validation import cell_value, column_date_format


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from .models import Column, ColumnFilter, FilterCondition, NumberFormat


class FilterOperator(str, Enum):
    """All filter operators; availability depends on the column type."""

    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_THAN = "less_than"
    LESS_OR_EQUAL = "less_or_equal"
    BETWEEN = "between"
    BETWEEN_EXCLUSIVE = "between_exclusive"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


_COMPARISON_OPERATORS: tuple[FilterOperator, ...] = (
    FilterOperator.EQUALS,
    FilterOperator.NOT_EQUALS,
    FilterOperator.GREATER_THAN,
    FilterOperator.GREATER_OR_EQUAL,
    FilterOperator.LESS_THAN,
    FilterOperator.LESS_OR_EQUAL,
    FilterOperator.BETWEEN,
    FilterOperator.BETWEEN_EXCLUSIVE,
    FilterOperator.IS_EMPTY,
    FilterOperator.IS_NOT_EMPTY,
)

OPERATORS_BY_TYPE: dict[ColumnType, tuple[FilterOperator, ...]] = {
    ColumnType.TEXT: (
        FilterOperator.CONTAINS,
        FilterOperator.NOT_CONTAINS,
        FilterOperator.EQUALS,
        FilterOperator.NOT_EQUALS,
        FilterOperator.STARTS_WITH,
        FilterOperator.ENDS_WITH,
        FilterOperator.IS_EMPTY,
        FilterOperator.IS_NOT_EMPTY,
    ),
    ColumnType.NUMBER: _COMPARISON_OPERATORS,
    ColumnType.DATE: _COMPARISON_OPERATORS,
}

RANGE_OPERATORS = frozenset({FilterOperator.BETWEEN, FilterOperator.BETWEEN_EXCLUSIVE})
VALUELESS_OPERATORS = frozenset({FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY})


def humanize_operator(operator: str | FilterOperator) -> str:
    """Turn an operator tag into a label ("not_contains" -> "not contains")."""
    value = operator.value if isinstance(operator, FilterOperator) else str(operator)
    return value.replace("_", " ")


def operators_for_type(column_type: ColumnType | str) -> list[dict[str, str]]:
    """List the operators available for a column type, in catalog order."""
    return [
        {"value": op.value, "label": humanize_operator(op)}
        for op in OPERATORS_BY_TYPE[ColumnType(column_type)]
    ]


def resolve_operator(column_type: ColumnType, operator: str) -> FilterOperator | None:
    """Return the operator if it belongs to the column type's catalog."""
    try:
        op = FilterOperator(operator)
    except ValueError:
        return None
    return op if op in OPERATORS_BY_TYPE[column_type] else None


def range_inclusivity(condition: FilterCondition, operator: FilterOperator) -> tuple[bool, bool]:
    """Effective (include_start, include_end) for a range condition.

    ``between`` defaults to inclusive bounds, ``between_exclusive`` to
    exclusive ones; either side can be toggled independently.
    """
    default = operator is FilterOperator.BETWEEN
    start = default if condition.include_start is None else condition.include_start
    end = default if condition.include_end is None else condition.include_end
    return start, end


def _values(value: Any) -> list[Any]:
    if isinstance(value, list):
        return [v for v in value if not is_blank(v)]
    return [] if is_blank(value) else [value]


def _range_order_error(start: Any, end: Any, inclusivity: tuple[bool, bool]) -> str | None:
    if start > end:
        return "Start must be less than or equal to end."
    if start == end and not any(inclusivity):
        return "Start must be less than end."
    return None


# --- Validation ---


def validate_condition(
    column_type: ColumnType | str,
    condition: FilterCondition,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> str | None:
    """Validate a condition before it is applied.

    Uses the same parsing as the formatter, so values typed with the
    dataset's separators validate correctly.

    Returns
    -------
    str or None
        A user-facing message, or None when the condition is valid.
    """
    column_type = ColumnType(column_type)
    op = resolve_operator(column_type, condition.operator)
    if op is None:
        return f"Operator '{condition.operator}' is not available for {column_type.value} columns."
    if op in VALUELESS_OPERATORS:
        return None

    if op in RANGE_OPERATORS:
        if is_blank(condition.value) or is_blank(condition.value_end):
            return "Both values are required."
        if isinstance(condition.value, list):
            return "Both values are required."
        if column_type is ColumnType.TEXT:
            return None
        inclusivity = range_inclusivity(condition, op)
        if column_type is ColumnType.NUMBER:
            start = parse_number(condition.value, number_format)
            end = parse_number(condition.value_end, number_format)
            if start is None or end is None:
                return "Values must be valid numbers."
            return _range_order_error(start, end, inclusivity)
        granularity = granularity_from_format(date_format)
        if granularity is DateGranularity.YEAR:
            start_year = parse_number(condition.value, number_format)
            end_year = parse_number(condition.value_end, number_format)
            if start_year is None or end_year is None or start_year < 0 or end_year < 0:
                return "Year must be a non-negative number."
            return _range_order_error(start_year, end_year, inclusivity)
        start_date = _date_operand(condition.value, date_format, granularity)
        end_date = _date_operand(condition.value_end, date_format, granularity)
        if start_date is None or end_date is None:
            return "Value must be a valid date."
        return _range_order_error(start_date, end_date, inclusivity)

    values = _values(condition.value)
    if not values:
        return "Value is required."
    if len(values) > 1 and op not in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS):
        return "Only equals and not equals accept several values."
    if column_type is ColumnType.NUMBER:
        if any(parse_number(v, number_format) is None for v in values):
            return "Value must be a valid number."
    elif column_type is ColumnType.DATE:
        granularity = granularity_from_format(date_format)
        if granularity is DateGranularity.YEAR:
            years = [parse_number(v, number_format) for v in values]
            if any(y is None or y < 0 for y in years):
                return "Year must be a non-negative number."
        elif any(_date_operand(v, date_format, granularity) is None for v in values):
            return "Value must be a valid date."
    return None


def is_condition_valid(
    column_type: ColumnType | str,
    condition: FilterCondition,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> bool:
    """Shorthand for ``validate_condition(...) is None``."""
    return validate_condition(column_type, condition, number_format, date_format) is None


# --- Evaluation ---


def _date_operand(value: Any, pattern: str | None, granularity: DateGranularity) -> datetime | None:
    parsed = parse_date(value, pattern)
    return truncate_date(parsed, granularity) if parsed is not None else None


def _compare(op: FilterOperator, left: Any, right: Any) -> bool:
    if op is FilterOperator.GREATER_THAN:
        return left > right
    if op is FilterOperator.GREATER_OR_EQUAL:
        return left >= right
    if op is FilterOperator.LESS_THAN:
        return left < right
    if op is FilterOperator.LESS_OR_EQUAL:
        return left <= right
    return left == right


def _in_range(value: Any, start: Any, end: Any, inclusivity: tuple[bool, bool]) -> bool:
    include_start, include_end = inclusivity
    above = value >= start if include_start else value > start
    below = value <= end if include_end else value < end
    return above and below


def _match_text(op: FilterOperator, cell: Any, condition: FilterCondition) -> bool:
    text = "" if is_blank(cell) else str(cell).strip()
    if op is FilterOperator.EQUALS:
        return text in {str(v).strip() for v in _values(condition.value)}
    if op is FilterOperator.NOT_EQUALS:
        return text not in {str(v).strip() for v in _values(condition.value)}
    needle = fold_text(str(_values(condition.value)[0]).strip())
    hay = fold_text(text)
    if op is FilterOperator.CONTAINS:
        return needle in hay
    if op is FilterOperator.NOT_CONTAINS:
        return needle not in hay
    if op is FilterOperator.STARTS_WITH:
        return hay.startswith(needle)
    if op is FilterOperator.ENDS_WITH:
        return hay.endswith(needle)
    return False


def _match_ordered(
    op: FilterOperator,
    condition: FilterCondition,
    cell_key: Any,
    cell_text: str,
    to_key: Callable[[Any], Any],
) -> bool:
    """Shared comparison logic for number and date cells.

    ``cell_key`` is None when the cell does not parse; such cells only
    match not_equals (compared as text), never an ordered comparison.
    """
    if op in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS):
        values = _values(condition.value)
        if cell_key is None:
            hit = cell_text in {str(v).strip() for v in values}
        else:
            hit = any(to_key(v) == cell_key for v in values)
        return hit if op is FilterOperator.EQUALS else not hit
    if cell_key is None:
        return False
    if op in RANGE_OPERATORS:
        start, end = to_key(condition.value), to_key(condition.value_end)
        return _in_range(cell_key, start, end, range_inclusivity(condition, op))
    return _compare(op, cell_key, to_key(_values(condition.value)[0]))


def evaluate_condition(
    column: Column,
    value: Any,
    condition: FilterCondition,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> bool:
    """Decide whether one cell value satisfies one condition."""
    pattern = column_date_format(column, date_format)
    if not is_condition_valid(column.type, condition, number_format, pattern):
        return False
    op = FilterOperator(condition.operator)

    if op is FilterOperator.IS_EMPTY:
        return is_blank(value)
    if op is FilterOperator.IS_NOT_EMPTY:
        return not is_blank(value)

    if column.type is ColumnType.TEXT:
        return _match_text(op, value, condition)

    cell_text = "" if is_blank(value) else str(value).strip()
    if column.type is ColumnType.NUMBER:

        def number_key(v: Any) -> float | None:
            return parse_number(v, number_format)

        return _match_ordered(op, condition, number_key(value), cell_text, number_key)

    granularity = granularity_from_format(pattern)
    parsed_cell = parse_date_cell(value, pattern, number_format)
    if granularity is DateGranularity.YEAR:

        def year_key(v: Any) -> float | None:
            number = parse_number(v, number_format)
            if number is not None:
                return number
            parsed = parse_date(v, pattern)
            return float(parsed.year) if parsed is not None else None

        cell_year = float(parsed_cell.year) if parsed_cell is not None else None
        return _match_ordered(op, condition, cell_year, cell_text, year_key)

    def date_key(v: Any) -> datetime | None:
        return _date_operand(v, pattern, granularity)

    cell_date = truncate_date(parsed_cell, granularity) if parsed_cell is not None else None
    return _match_ordered(op, condition, cell_date, cell_text, date_key)


def matches_filter(
    column: Column,
    value: Any,
    column_filter: ColumnFilter,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> bool:
    """True when the value satisfies every condition of the filter."""
    return all(
        evaluate_condition(column, value, condition, number_format, date_format)
        for condition in column_filter.conditions
    )


def filter_row_indices(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    filters: Sequence[ColumnFilter],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
    indices: Sequence[int] | None = None,
) -> list[int]:
    """Return the indices of rows that pass every filter.

    Filters naming an unknown column id are ignored.
    """
    candidates = list(range(len(rows))) if indices is None else list(indices)
    by_id = {col.id: (i, col) for i, col in enumerate(columns)}
    active: list[tuple[int, Column, ColumnFilter]] = []
    for column_filter in filters:
        if column_filter.column_id not in by_id:
            warn(f"Ignoring filter on unknown column '{column_filter.column_id}'")
            continue
        if not column_filter.conditions:
            continue
        index, column = by_id[column_filter.column_id]
        for condition in column_filter.conditions:
            message = validate_condition(
                column.type, condition, number_format, column_date_format(column, date_format)
            )
            if message:
                debug(f"Filter on '{column.id}' is incomplete and matches nothing: {message}")
        active.append((index, column, column_filter))
    if not active:
        return candidates

    return [
        row_index
        for row_index in candidates
        if all(
            matches_filter(column, cell_value(rows[row_index], index), flt, number_format, date_format)
            for index, column, flt in active
        )
    ]


def apply_filters(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    filters: Sequence[ColumnFilter],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> list[Sequence[Any]]:
    """Return the rows that pass every filter, in their original order."""
    keep = filter_row_indices(columns, rows, filters, number_format, date_format)
    return [rows[i] for i in keep]


def unique_values(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    column_id: str,
    number_format: NumberFormat | None = None,
) -> list[str]:
    """Distinct non-blank values of a column, for filter value pickers.

    Callers pass the original dataset (before filters, sorting or
    aggregation) so candidate values never shrink. Values that parse as
    numbers come first in numeric order; the rest follow in natural,
    case-insensitive order.
    """
    index = next((i for i, col in enumerate(columns) if col.id == column_id), None)
    if index is None:
        warn(f"Cannot list values of unknown column '{column_id}'")
        return []
    seen: dict[str, None] = {}
    for row in rows:
        value = cell_value(row, index)
        if not is_blank(value):
            seen.setdefault(str(value).strip(), None)

    def sort_key(text: str) -> tuple[Any, ...]:
        number = parse_number(text, number_format)
        if number is not None:
            return (0, number, natural_key(text), text)
        return (1, 0.0, natural_key(text), text)

    return sorted(seen, key=sort_key)
