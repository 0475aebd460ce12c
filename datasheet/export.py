"""Flatten a dataset view to display strings and CSV.

Every cell goes through the locale formatter of its column type, so the
exported text matches what the grid shows.
"""

from __future__ import annotations

import csv
import io

from typing import TYPE_CHECKING, Any

from .formatting import format_date, format_number, is_blank
from .models import ColumnType
from .validation import cell_value, column_date_format


if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Column, NumberFormat


def display_value(
    value: Any,
    column: Column,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> str:
    """Render one cell the way the grid displays it."""
    if is_blank(value):
        return ""
    if column.type is ColumnType.NUMBER:
        return format_number(value, number_format)
    if column.type is ColumnType.DATE:
        return format_date(value, column_date_format(column, date_format))
    return str(value)


def to_display_table(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> tuple[list[str], list[list[str]]]:
    """Return ``(headers, rows)`` with every cell as a display string."""
    headers = [col.name for col in columns]
    table = [
        [
            display_value(cell_value(row, i), col, number_format, date_format)
            for i, col in enumerate(columns)
        ]
        for row in rows
    ]
    return headers, table


def to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Serialize a display table as CSV with every field quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()
