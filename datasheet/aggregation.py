"""Aggregation and pivot engine: group rows and reduce metrics with pandas.

Groups are keyed on canonical values, so display variants of the same
number or date ("1,234" and "1234") collapse into one group. Aggregated
groups keep the order in which their first row appears; pivot rows and
columns are sorted by key. The result carries the
source columns and rows so callers can keep enumerating values and
editing filters against the original dataset.
"""

from __future__ import annotations

import math

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .formatting import (
    canonical_date_string,
    canonical_number_string,
    granularity_from_format,
    is_blank,
    parse_date_cell,
    parse_number,
    truncate_date,
)
from .log import debug, warn
from .models import Column, ColumnType, DateGranularity, MetricType, TimeUnit
from .validation import cell_value, column_date_format


if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    import pandas as pd

    from .models import AggregationSpec, GroupBySpec, MetricSpec, NumberFormat, PivotSpec


#: Display pattern of a group-by column truncated to a time unit.
TIME_UNIT_FORMATS: dict[TimeUnit, str | None] = {
    TimeUnit.YEAR: "YYYY",
    TimeUnit.QUARTER: None,
    TimeUnit.MONTH: "YYYY-MM",
    TimeUnit.DAY: "YYYY-MM-DD",
    TimeUnit.HOUR: "YYYY-MM-DD HH:mm",
    TimeUnit.MINUTE: "YYYY-MM-DD HH:mm",
    TimeUnit.SECOND: "YYYY-MM-DD HH:mm:ss",
}


@dataclass(frozen=True)
class AggregatedView:
    """Aggregated columns and rows plus the data they were computed from.

    Attributes
    ----------
    columns : tuple[Column, ...]
        Group-by columns first, then one number column per metric.
    rows : tuple[tuple[Any, ...], ...]
        One row per group.
    source_columns : tuple[Column, ...]
        Columns of the dataset before aggregation.
    source_rows : tuple[tuple[Any, ...], ...]
        Rows of the dataset before aggregation.
    group_rows : tuple[tuple[int, ...], ...]
        For each output row, the indices of the input rows it reduces.
    """

    columns: tuple[Column, ...]
    rows: tuple[tuple[Any, ...], ...]
    source_columns: tuple[Column, ...] = ()
    source_rows: tuple[tuple[Any, ...], ...] = ()
    group_rows: tuple[tuple[int, ...], ...] = field(default=())


@dataclass(frozen=True)
class PivotView(AggregatedView):
    """A pivot table; ``column_keys`` lists the column-dimension keys across.

    With values, each key spans one output column per value.
    """

    column_keys: tuple[tuple[str, ...], ...] = ()


def truncate_to_unit(value: datetime, unit: TimeUnit) -> str:
    """Render a datetime truncated to ``unit`` as a canonical string.

    Quarters render as ``2024-Q1``.
    """
    if unit is TimeUnit.YEAR:
        return f"{value.year:04d}"
    if unit is TimeUnit.QUARTER:
        return f"{value.year:04d}-Q{(value.month - 1) // 3 + 1}"
    if unit is TimeUnit.MONTH:
        return f"{value.year:04d}-{value.month:02d}"
    if unit is TimeUnit.DAY:
        return canonical_date_string(value, DateGranularity.DATE)
    if unit is TimeUnit.HOUR:
        return value.replace(minute=0, second=0, microsecond=0).strftime("%Y-%m-%dT%H:%M:%S")
    if unit is TimeUnit.MINUTE:
        return value.replace(second=0, microsecond=0).strftime("%Y-%m-%dT%H:%M:%S")
    return canonical_date_string(value, DateGranularity.DATETIME)


def group_value(
    value: Any,
    column: Column,
    time_unit: TimeUnit | None = None,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> str:
    """Canonical group key for one cell.

    Cells that do not parse under the column type group by their
    stripped text.
    """
    if is_blank(value):
        return ""
    if column.type is ColumnType.NUMBER:
        number = parse_number(value, number_format)
        if number is not None:
            return canonical_number_string(number)
    elif column.type is ColumnType.DATE:
        pattern = column_date_format(column, date_format)
        parsed = parse_date_cell(value, pattern, number_format)
        if parsed is not None:
            if time_unit is not None:
                return truncate_to_unit(parsed, time_unit)
            granularity = granularity_from_format(pattern)
            return canonical_date_string(truncate_date(parsed, granularity), granularity)
    return str(value).strip()


def _unique_name(base: str, used: set[str]) -> str:
    name = base
    counter = 1
    while name in used:
        name = f"{base}_{counter}"
        counter += 1
    used.add(name)
    return name


def metric_name(metric: MetricSpec, columns_by_id: dict[str, Column]) -> str:
    """Default output name: alias, ``count()`` or ``type(column name)``."""
    if metric.alias:
        return metric.alias
    if metric.type is MetricType.COUNT:
        return "count()"
    column = columns_by_id.get(metric.column_id or "")
    label = column.name if column is not None else (metric.column_id or "")
    return f"{metric.type.value}({label})"


#: pandas reducer applied to each metric's series.
_REDUCERS: dict[MetricType, str] = {
    MetricType.COUNT: "count",
    MetricType.COUNT_DISTINCT: "nunique",
    MetricType.SUM: "sum",
    MetricType.AVERAGE: "mean",
    MetricType.MIN: "min",
    MetricType.MAX: "max",
}


def _metric_series(
    metric_type: MetricType,
    values: Sequence[Any],
    number_format: NumberFormat | None = None,
) -> pd.Series:
    """Series a reducer runs over; blanks and unparseable cells become missing."""
    import pandas as pd

    if metric_type is MetricType.COUNT:
        return pd.Series([1] * len(values), dtype="int64")
    if metric_type is MetricType.COUNT_DISTINCT:
        return pd.Series(
            [None if is_blank(v) else str(v).strip() for v in values], dtype=object
        )
    return pd.Series([parse_number(v, number_format) for v in values], dtype="float64")


def _scalar(value: Any) -> int | float | None:
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def reduce_metric(
    metric_type: MetricType,
    values: Sequence[Any],
    number_format: NumberFormat | None = None,
) -> int | float | None:
    """Reduce one group's cells.

    ``count`` counts every row; ``count_distinct`` counts distinct
    non-blank values. The numeric reducers skip blank and unparseable
    cells. Sum over no numbers is 0; average, min and max over no
    numbers are None.
    """
    series = _metric_series(metric_type, values, number_format)
    return _scalar(series.agg(_REDUCERS[metric_type]))


def _reduce_groups(
    row_count: int,
    keys: Sequence[Sequence[str]],
    metrics: Sequence[tuple[MetricType, pd.Series]],
) -> list[tuple[tuple[str, ...], list[int], list[Any]]]:
    """Group rows on ``keys`` and reduce each metric series per group.

    Returns ``(key, member rows, reduced values)`` per group, in order of
    first appearance. Without keys every row forms one group, even when
    there are no rows.
    """
    import pandas as pd

    if not keys:
        values = [_scalar(series.agg(_REDUCERS[kind])) for kind, series in metrics]
        return [((), list(range(row_count)), values)]
    if not row_count:
        return []

    key_names = [f"key_{i}" for i in range(len(keys))]
    metric_names = [f"metric_{i}" for i in range(len(metrics))]
    data: dict[str, Any] = dict(zip(key_names, keys))
    data.update({name: series for name, (_kind, series) in zip(metric_names, metrics)})
    frame = pd.DataFrame(data, index=range(row_count))

    grouped = frame.groupby(key_names, sort=False, dropna=False)
    members: list[list[int]] = [[] for _ in range(grouped.ngroups)]
    for row_index, group in enumerate(grouped.ngroup().tolist()):
        members[group].append(row_index)

    reduced: list[list[Any]] = [[] for _ in members]
    if metrics:
        table = grouped.agg(
            **{
                name: (name, _REDUCERS[kind])
                for name, (kind, _series) in zip(metric_names, metrics)
            }
        )
        for name in metric_names:
            for group, value in enumerate(table[name].tolist()):
                reduced[group].append(_scalar(value))

    return [
        (tuple(key[rows[0]] for key in keys), rows, values)
        for rows, values in zip(members, reduced)
    ]


def _resolve_dimensions(
    entries: Sequence[GroupBySpec],
    by_id: dict[str, tuple[int, Column]],
    label: str,
) -> list[tuple[int, Column, TimeUnit | None]]:
    resolved = []
    seen: set[str] = set()
    for entry in entries:
        if entry.column_id not in by_id:
            warn(f"Ignoring {label} on unknown column '{entry.column_id}'")
            continue
        if entry.column_id in seen:
            continue
        seen.add(entry.column_id)
        index, column = by_id[entry.column_id]
        unit = entry.time_unit if column.type is ColumnType.DATE else None
        resolved.append((index, column, unit))
    return resolved


def _resolve_metrics(
    entries: Sequence[MetricSpec],
    by_id: dict[str, tuple[int, Column]],
) -> list[tuple[int | None, MetricSpec]]:
    resolved = []
    for metric in entries:
        if metric.type is MetricType.COUNT:
            resolved.append((None, metric))
        elif metric.column_id in by_id:
            resolved.append((by_id[metric.column_id][0], metric))
        else:
            warn(f"Ignoring {metric.type.value} metric on unknown column '{metric.column_id}'")
    return resolved


def _dimension_keys(
    rows: Sequence[Sequence[Any]],
    dimensions: Sequence[tuple[int, Column, TimeUnit | None]],
    number_format: NumberFormat | None,
    date_format: str | None,
) -> list[list[str]]:
    return [
        [
            group_value(cell_value(row, index), column, unit, number_format, date_format)
            for row in rows
        ]
        for index, column, unit in dimensions
    ]


def _metric_inputs(
    rows: Sequence[Sequence[Any]],
    metrics: Sequence[tuple[int | None, MetricSpec]],
    number_format: NumberFormat | None,
) -> list[tuple[MetricType, pd.Series]]:
    return [
        (
            metric.type,
            _metric_series(
                metric.type,
                rows if index is None else [cell_value(row, index) for row in rows],
                number_format,
            ),
        )
        for index, metric in metrics
    ]


def _dimension_columns(
    dimensions: Sequence[tuple[int, Column, TimeUnit | None]],
    used: set[str],
) -> list[Column]:
    out = []
    for _index, column, unit in dimensions:
        name = f"{column.name} ({unit.value})" if unit is not None else column.name
        update: dict[str, Any] = {"name": _unique_name(name, used)}
        if unit is not None:
            update["date_format"] = TIME_UNIT_FORMATS[unit]
            if unit is TimeUnit.QUARTER:
                update["type"] = ColumnType.TEXT
        out.append(column.model_copy(update=update))
    return out


def aggregate(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    spec: AggregationSpec | None,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
    source_columns: Sequence[Column] | None = None,
    source_rows: Sequence[Sequence[Any]] | None = None,
) -> AggregatedView | None:
    """Group ``rows`` and reduce each metric per group.

    Parameters
    ----------
    columns, rows
        The rows to aggregate, usually already filtered and sorted.
    spec
        Group-by columns and metrics. Entries naming unknown columns are
        skipped with a warning.
    source_columns, source_rows
        The original dataset to reference from the result; default to
        ``columns`` and ``rows``.

    Returns
    -------
    AggregatedView or None
        None when the spec has neither usable group-by columns nor
        metrics, meaning no aggregation applies.
    """
    if spec is None or not spec.is_active:
        return None
    by_id = {col.id: (i, col) for i, col in enumerate(columns)}
    group_by = _resolve_dimensions(spec.group_by, by_id, "group-by")
    metrics = _resolve_metrics(spec.metrics, by_id)
    if not group_by and not metrics:
        return None

    groups = _reduce_groups(
        len(rows),
        _dimension_keys(rows, group_by, number_format, date_format),
        _metric_inputs(rows, metrics, number_format),
    )

    used: set[str] = set()
    out_columns = _dimension_columns(group_by, used)
    columns_by_id = {col.id: col for col in columns}
    for position, (_index, metric) in enumerate(metrics):
        out_columns.append(
            Column(
                id=metric.id or f"metric_{position}",
                name=_unique_name(metric_name(metric, columns_by_id), used),
                type=ColumnType.NUMBER,
            )
        )

    debug(f"Aggregated {len(rows)} rows into {len(groups)} groups")
    return AggregatedView(
        columns=tuple(out_columns),
        rows=tuple(key + tuple(values) for key, _members, values in groups),
        source_columns=tuple(columns if source_columns is None else source_columns),
        source_rows=tuple(tuple(r) for r in (rows if source_rows is None else source_rows)),
        group_rows=tuple(tuple(members) for _key, members, _values in groups),
    )


def pivot_value_name(
    metric: MetricSpec,
    columns_by_id: dict[str, Column],
    column_key: tuple[str, ...] = (),
) -> str:
    """Output name of one pivot value column.

    ``Sum of Amount``, with the column-dimension values appended as
    ``Sum of Amount (North | 2024)``. An alias replaces the whole name.
    """
    if metric.alias and metric.alias.strip():
        return metric.alias.strip()
    if metric.type is MetricType.COUNT:
        label = "Count"
    else:
        label = metric.type.value.replace("_", " ").capitalize()
    column = columns_by_id.get(metric.column_id or "")
    source = column.name if column is not None else (metric.column_id or "rows")
    name = f"{label} of {source}"
    if column_key:
        name = f"{name} ({' | '.join(column_key)})"
    return name


def apply_pivot(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    spec: PivotSpec | None,
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
    source_columns: Sequence[Column] | None = None,
    source_rows: Sequence[Sequence[Any]] | None = None,
) -> PivotView | None:
    """Cross-tabulate ``rows``: row dimensions down, column dimensions across.

    Output rows are the sorted distinct row-dimension keys. For every
    sorted distinct column-dimension key there is one number column per
    value, in the order the values are listed. Combinations with no rows,
    or whose reducer has nothing to reduce, hold 0. Without values, the
    column-dimension cells hold 0 where the combination occurs and None
    elsewhere; without values and column dimensions only the distinct row
    keys remain.

    Returns None when the spec is inactive, names no known column, or
    there are no rows.
    """
    if spec is None or not spec.is_active or not rows:
        return None
    by_id = {col.id: (i, col) for i, col in enumerate(columns)}
    row_dims = _resolve_dimensions(spec.rows, by_id, "pivot row")
    col_dims = _resolve_dimensions(spec.columns, by_id, "pivot column")
    values = _resolve_metrics(spec.values, by_id)
    if not row_dims and not col_dims and not values:
        return None

    groups = _reduce_groups(
        len(rows),
        _dimension_keys(rows, row_dims + col_dims, number_format, date_format),
        _metric_inputs(rows, values, number_format),
    )

    split = len(row_dims)
    cells: dict[tuple[tuple[str, ...], tuple[str, ...]], list[Any]] = {}
    members_by_row: dict[tuple[str, ...], list[int]] = {}
    for key, members, reduced in groups:
        cells[(key[:split], key[split:])] = reduced
        members_by_row.setdefault(key[:split], []).extend(members)
    row_keys = sorted(members_by_row)
    column_keys = sorted({column_key for _row_key, column_key in cells})

    used: set[str] = set()
    out_columns = _dimension_columns(row_dims, used)
    columns_by_id = {col.id: col for col in columns}
    if values:
        for column_key in column_keys:
            for _index, metric in values:
                out_columns.append(
                    Column(
                        id=f"pivot_{len(out_columns)}",
                        name=_unique_name(pivot_value_name(metric, columns_by_id, column_key), used),
                        type=ColumnType.NUMBER,
                    )
                )
    elif col_dims:
        for column_key in column_keys:
            out_columns.append(
                Column(
                    id=f"pivot_{len(out_columns)}",
                    name=_unique_name(" | ".join(column_key), used),
                    type=ColumnType.NUMBER,
                )
            )

    out_rows: list[tuple[Any, ...]] = []
    for row_key in row_keys:
        out_row: list[Any] = list(row_key)
        for column_key in column_keys if (values or col_dims) else ():
            reduced = cells.get((row_key, column_key))
            if not values:
                out_row.append(0 if reduced is not None else None)
                continue
            for position in range(len(values)):
                value = reduced[position] if reduced is not None else None
                out_row.append(0 if value is None else value)
        out_rows.append(tuple(out_row))

    debug(
        f"Pivoted {len(rows)} rows into {len(out_rows)} rows "
        f"across {len(column_keys)} column keys"
    )
    return PivotView(
        columns=tuple(out_columns),
        rows=tuple(out_rows),
        source_columns=tuple(columns if source_columns is None else source_columns),
        source_rows=tuple(tuple(r) for r in (rows if source_rows is None else source_rows)),
        group_rows=tuple(tuple(sorted(members_by_row[key])) for key in row_keys),
        column_keys=tuple(column_keys) if (values or col_dims) else (),
    )
