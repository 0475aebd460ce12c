"""Chart configurations and series extraction for chart collaborators.

Chart configurations form a tagged union on ``type``; each variant only
carries the fields that chart kind uses. ``build_chart_data`` turns a
(usually visible) dataset view into labels plus numeric series.

Usage:
    config = parse_chart_config({"type": "bar", "labelColumn": "c1", "valueColumns": ["c2"]})
    data = build_chart_data(view.columns, view.rows, config, number_format)
"""

from __future__ import annotations

import math

from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from .export import display_value
from .formatting import parse_number
from .log import warn
from .models import DatasheetModel
from .validation import cell_value


if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Column, NumberFormat


class ChartBase(DatasheetModel):
    """Fields shared by every chart configuration."""

    title: str | None = None


class LineChartConfig(ChartBase):
    """Line chart: one line per value column over the label column."""

    type: Literal["line"] = "line"
    label_column: str | None = None
    value_columns: tuple[str, ...] = ()
    curve: Literal["linear", "monotone", "step"] = "linear"
    show_points: bool = True


class BarChartConfig(ChartBase):
    """Bar chart: one bar group per label, one bar per value column."""

    type: Literal["bar"] = "bar"
    label_column: str | None = None
    value_columns: tuple[str, ...] = ()
    stacked: bool = False
    horizontal: bool = False


class AreaChartConfig(ChartBase):
    """Area chart, optionally stacked."""

    type: Literal["area"] = "area"
    label_column: str | None = None
    value_columns: tuple[str, ...] = ()
    stacked: bool = False
    opacity: float = Field(default=0.6, ge=0.0, le=1.0)


class ScatterChartConfig(ChartBase):
    """Scatter plot: numeric x column against one or more y columns."""

    type: Literal["scatter"] = "scatter"
    x_column: str
    y_columns: tuple[str, ...] = ()
    point_size: int = Field(default=4, ge=1)


class PieChartConfig(ChartBase):
    """Pie chart: one slice per row."""

    type: Literal["pie"] = "pie"
    label_column: str
    value_column: str


class DonutChartConfig(ChartBase):
    """Pie chart with a hole."""

    type: Literal["donut"] = "donut"
    label_column: str
    value_column: str
    inner_radius: float = Field(default=0.5, gt=0.0, lt=1.0)


class HistogramChartConfig(ChartBase):
    """Histogram of one numeric column."""

    type: Literal["histogram"] = "histogram"
    value_column: str
    bins: int = Field(default=10, ge=1)


ChartConfigUnion = (
    LineChartConfig
    | BarChartConfig
    | AreaChartConfig
    | ScatterChartConfig
    | PieChartConfig
    | DonutChartConfig
    | HistogramChartConfig
)

ChartConfig = Annotated[ChartConfigUnion, Field(discriminator="type")]

_CHART_CONFIG_ADAPTER: TypeAdapter[Any] = TypeAdapter(ChartConfig)


def parse_chart_config(data: dict[str, Any] | ChartConfigUnion) -> ChartConfigUnion:
    """Validate a dict (snake_case or camelCase keys) into a chart config."""
    if isinstance(data, ChartBase):
        return data  # type: ignore[return-value]
    return _CHART_CONFIG_ADAPTER.validate_python(data)


class ChartSeries(DatasheetModel):
    """Numeric values of one column; unparseable cells are None."""

    column_id: str
    name: str
    values: tuple[float | None, ...] = ()


class ChartData(DatasheetModel):
    """Labels plus series, ready for a chart renderer."""

    type: str
    labels: tuple[Any, ...] = ()
    series: tuple[ChartSeries, ...] = ()


def _index(columns: Sequence[Column], column_id: str | None) -> int | None:
    if column_id is None:
        return None
    return next((i for i, col in enumerate(columns) if col.id == column_id), None)


def _series(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    column_id: str,
    number_format: NumberFormat | None,
) -> ChartSeries:
    index = _index(columns, column_id)
    if index is None:
        warn(f"Chart references unknown column '{column_id}'")
        return ChartSeries(column_id=column_id, name=column_id)
    values = tuple(parse_number(cell_value(row, index), number_format) for row in rows)
    return ChartSeries(column_id=column_id, name=columns[index].name, values=values)


def _labels(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    column_id: str | None,
    number_format: NumberFormat | None,
    date_format: str | None,
) -> tuple[str, ...]:
    index = _index(columns, column_id)
    if index is None:
        if column_id is not None:
            warn(f"Chart label column '{column_id}' not found; using row numbers")
        return tuple(str(i + 1) for i in range(len(rows)))
    column = columns[index]
    return tuple(
        display_value(cell_value(row, index), column, number_format, date_format) for row in rows
    )


def histogram_bins(values: Sequence[float | None], bins: int) -> tuple[tuple[str, ...], tuple[float, ...]]:
    """Count values into ``bins`` equal-width bins.

    The last bin includes its upper edge. Returns bin labels and counts.
    """
    numbers = [v for v in values if v is not None and math.isfinite(v)]
    if not numbers:
        return (), ()
    low, high = min(numbers), max(numbers)
    if low == high:
        return (f"{low:g}",), (float(len(numbers)),)
    width = (high - low) / bins
    counts = [0] * bins
    for number in numbers:
        slot = min(int((number - low) / width), bins - 1)
        counts[slot] += 1
    labels = tuple(f"{low + i * width:g}-{low + (i + 1) * width:g}" for i in range(bins))
    return labels, tuple(float(c) for c in counts)


def build_chart_data(
    columns: Sequence[Column],
    rows: Sequence[Sequence[Any]],
    config: ChartConfigUnion | dict[str, Any],
    number_format: NumberFormat | None = None,
    date_format: str | None = None,
) -> ChartData:
    """Extract labels and numeric series for a chart configuration.

    Parameters
    ----------
    columns, rows
        The view to chart, typically ``DatasetStore.visible_view()``.
    config
        A chart configuration or its dict form.
    number_format, date_format
        Used to parse numbers and render labels.

    Returns
    -------
    ChartData
        Pie and donut charts have a single series; histograms have one
        series of bin counts labelled by bin range.
    """
    config = parse_chart_config(config)

    if isinstance(config, HistogramChartConfig):
        source = _series(columns, rows, config.value_column, number_format)
        labels, counts = histogram_bins(source.values, config.bins)
        series = ChartSeries(column_id=source.column_id, name=source.name, values=counts)
        return ChartData(type=config.type, labels=labels, series=(series,))

    if isinstance(config, (PieChartConfig, DonutChartConfig)):
        labels = _labels(columns, rows, config.label_column, number_format, date_format)
        series = _series(columns, rows, config.value_column, number_format)
        return ChartData(type=config.type, labels=labels, series=(series,))

    if isinstance(config, ScatterChartConfig):
        x = _series(columns, rows, config.x_column, number_format)
        return ChartData(
            type=config.type,
            labels=x.values,
            series=tuple(_series(columns, rows, cid, number_format) for cid in config.y_columns),
        )

    labels = _labels(columns, rows, config.label_column, number_format, date_format)
    return ChartData(
        type=config.type,
        labels=labels,
        series=tuple(_series(columns, rows, cid, number_format) for cid in config.value_columns),
    )
