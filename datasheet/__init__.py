"""datasheet - typed tabular dataset engine.

Classifies columns into text/number/date, formats values for a locale,
evaluates typed filters, sorts on several levels, aggregates by group or
into pivot tables, and keeps incrementally updated validation state
behind memoized selectors for a virtualized grid.
"""

from .aggregation import AggregatedView, PivotView, aggregate, apply_pivot
from .charts import (
    AreaChartConfig,
    BarChartConfig,
    ChartConfig,
    ChartData,
    ChartSeries,
    DonutChartConfig,
    HistogramChartConfig,
    LineChartConfig,
    PieChartConfig,
    ScatterChartConfig,
    build_chart_data,
    parse_chart_config,
)
from .config import (
    DatasheetSettings,
    DetectionSettings,
    FormatSettings,
    GridSettings,
    LogSettings,
    clear_settings,
    get_settings,
    reload_settings,
)
from .detection import (
    DetectionResult,
    apply_detected_types,
    detect_column_formats,
    infer_columns,
)
from .exceptions import CellIndexError, ColumnNotFoundError, DatasheetError, FormatConfigError
from .export import to_csv, to_display_table
from .filters import (
    FilterOperator,
    apply_filters,
    evaluate_condition,
    filter_row_indices,
    humanize_operator,
    operators_for_type,
    unique_values,
    validate_condition,
)
from .formatting import (
    format_date,
    format_number,
    granularity_from_format,
    parse_date,
    parse_date_display,
    parse_number,
)
from .log import enable_debug, get_logger, set_level
from .models import (
    AggregationSpec,
    Column,
    ColumnFilter,
    ColumnType,
    DateGranularity,
    DuplicateColumns,
    FilterCondition,
    GroupBySpec,
    MetricSpec,
    MetricType,
    NumberFormat,
    PivotSpec,
    SortDirection,
    SortLevel,
    TimeUnit,
    ValidationState,
)
from .selectors import DerivedStateCache, Selector, VisibleView
from .sorting import (
    add_sort_level,
    apply_sort,
    move_sort_level,
    remove_sort_level,
    update_sort_level,
)
from .store import DatasetState, DatasetStore
from .validation import revalidate_cell, validate_dataset


__version__ = "0.1.0"

__all__ = [
    "AggregatedView",
    "AggregationSpec",
    "AreaChartConfig",
    "BarChartConfig",
    "CellIndexError",
    "ChartConfig",
    "ChartData",
    "ChartSeries",
    "Column",
    "ColumnFilter",
    "ColumnNotFoundError",
    "ColumnType",
    "DatasetState",
    "DatasetStore",
    "DatasheetError",
    "DatasheetSettings",
    "DateGranularity",
    "DerivedStateCache",
    "DetectionResult",
    "DetectionSettings",
    "DonutChartConfig",
    "DuplicateColumns",
    "FilterCondition",
    "FilterOperator",
    "FormatConfigError",
    "FormatSettings",
    "GridSettings",
    "GroupBySpec",
    "HistogramChartConfig",
    "LineChartConfig",
    "LogSettings",
    "MetricSpec",
    "MetricType",
    "NumberFormat",
    "PieChartConfig",
    "PivotSpec",
    "PivotView",
    "ScatterChartConfig",
    "Selector",
    "SortDirection",
    "SortLevel",
    "TimeUnit",
    "ValidationState",
    "VisibleView",
    "__version__",
    "add_sort_level",
    "aggregate",
    "apply_detected_types",
    "apply_filters",
    "apply_pivot",
    "apply_sort",
    "build_chart_data",
    "clear_settings",
    "detect_column_formats",
    "enable_debug",
    "evaluate_condition",
    "filter_row_indices",
    "format_date",
    "format_number",
    "get_logger",
    "get_settings",
    "granularity_from_format",
    "humanize_operator",
    "infer_columns",
    "move_sort_level",
    "operators_for_type",
    "parse_chart_config",
    "parse_date",
    "parse_date_display",
    "parse_number",
    "reload_settings",
    "remove_sort_level",
    "revalidate_cell",
    "set_level",
    "to_csv",
    "to_display_table",
    "unique_values",
    "update_sort_level",
    "validate_condition",
    "validate_dataset",
]
