"""Pydantic models for the typed tabular dataset engine.

Models accept snake_case or camelCase keys and serialize to camelCase via
``to_dict()`` so grid and chart collaborators can consume them directly.

Usage:
    from datasheet.models import Column, ColumnFilter, FilterCondition

    col = Column(id="c1", name="Qty", type="number")
    flt = ColumnFilter(column_id="c1", conditions=[
        FilterCondition(operator="greater_than", value=0),
    ])
"""

from __future__ import annotations

import uuid

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .exceptions import FormatConfigError


Scalar = Union[str, int, float, None]
FilterValue = Union[str, int, float, None]


class ColumnType(str, Enum):
    """Declared type of a column; governs parsing, formatting and operators."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


class DateGranularity(str, Enum):
    """Precision implied by a date pattern."""

    YEAR = "year"
    YEAR_MONTH = "year_month"
    DATE = "date"
    DATETIME = "datetime"


class SortDirection(str, Enum):
    """Sort direction for one sort level."""

    ASC = "asc"
    DESC = "desc"


class MetricType(str, Enum):
    """Reducers available to aggregation metrics."""

    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"


class TimeUnit(str, Enum):
    """Truncation unit for date group-by columns."""

    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


def generate_column_id() -> str:
    """Generate a unique column id."""
    return f"col_{uuid.uuid4().hex[:8]}"


class DatasheetModel(BaseModel):
    """Base model with camelCase aliases and immutable instances.

    Instances are frozen: every change produces a new object, which keeps
    identity-based memoization in the selector layer sound.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,  # Accept both snake_case and camelCase
        frozen=True,
        use_enum_values=False,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict with camelCase keys, excluding None values."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class NumberFormat(DatasheetModel):
    """Thousands/decimal separators used to display and parse numbers.

    Example:
        NumberFormat(thousands_separator=".", decimal_separator=",")
        # 1234.5 displays as "1.234,5"
    """

    thousands_separator: str = Field(default=",", max_length=1)
    decimal_separator: str = Field(default=".", min_length=1, max_length=1)

    @model_validator(mode="after")
    def _separators_differ(self) -> NumberFormat:
        if self.thousands_separator and self.thousands_separator == self.decimal_separator:
            raise FormatConfigError(
                "Thousands and decimal separators must differ",
                setting="number_format",
                separator=self.decimal_separator,
            )
        if self.decimal_separator.isdigit() or self.thousands_separator.isdigit():
            raise FormatConfigError("Separators cannot be digits", setting="number_format")
        return self


class Column(DatasheetModel):
    """Column metadata.

    Identity is ``id``; ``name`` is user-editable and may collide with
    another column's name (flagged by validation, identity unaffected).
    """

    id: str = Field(default_factory=generate_column_id)
    name: str = ""
    type: ColumnType = ColumnType.TEXT
    width: int = Field(default=150, ge=1)
    date_format: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, v: Any) -> Any:
        """Accept type tags in any case."""
        return v.lower() if isinstance(v, str) else v


class FilterCondition(DatasheetModel):
    """One predicate on a column.

    ``value`` may be a single value or a list (membership test for
    equals/not_equals). Range operators use ``value`` and ``value_end``;
    ``include_start``/``include_end`` override the operator's default
    inclusivity when set.
    """

    operator: str
    value: FilterValue | list[FilterValue] = None
    value_end: FilterValue = None
    include_start: bool | None = None
    include_end: bool | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _tuple_to_list(cls, v: Any) -> Any:
        """Accept tuples and sets for multi-value conditions."""
        if isinstance(v, (tuple, set, frozenset)):
            return list(v)
        return v


class ColumnFilter(DatasheetModel):
    """All conditions applied to one column; they combine with AND."""

    column_id: str
    conditions: tuple[FilterCondition, ...] = ()


class SortLevel(DatasheetModel):
    """One column/direction pair in a multi-level sort."""

    column_id: str
    direction: SortDirection = SortDirection.ASC


class GroupBySpec(DatasheetModel):
    """A group-by column, optionally truncated to a time unit (dates only)."""

    column_id: str
    time_unit: TimeUnit | None = None


class MetricSpec(DatasheetModel):
    """A reducer applied to one source column; one output column per metric."""

    type: MetricType
    column_id: str | None = None
    alias: str | None = None
    id: str | None = None


def _group_entries(v: Any) -> Any:
    """Allow plain column ids or Column objects as group-by entries."""
    if isinstance(v, (list, tuple)):
        out = []
        for item in v:
            if isinstance(item, str):
                out.append({"column_id": item})
            elif isinstance(item, Column):
                out.append({"column_id": item.id})
            else:
                out.append(item)
        return out
    return v


class AggregationSpec(DatasheetModel):
    """Group-by columns plus the metrics reduced per group."""

    group_by: tuple[GroupBySpec, ...] = ()
    metrics: tuple[MetricSpec, ...] = ()

    @field_validator("group_by", mode="before")
    @classmethod
    def _accept_column_ids(cls, v: Any) -> Any:
        return _group_entries(v)

    @property
    def is_active(self) -> bool:
        """True when the spec would change the displayed rows."""
        return bool(self.group_by or self.metrics)


class PivotSpec(DatasheetModel):
    """Row dimensions, column dimensions and the values reduced per cell.

    Each distinct combination of column-dimension values becomes a set
    of output columns, one per value.
    """

    rows: tuple[GroupBySpec, ...] = ()
    columns: tuple[GroupBySpec, ...] = ()
    values: tuple[MetricSpec, ...] = ()

    @field_validator("rows", "columns", mode="before")
    @classmethod
    def _accept_column_ids(cls, v: Any) -> Any:
        return _group_entries(v)

    @property
    def is_active(self) -> bool:
        return bool(self.rows or self.columns or self.values)


class DuplicateColumns(DatasheetModel):
    """Column names that appear more than once, and every index sharing them."""

    duplicate_names: tuple[str, ...] = ()
    duplicate_column_indices: tuple[int, ...] = ()


class ValidationState(DatasheetModel):
    """Advisory validation flags derived from columns and rows.

    ``parse_errors`` maps a row index to the sorted column indices whose
    cell fails to parse under the column's declared type.
    """

    duplicate_columns: DuplicateColumns = Field(default_factory=DuplicateColumns)
    empty_columns: tuple[int, ...] = ()
    parse_errors: dict[int, tuple[int, ...]] = Field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        """True when any flag is raised."""
        return bool(
            self.duplicate_columns.duplicate_names or self.empty_columns or self.parse_errors
        )
