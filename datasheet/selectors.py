"""Derived-state cache: memoized selectors over the dataset state.

A ``Selector`` recomputes only when one of its declared inputs changes,
and returns the previous result object when a recomputation produces an
equal value. Rendering layers that compare by identity therefore only
redraw the rows, columns and cells whose derived state really changed.

``DerivedStateCache`` hands out one selector per parameter value, so
asking for ``row_parse_errors(3)`` twice yields the same selector.

Usage:
    cache = DerivedStateCache()
    errors_of_row_2 = cache.row_parse_errors(2)
    errors_of_row_2(store.state)   # -> (0,)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .aggregation import AggregatedView, aggregate, apply_pivot
from .filters import filter_row_indices, unique_values
from .log import debug
from .sorting import sort_row_indices


if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Hashable

    from .models import Column, FilterCondition, SortDirection
    from .store import DatasetState


_UNSET: Any = object()


class Selector:
    """A memoized function of the dataset state.

    Parameters
    ----------
    inputs : tuple of callables
        Each takes the state and returns one dependency. Inputs can be
        other selectors.
    combiner : callable
        Receives the dependency values and returns the derived value.
    name : str, optional
        Used in debug logs.
    """

    def __init__(
        self,
        inputs: tuple[Callable[[DatasetState], Any], ...],
        combiner: Callable[..., Any],
        name: str = "selector",
    ) -> None:
        self._inputs = inputs
        self._combiner = combiner
        self.name = name
        self._last_args: tuple[Any, ...] | None = None
        self._last_result: Any = _UNSET
        self.recomputations = 0

    @staticmethod
    def _same(a: Any, b: Any) -> bool:
        return a is b or a == b

    def __call__(self, state: DatasetState) -> Any:
        """Return the derived value for ``state``."""
        args = tuple(dependency(state) for dependency in self._inputs)
        previous = self._last_args
        if previous is not None and all(self._same(a, b) for a, b in zip(args, previous)):
            return self._last_result
        debug(f"Recomputing {self.name}")
        result = self._combiner(*args)
        self.recomputations += 1
        self._last_args = args
        if self._last_result is not _UNSET and self._same(result, self._last_result):
            return self._last_result
        self._last_result = result
        return result

    def reset(self) -> None:
        """Forget the memoized value."""
        self._last_args = None
        self._last_result = _UNSET

    def __repr__(self) -> str:
        return f"Selector({self.name!r}, recomputations={self.recomputations})"


@dataclass(frozen=True)
class ColumnValidation:
    """Validation flags of one column."""

    is_duplicate: bool
    is_empty: bool


@dataclass(frozen=True)
class CellValidation:
    """Validation flags of one cell."""

    has_parse_error: bool


@dataclass(frozen=True)
class VisibleView:
    """What the grid displays after filtering, sorting and aggregation or pivot.

    Attributes
    ----------
    columns : tuple[Column, ...]
        Displayed columns (aggregated or pivot columns when one applies).
    rows : tuple[tuple[Any, ...], ...]
        Displayed rows.
    row_indices : tuple[int, ...]
        Source row index of each filtered and sorted row.
    aggregated : AggregatedView or None
        The aggregation or pivot result (a ``PivotView``), which also
        references the source data.
    """

    columns: tuple[Column, ...]
    rows: tuple[tuple[Any, ...], ...]
    row_indices: tuple[int, ...]
    aggregated: AggregatedView | None = None

    @property
    def is_aggregated(self) -> bool:
        """True when rows are groups rather than source rows."""
        return self.aggregated is not None


def compute_visible_view(
    columns: tuple[Column, ...],
    rows: tuple[tuple[Any, ...], ...],
    filters: Any,
    sort_levels: Any,
    aggregation: Any,
    number_format: Any,
    date_format: str | None,
    pivot: Any = None,
) -> VisibleView:
    """Filter, then sort, then pivot or aggregate."""
    indices = filter_row_indices(columns, rows, filters, number_format, date_format)
    indices = sort_row_indices(columns, rows, sort_levels, number_format, indices)
    visible = tuple(rows[i] for i in indices)
    if pivot is not None and pivot.is_active:
        aggregated: AggregatedView | None = apply_pivot(
            columns, visible, pivot, number_format, date_format, columns, rows
        )
    else:
        aggregated = aggregate(
            columns, visible, aggregation, number_format, date_format, columns, rows
        )
    if aggregated is not None:
        return VisibleView(aggregated.columns, aggregated.rows, tuple(indices), aggregated)
    return VisibleView(tuple(columns), visible, tuple(indices))


# --- Base inputs ---


def _columns(state: DatasetState) -> tuple[Column, ...]:
    return state.columns


def _rows(state: DatasetState) -> tuple[tuple[Any, ...], ...]:
    return state.rows


def _parse_errors(state: DatasetState) -> dict[int, tuple[int, ...]]:
    return state.validation.parse_errors


def _duplicate_indices(state: DatasetState) -> tuple[int, ...]:
    return state.validation.duplicate_columns.duplicate_column_indices


def _empty_columns(state: DatasetState) -> tuple[int, ...]:
    return state.validation.empty_columns


def _selected_row(state: DatasetState) -> int | None:
    return state.selected_row


def _selected_column(state: DatasetState) -> int | None:
    return state.selected_column


def _filters(state: DatasetState) -> Any:
    return state.filters


def _sort_levels(state: DatasetState) -> Any:
    return state.sort_levels


def _aggregation(state: DatasetState) -> Any:
    return state.aggregation


def _pivot(state: DatasetState) -> Any:
    return state.pivot


def _number_format(state: DatasetState) -> Any:
    return state.number_format


def _date_format(state: DatasetState) -> str | None:
    return state.date_format


_ROW_KEYED = frozenset({"row_parse_errors", "is_row_selected", "cell_validation"})
_COLUMN_KEYED = frozenset({"is_column_selected", "is_column_duplicate", "column_validation"})
_ID_KEYED = frozenset({"sort_direction", "filter_conditions", "unique_values"})


class DerivedStateCache:
    """Arena of selectors, one per (kind, parameters) key."""

    def __init__(self) -> None:
        self._selectors: dict[tuple[Hashable, ...], Selector] = {}

    def __len__(self) -> int:
        return len(self._selectors)

    def _get(
        self,
        key: tuple[Hashable, ...],
        inputs: tuple[Callable[[DatasetState], Any], ...],
        combiner: Callable[..., Any],
    ) -> Selector:
        selector = self._selectors.get(key)
        if selector is None:
            selector = Selector(inputs, combiner, name=":".join(str(k) for k in key))
            self._selectors[key] = selector
        return selector

    def clear(self) -> None:
        """Drop every selector, e.g. when a dataset is closed."""
        count = len(self._selectors)
        self._selectors.clear()
        debug(f"Cleared {count} derived-state selectors")

    def prune(
        self,
        row_count: int,
        column_count: int,
        column_ids: Collection[str] | None = None,
    ) -> int:
        """Drop selectors whose row, column or column id no longer exists.

        ``column_ids`` of None keeps every id-keyed selector. Returns the
        number of selectors dropped.
        """
        stale = []
        for key in self._selectors:
            kind = key[0]
            if kind in _ROW_KEYED and key[1] >= row_count:
                stale.append(key)
            elif kind == "cell_validation" and key[2] >= column_count:
                stale.append(key)
            elif kind in _COLUMN_KEYED and key[1] >= column_count:
                stale.append(key)
            elif kind in _ID_KEYED and column_ids is not None and key[1] not in column_ids:
                stale.append(key)
        for key in stale:
            del self._selectors[key]
        if stale:
            debug(f"Pruned {len(stale)} derived-state selectors")
        return len(stale)

    # --- Row / column / cell selectors ---

    def row_parse_errors(self, row: int) -> Selector:
        """Column indices with a parse error in ``row``."""

        def combine(errors: dict[int, tuple[int, ...]]) -> tuple[int, ...]:
            return tuple(errors.get(row, ()))

        return self._get(("row_parse_errors", row), (_parse_errors,), combine)

    def is_row_selected(self, row: int) -> Selector:
        return self._get(("is_row_selected", row), (_selected_row,), lambda sel: sel == row)

    def is_column_selected(self, column: int) -> Selector:
        return self._get(
            ("is_column_selected", column), (_selected_column,), lambda sel: sel == column
        )

    def is_column_duplicate(self, column: int) -> Selector:
        return self._get(
            ("is_column_duplicate", column),
            (_duplicate_indices,),
            lambda indices: column in indices,
        )

    def column_validation(self, column: int) -> Selector:
        """Duplicate and empty flags of one column."""
        return self._get(
            ("column_validation", column),
            (self.is_column_duplicate(column), _empty_columns),
            lambda duplicate, empty: ColumnValidation(
                is_duplicate=bool(duplicate), is_empty=column in empty
            ),
        )

    def cell_validation(self, row: int, column: int) -> Selector:
        """Parse-error flag of one cell; depends only on its row's errors."""
        return self._get(
            ("cell_validation", row, column),
            (self.row_parse_errors(row),),
            lambda errors: CellValidation(has_parse_error=column in errors),
        )

    # --- Configuration selectors ---

    def sort_direction(self, column_id: str) -> Selector:
        """Direction of the sort level on ``column_id``, or None."""

        def combine(levels: Any) -> SortDirection | None:
            return next((lvl.direction for lvl in levels if lvl.column_id == column_id), None)

        return self._get(("sort_direction", column_id), (_sort_levels,), combine)

    def filter_conditions(self, column_id: str) -> Selector:
        """Conditions filtering ``column_id`` (empty when unfiltered)."""

        def combine(filters: Any) -> tuple[FilterCondition, ...]:
            return tuple(
                condition
                for flt in filters
                if flt.column_id == column_id
                for condition in flt.conditions
            )

        return self._get(("filter_conditions", column_id), (_filters,), combine)

    # --- Dataset views ---

    def visible_view(self) -> Selector:
        """The filtered, sorted and aggregated (or pivoted) view."""
        return self._get(
            ("visible_view",),
            (
                _columns,
                _rows,
                _filters,
                _sort_levels,
                _aggregation,
                _number_format,
                _date_format,
                _pivot,
            ),
            compute_visible_view,
        )

    def unique_values(self, column_id: str) -> Selector:
        """Distinct values of a column, always taken from the source rows."""
        return self._get(
            ("unique_values", column_id),
            (_columns, _rows, _number_format),
            lambda columns, rows, nf: tuple(unique_values(columns, rows, column_id, nf)),
        )
