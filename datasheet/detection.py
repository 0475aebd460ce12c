"""Column type and format detection.

Samples the first rows of a dataset and scores each column against a
catalog of date and number patterns. Scores are ``match ratio x pattern
confidence``; a column becomes ``date`` or ``number`` only when its best
score clears the threshold and beats the other kind, otherwise it stays
``text``.

Usage:
    result = detect_column_formats(rows)
    columns = apply_detected_types(columns, result)
"""

from __future__ import annotations

import re

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import Field

from .formatting import DEFAULT_NUMBER_FORMAT, is_blank
from .log import debug
from .models import Column, ColumnType, DatasheetModel, NumberFormat


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


COLUMN_TYPE_CONFIDENCE_THRESHOLD = 0.6
FORMAT_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_SAMPLE_ROWS = 20

# Number patterns whose thousands separator never shows up in the sample
# are scored down by this factor.
UNUSED_SEPARATOR_PENALTY = 0.7

FALLBACK_DATE_FORMAT = "YYYY-MM-DD"


def _day_first(separator: str) -> Callable[[str], bool]:
    def check(value: str) -> bool:
        day, month = (int(part) for part in value.split(separator)[:2])
        return day > 12 or month <= 12

    return check


def _month_first(separator: str) -> Callable[[str], bool]:
    def check(value: str) -> bool:
        first, second = (int(part) for part in value.split(separator)[:2])
        return first <= 12 and second > 12

    return check


def _plausible_year(value: str) -> bool:
    return 1900 <= int(value) <= 2100


@dataclass(frozen=True)
class DatePattern:
    """A recognizable date shape and how much a match is trusted."""

    format: str
    regex: re.Pattern[str]
    confidence: float
    check: Callable[[str], bool] | None = None

    def matches(self, value: str) -> bool:
        if not self.regex.match(value):
            return False
        return self.check(value) if self.check is not None else True


@dataclass(frozen=True)
class NumberPattern:
    """A number shape for one separator pair."""

    thousands_separator: str
    decimal_separator: str
    regex: re.Pattern[str]
    confidence: float

    def matches(self, value: str) -> bool:
        return bool(self.regex.match(value))

    @property
    def number_format(self) -> NumberFormat:
        return NumberFormat(
            thousands_separator=self.thousands_separator,
            decimal_separator=self.decimal_separator,
        )


# Ambiguous day/month orders carry a check; the first best score wins ties.
DATE_PATTERNS: tuple[DatePattern, ...] = (
    DatePattern("YYYY-MM-DD HH:mm:ss", re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$"), 0.95),
    DatePattern("YYYY-MM-DD", re.compile(r"^\d{4}-\d{2}-\d{2}$"), 0.9),
    DatePattern("YYYY/MM/DD", re.compile(r"^\d{4}/\d{2}/\d{2}$"), 0.9),
    DatePattern("DD Month YYYY", re.compile(r"^\d{2} [A-Za-z]+ \d{4}$"), 0.85),
    DatePattern("DD/MM/YYYY", re.compile(r"^\d{2}/\d{2}/\d{4}$"), 0.8, _day_first("/")),
    DatePattern("MM/DD/YYYY", re.compile(r"^\d{2}/\d{2}/\d{4}$"), 0.8, _month_first("/")),
    DatePattern("DD-MM-YYYY", re.compile(r"^\d{2}-\d{2}-\d{4}$"), 0.8, _day_first("-")),
    DatePattern("MM-DD-YYYY", re.compile(r"^\d{2}-\d{2}-\d{4}$"), 0.8, _month_first("-")),
    DatePattern("YYYY", re.compile(r"^\d{4}$"), 0.6, _plausible_year),
)

NUMBER_PATTERNS: tuple[NumberPattern, ...] = (
    NumberPattern(",", ".", re.compile(r"^-?\d{1,3}(,\d{3})*(\.\d+)?$"), 0.9),
    NumberPattern(".", ",", re.compile(r"^-?\d{1,3}(\.\d{3})*(,\d+)?$"), 0.9),
    NumberPattern(" ", ".", re.compile(r"^-?\d{1,3}( \d{3})*(\.\d+)?$"), 0.8),
    NumberPattern("", ".", re.compile(r"^-?\d+(\.\d+)?$"), 0.7),
    NumberPattern("", ",", re.compile(r"^-?\d+(,\d+)?$"), 0.7),
)


class ColumnAnalysis(DatasheetModel):
    """Detected type of one column."""

    type: ColumnType = ColumnType.TEXT
    confidence: float = 0.0
    date_format: str | None = None
    number_format: NumberFormat | None = None


class DetectionResult(DatasheetModel):
    """Per-column types plus the dataset-wide number and date formats."""

    columns: tuple[ColumnAnalysis, ...] = ()
    number_format: NumberFormat = Field(default_factory=NumberFormat)
    number_format_confidence: float = 0.0
    date_format: str = FALLBACK_DATE_FORMAT
    date_format_confidence: float = 0.0

    @property
    def column_types(self) -> list[ColumnType]:
        return [col.type for col in self.columns]


def _samples(rows: Sequence[Sequence[Any]], index: int) -> list[str]:
    values = (row[index] if index < len(row) else None for row in rows)
    return [str(v).strip() for v in values if not is_blank(v)]


def analyze_column(samples: Sequence[str], threshold: float = COLUMN_TYPE_CONFIDENCE_THRESHOLD) -> ColumnAnalysis:
    """Score one column's non-blank samples against the pattern catalogs."""
    if not samples:
        return ColumnAnalysis(type=ColumnType.TEXT, confidence=0.0)
    total = len(samples)

    date_score, best_date = 0.0, None
    for pattern in DATE_PATTERNS:
        score = sum(1 for s in samples if pattern.matches(s)) / total * pattern.confidence
        if score > date_score:
            date_score, best_date = score, pattern

    number_score, best_number = 0.0, None
    for pattern in NUMBER_PATTERNS:
        score = sum(1 for s in samples if pattern.matches(s)) / total * pattern.confidence
        if pattern.thousands_separator and not any(
            pattern.thousands_separator in s for s in samples
        ):
            score *= UNUSED_SEPARATOR_PENALTY
        if score > number_score:
            number_score, best_number = score, pattern

    if best_date is not None and date_score > threshold and date_score > number_score:
        return ColumnAnalysis(type=ColumnType.DATE, confidence=date_score, date_format=best_date.format)
    if best_number is not None and number_score > threshold and number_score > date_score:
        return ColumnAnalysis(
            type=ColumnType.NUMBER, confidence=number_score, number_format=best_number.number_format
        )
    return ColumnAnalysis(type=ColumnType.TEXT, confidence=0.5)


def _dominant_date_format(analyses: Sequence[ColumnAnalysis]) -> tuple[str, float]:
    confidences: dict[str, list[float]] = {}
    for analysis in analyses:
        if analysis.type is ColumnType.DATE and analysis.date_format:
            confidences.setdefault(analysis.date_format, []).append(analysis.confidence)
    if not confidences:
        return FALLBACK_DATE_FORMAT, 0.0
    best, best_confidence = FALLBACK_DATE_FORMAT, 0.0
    for fmt, values in confidences.items():
        average = sum(values) / len(values)
        if average > best_confidence:
            best, best_confidence = fmt, average
    return best, best_confidence


def _dominant_number_format(analyses: Sequence[ColumnAnalysis]) -> tuple[NumberFormat, float]:
    thousands: dict[str, list[float]] = {}
    decimals: dict[str, list[float]] = {}
    for analysis in analyses:
        if analysis.type is ColumnType.NUMBER and analysis.number_format is not None:
            nf = analysis.number_format
            thousands.setdefault(nf.thousands_separator, []).append(analysis.confidence)
            decimals.setdefault(nf.decimal_separator, []).append(analysis.confidence)
    if not thousands:
        return DEFAULT_NUMBER_FORMAT, 0.0

    best_thousands, thousands_confidence = ",", 0.0
    for separator, values in thousands.items():
        average = sum(values) / len(values)
        if average > thousands_confidence:
            best_thousands, thousands_confidence = separator, average

    best_decimal, decimal_confidence = ".", 0.0
    for separator, values in decimals.items():
        if separator == best_thousands:
            continue
        average = sum(values) / len(values)
        if average > decimal_confidence:
            best_decimal, decimal_confidence = separator, average

    if best_thousands == best_decimal:
        if best_thousands == ",":
            best_decimal = "."
        else:
            best_thousands = ","
    number_format = NumberFormat(thousands_separator=best_thousands, decimal_separator=best_decimal)
    return number_format, (thousands_confidence + decimal_confidence) / 2


def detect_column_formats(
    rows: Sequence[Sequence[Any]],
    max_rows: int = DEFAULT_SAMPLE_ROWS,
    threshold: float = COLUMN_TYPE_CONFIDENCE_THRESHOLD,
) -> DetectionResult:
    """Detect column types and the dataset's number and date formats.

    Parameters
    ----------
    rows : sequence of rows
        Raw rows; only the first ``max_rows`` are sampled.
    max_rows : int
        Sample size.
    threshold : float
        Minimum score for a column to leave the ``text`` type.

    Returns
    -------
    DetectionResult
        Column analyses in column order plus dataset-wide formats.
    """
    sample = list(rows[:max_rows])
    if not sample or not sample[0]:
        return DetectionResult()
    width = len(sample[0])
    analyses = tuple(analyze_column(_samples(sample, i), threshold) for i in range(width))
    date_format, date_confidence = _dominant_date_format(analyses)
    number_format, number_confidence = _dominant_number_format(analyses)
    debug(
        f"Detected column types {[a.type.value for a in analyses]}, "
        f"date format {date_format!r} ({date_confidence:.2f}), "
        f"separators {number_format.thousands_separator!r}/{number_format.decimal_separator!r} "
        f"({number_confidence:.2f})"
    )
    return DetectionResult(
        columns=analyses,
        number_format=number_format,
        number_format_confidence=number_confidence,
        date_format=date_format,
        date_format_confidence=date_confidence,
    )


def apply_detected_types(
    columns: Sequence[Column],
    result: DetectionResult,
    threshold: float = COLUMN_TYPE_CONFIDENCE_THRESHOLD,
) -> list[Column]:
    """Adopt detected types whose confidence exceeds ``threshold``."""
    updated: list[Column] = []
    for index, column in enumerate(columns):
        analysis = result.columns[index] if index < len(result.columns) else None
        if analysis is not None and analysis.confidence > threshold and analysis.type is not column.type:
            column = column.model_copy(update={"type": analysis.type})
        updated.append(column)
    return updated


def infer_columns(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    max_rows: int = DEFAULT_SAMPLE_ROWS,
    threshold: float = COLUMN_TYPE_CONFIDENCE_THRESHOLD,
) -> tuple[list[Column], DetectionResult]:
    """Build typed columns for raw header names and rows."""
    result = detect_column_formats(rows, max_rows, threshold)
    columns = [Column(name=str(name)) for name in headers]
    return apply_detected_types(columns, result, threshold), result


def detect_dataframe_types(data: Any) -> dict[str, ColumnType]:
    """Map pandas dtypes to column types.

    datetime64 becomes ``date``; int and float become ``number``; bool
    and timedelta columns are ``text``. Object columns are classified from
    their values, except that digit strings with leading zeros ("007")
    are codes and force ``text``.
    """
    if not hasattr(data, "dtypes"):
        return {}

    column_types: dict[str, ColumnType] = {}
    for col, dtype in data.dtypes.items():
        dtype_str = str(dtype)
        col_str = str(col)
        if "datetime64" in dtype_str:
            column_types[col_str] = ColumnType.DATE
        elif dtype_str in {"bool", "boolean"} or "timedelta64" in dtype_str:
            column_types[col_str] = ColumnType.TEXT
        elif "int" in dtype_str or "float" in dtype_str:
            column_types[col_str] = ColumnType.NUMBER
        else:
            # object / string dtypes: sniff the values unless they look like codes
            sample = [str(v).strip() for v in data[col].dropna().head(100)]
            if has_leading_zero_codes(sample):
                column_types[col_str] = ColumnType.TEXT
            else:
                column_types[col_str] = analyze_column(
                    [s for s in sample if s][:DEFAULT_SAMPLE_ROWS]
                ).type
    return column_types


def has_leading_zero_codes(values: Sequence[Any]) -> bool:
    """True when any value is a multi-digit string starting with ``0``."""
    for value in values:
        text = str(value)
        if len(text) > 1 and text[0] == "0" and text.isdigit():
            return True
    return False
