"""Tests for column type and format detection."""

from __future__ import annotations

import pytest

from datasheet.detection import (
    analyze_column,
    apply_detected_types,
    detect_column_formats,
    detect_dataframe_types,
    has_leading_zero_codes,
    infer_columns,
)
from datasheet.models import Column, ColumnType, NumberFormat


MIXED_ROWS = [
    ["01/03/2024", "1,234.5", "North"],
    ["15/03/2024", "2,000", "South"],
]


class TestAnalyzeColumn:
    """Tests for single-column scoring."""

    def test_day_first_dates(self):
        """A day above 12 settles DD/MM/YYYY."""
        analysis = analyze_column(["15/03/2024", "01/02/2024"])
        assert analysis.type is ColumnType.DATE
        assert analysis.date_format == "DD/MM/YYYY"
        assert analysis.confidence == pytest.approx(0.8)

    def test_month_first_dates(self):
        """A second part above 12 settles MM/DD/YYYY."""
        analysis = analyze_column(["03/15/2024", "12/25/2024"])
        assert analysis.date_format == "MM/DD/YYYY"

    def test_iso_dates(self):
        """ISO dates are recognized with high confidence."""
        analysis = analyze_column(["2024-01-05", "2024-02-10"])
        assert analysis.date_format == "YYYY-MM-DD"
        assert analysis.confidence == pytest.approx(0.9)

    def test_plain_numbers_prefer_no_separator(self):
        """Unused thousands separators are penalized."""
        analysis = analyze_column(["100", "200"])
        assert analysis.type is ColumnType.NUMBER
        assert analysis.number_format == NumberFormat(thousands_separator="", decimal_separator=".")
        assert analysis.confidence == pytest.approx(0.7)

    def test_grouped_numbers(self):
        """Comma grouping with a period decimal."""
        analysis = analyze_column(["1,234.5", "2,000"])
        assert analysis.number_format == NumberFormat(thousands_separator=",", decimal_separator=".")
        assert analysis.confidence == pytest.approx(0.9)

    def test_years_read_as_numbers(self):
        """Bare years score higher as numbers than as dates."""
        assert analyze_column(["2020", "2021"]).type is ColumnType.NUMBER

    def test_text(self):
        """Words stay text with a neutral confidence."""
        analysis = analyze_column(["North", "South"])
        assert analysis.type is ColumnType.TEXT
        assert analysis.confidence == 0.5

    def test_mostly_text(self):
        """A minority of numbers does not make a number column."""
        assert analyze_column(["a", "b", "c", "1"]).type is ColumnType.TEXT

    def test_no_samples(self):
        """An empty sample is text with zero confidence."""
        analysis = analyze_column([])
        assert analysis.type is ColumnType.TEXT
        assert analysis.confidence == 0.0


class TestDetectColumnFormats:
    """Tests for dataset-wide detection."""

    def test_mixed_dataset(self):
        """Types per column plus the dominant formats."""
        result = detect_column_formats(MIXED_ROWS)
        assert result.column_types == [ColumnType.DATE, ColumnType.NUMBER, ColumnType.TEXT]
        assert result.date_format == "DD/MM/YYYY"
        assert result.date_format_confidence == pytest.approx(0.8)
        assert result.number_format == NumberFormat(thousands_separator=",", decimal_separator=".")
        assert result.number_format_confidence == pytest.approx(0.9)

    def test_blank_cells_are_ignored(self):
        """Only non-blank samples are scored."""
        result = detect_column_formats([["1"], [""], [None], ["2"]])
        assert result.column_types == [ColumnType.NUMBER]

    def test_sample_size(self):
        """Only the first max_rows rows are sampled."""
        rows = [["1"], ["2"]] + [["x"]] * 10
        assert detect_column_formats(rows, max_rows=2).column_types == [ColumnType.NUMBER]

    def test_empty_rows(self):
        """No rows means the fallback formats with no confidence."""
        result = detect_column_formats([])
        assert result.columns == ()
        assert result.date_format == "YYYY-MM-DD"
        assert result.number_format_confidence == 0.0

    def test_apply_requires_exceeding_threshold(self):
        """Confidence equal to the threshold keeps the declared type."""
        columns = [Column(id="n", name="N")]
        result = detect_column_formats([["100"], ["200"]])
        assert apply_detected_types(columns, result, threshold=0.7)[0].type is ColumnType.TEXT
        assert apply_detected_types(columns, result, threshold=0.6)[0].type is ColumnType.NUMBER

    def test_infer_columns(self):
        """Header names become typed columns."""
        columns, result = infer_columns(["When", "Qty", "Region"], MIXED_ROWS)
        assert [c.name for c in columns] == ["When", "Qty", "Region"]
        assert [c.type for c in columns] == result.column_types


class TestDataFrameTypes:
    """Tests for pandas dtype mapping."""

    def test_leading_zero_codes(self):
        """Multi-digit strings starting with 0 are codes."""
        assert has_leading_zero_codes(["12", "007"])
        assert not has_leading_zero_codes(["0", "10", "0.5"])

    def test_dtypes(self):
        """Dtypes and sniffed object columns map to column types."""
        pd = pytest.importorskip("pandas")
        frame = pd.DataFrame(
            {
                "when": pd.to_datetime(["2024-01-01", "2024-01-02"]),
                "count": [1, 2],
                "ratio": [0.5, 1.5],
                "flag": [True, False],
                "zip": ["01234", "02134"],
                "amount": ["1,234", "5"],
                "label": ["a", "b"],
            }
        )
        assert detect_dataframe_types(frame) == {
            "when": ColumnType.DATE,
            "count": ColumnType.NUMBER,
            "ratio": ColumnType.NUMBER,
            "flag": ColumnType.TEXT,
            "zip": ColumnType.TEXT,
            "amount": ColumnType.NUMBER,
            "label": ColumnType.TEXT,
        }

    def test_not_a_dataframe(self):
        """Objects without dtypes map to nothing."""
        assert detect_dataframe_types([[1, 2]]) == {}
