"""Locale formatting between canonical values and display strings.

Canonical numbers are Python ints/floats or plain numeric strings
("-1234.5"); canonical dates are ISO-like strings ("2024-03-01",
"2024-03-01T09:30:00", "2024-03", "2024"). Display strings use the
dataset's NumberFormat and date pattern.

Formatting is total: values that cannot be interpreted are returned as
their original string so the grid stays renderable and the validation
engine can flag the cell.
"""

from __future__ import annotations

import math
import re
import unicodedata

from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any

from .models import DateGranularity, NumberFormat


DEFAULT_NUMBER_FORMAT = NumberFormat()
DEFAULT_DATE_FORMAT = "DD/MM/YYYY"

#: Separator presets offered to users (thousands, decimal).
NUMBER_FORMAT_PRESETS: tuple[NumberFormat, ...] = (
    NumberFormat(thousands_separator=",", decimal_separator="."),
    NumberFormat(thousands_separator=".", decimal_separator=","),
    NumberFormat(thousands_separator=" ", decimal_separator="."),
    NumberFormat(thousands_separator="", decimal_separator="."),
    NumberFormat(thousands_separator="", decimal_separator=","),
)

#: Explicit date patterns and their granularity.
KNOWN_DATE_FORMATS: dict[str, DateGranularity] = {
    "YYYY": DateGranularity.YEAR,
    "YYYY-MM": DateGranularity.YEAR_MONTH,
    "YY-MM": DateGranularity.YEAR_MONTH,
    "MM/YY": DateGranularity.YEAR_MONTH,
    "MM/YYYY": DateGranularity.YEAR_MONTH,
    "DD Month YYYY": DateGranularity.DATE,
    "YYYY-MM-DD": DateGranularity.DATE,
    "DD/MM/YYYY": DateGranularity.DATE,
    "MM/DD/YYYY": DateGranularity.DATE,
    "YYYY/MM/DD": DateGranularity.DATE,
    "DD-MM-YYYY": DateGranularity.DATE,
    "MM-DD-YYYY": DateGranularity.DATE,
    "YYYY-MM-DD HH:mm:ss": DateGranularity.DATETIME,
    "YYYY-MM-DDTHH:mm:ss": DateGranularity.DATETIME,
}

# Markers left by older exports; their presence means the value was already
# formatted. They only stop re-formatting and are never stripped when parsing.
LEGACY_GROUP_MARKERS = ("@", "#")

_CANONICAL_NUMBER_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
_PLAIN_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_WHITESPACE_RE = re.compile(r"\s+")
_ISO_DATE_RE = re.compile(
    r"^(\d{4})(?:-(\d{1,2})(?:-(\d{1,2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?)?)?$"
)
_DATE_TOKEN_RE = re.compile(r"Month|YYYY|YY|MMMM|MMM|MM|DD|HH|mm|ss")
_STRFTIME_TOKENS = {
    "YYYY": "%Y",
    "YY": "%y",
    "MMMM": "%B",
    "Month": "%B",
    "MMM": "%b",
    "MM": "%m",
    "DD": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}


# --- Helpers ---


def is_blank(value: Any) -> bool:
    """Return True for None, NaN and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def canonical_number_string(value: float | int) -> str:
    """Render a number without exponent or trailing ``.0``."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        return str(value)
    text = repr(value)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in {"-0", ""}:
        text = "0"
    return text


def _group_thousands(digits: str, separator: str) -> str:
    if not separator or len(digits) <= 3:
        return digits
    head = len(digits) % 3 or 3
    groups = [digits[:head]] + [digits[i : i + 3] for i in range(head, len(digits), 3)]
    return separator.join(groups)


def is_formatted_number(text: str, number_format: NumberFormat) -> bool:
    """Check whether a string already carries display separators.

    A period thousands separator is ambiguous with the canonical decimal
    point, so it only counts when the string looks grouped ("1.234.567").
    """
    if any(marker in text for marker in LEGACY_GROUP_MARKERS):
        return True
    thousands = number_format.thousands_separator
    decimal = number_format.decimal_separator
    if decimal != "." and decimal in text:
        return True
    if thousands and thousands in text:
        if thousands != ".":
            return True
        return bool(re.match(r"^[+-]?\d{1,3}(\.\d{3})+$", text))
    return False


def normalize_number_input(raw: Any, number_format: NumberFormat | None = None) -> str:
    """Normalize a localized numeric string to canonical form.

    Removes thousands separators and whitespace and turns the decimal
    separator into ``.``.
    """
    if raw is None:
        return ""
    text = str(raw).strip()
    if number_format is None:
        return _WHITESPACE_RE.sub("", text)
    if number_format.thousands_separator:
        text = text.replace(number_format.thousands_separator, "")
    if number_format.decimal_separator != ".":
        text = text.replace(number_format.decimal_separator, ".")
    return _WHITESPACE_RE.sub("", text)


# --- Numbers ---


def parse_number(value: Any, number_format: NumberFormat | None = None) -> float | None:
    """Parse a cell or user input into a float.

    Returns None when the value is blank or cannot be read as a number
    under ``number_format``. Never raises.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if is_blank(value):
        return None
    nf = number_format or DEFAULT_NUMBER_FORMAT
    text = str(value).strip()
    if _CANONICAL_NUMBER_RE.match(text) and not is_formatted_number(text, nf):
        return float(text)
    cleaned = normalize_number_input(text, nf)
    if not _PLAIN_NUMBER_RE.match(cleaned):
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def format_number(value: Any, number_format: NumberFormat | None = None) -> str:
    """Format a canonical number for display.

    Groups the integer part in runs of three with the thousands separator,
    joins the fraction with the decimal separator and keeps a leading
    ``-``. Strings that already carry the configured separators (or legacy
    grouping markers) and strings that are not numbers are returned
    unchanged, so formatting twice is harmless.

    With a period thousands separator a canonical string such as "1.234"
    cannot be told apart from a grouped value, so it is returned as-is and
    parses back as 1234. Pass numbers rather than strings to avoid this.
    """
    if is_blank(value):
        return ""
    nf = number_format or DEFAULT_NUMBER_FORMAT
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return str(value)
        text = canonical_number_string(value)
    else:
        text = str(value).strip()
        if is_formatted_number(text, nf) or not _CANONICAL_NUMBER_RE.match(text):
            return value if isinstance(value, str) else text

    negative = text.startswith("-")
    text = text.lstrip("+-")
    integer, _, fraction = text.partition(".")
    out = _group_thousands(integer, nf.thousands_separator)
    if fraction:
        out = f"{out}{nf.decimal_separator}{fraction}"
    return f"-{out}" if negative else out


# --- Dates ---


@lru_cache(maxsize=64)
def granularity_from_format(pattern: str | None) -> DateGranularity:
    """Infer date granularity from a display pattern.

    Known patterns map directly; otherwise tokens decide: hours or a
    colon mean datetime, a day token means date, year plus month means
    year_month, anything else is year-only.
    """
    if not pattern:
        return DateGranularity.DATE
    if pattern in KNOWN_DATE_FORMATS:
        return KNOWN_DATE_FORMATS[pattern]
    if "H" in pattern or ":" in pattern:
        return DateGranularity.DATETIME
    if "D" in pattern:
        return DateGranularity.DATE
    has_month = bool(re.search(r"M{1,2}", pattern)) or "Month" in pattern
    if re.search(r"Y{2,4}", pattern) and has_month:
        return DateGranularity.YEAR_MONTH
    return DateGranularity.YEAR


@lru_cache(maxsize=64)
def to_strftime(pattern: str) -> str:
    """Translate a display pattern ("DD/MM/YYYY") into strftime directives."""
    parts: list[str] = []
    pos = 0
    for match in _DATE_TOKEN_RE.finditer(pattern):
        parts.append(pattern[pos : match.start()].replace("%", "%%"))
        parts.append(_STRFTIME_TOKENS[match.group(0)])
        pos = match.end()
    parts.append(pattern[pos:].replace("%", "%%"))
    return "".join(parts)


def has_date_tokens(pattern: str) -> bool:
    """Return True when the pattern contains at least one date token."""
    return bool(_DATE_TOKEN_RE.search(pattern))


def _parse_iso(text: str) -> datetime | None:
    match = _ISO_DATE_RE.match(text)
    if not match:
        return None
    year, month, day, hour, minute, second = match.groups()
    try:
        return datetime(
            int(year),
            int(month or 1),
            int(day or 1),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
        )
    except ValueError:
        return None


def parse_date(value: Any, pattern: str | None = None) -> datetime | None:
    """Parse a cell or user input into a datetime.

    Accepts datetime/date objects, canonical ISO strings, strings in the
    given display pattern, and bare years for year-only patterns.
    Returns None when nothing fits. Never raises.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, (int, float)):
        if float(value).is_integer() and 0 < value < 10000:
            return datetime(int(value), 1, 1)
        return None
    text = str(value).strip()
    parsed = _parse_iso(text)
    if parsed is not None:
        return parsed
    if pattern:
        try:
            return datetime.strptime(text, to_strftime(pattern))
        except ValueError:
            pass
        # Display patterns are case-sensitive for month names; retry title-cased
        if "Month" in pattern or "MMM" in pattern:
            try:
                return datetime.strptime(text.title(), to_strftime(pattern))
            except ValueError:
                return None
    return None


def parse_date_cell(
    value: Any,
    pattern: str | None = None,
    number_format: NumberFormat | None = None,
) -> datetime | None:
    """Parse a date column cell the way validation, filters and grouping read it.

    Year-only patterns also accept whole numbers typed with the dataset's
    separators ("2,024").
    """
    parsed = parse_date(value, pattern)
    if parsed is not None or granularity_from_format(pattern) is not DateGranularity.YEAR:
        return parsed
    number = parse_number(value, number_format)
    if number is not None and number.is_integer() and 0 < number < 10000:
        return datetime(int(number), 1, 1)
    return None


def truncate_date(value: datetime, granularity: DateGranularity) -> datetime:
    """Drop the parts of a datetime finer than ``granularity``."""
    if granularity is DateGranularity.YEAR:
        return datetime(value.year, 1, 1)
    if granularity is DateGranularity.YEAR_MONTH:
        return datetime(value.year, value.month, 1)
    if granularity is DateGranularity.DATE:
        return datetime(value.year, value.month, value.day)
    return value.replace(microsecond=0, tzinfo=None)


def canonical_date_string(value: datetime, granularity: DateGranularity) -> str:
    """Render a datetime as a canonical ISO-like string at a granularity."""
    if granularity is DateGranularity.YEAR:
        return f"{value.year:04d}"
    if granularity is DateGranularity.YEAR_MONTH:
        return f"{value.year:04d}-{value.month:02d}"
    if granularity is DateGranularity.DATE:
        return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def format_date(value: Any, pattern: str | None = None) -> str:
    """Format a canonical date for display in ``pattern``.

    Unparseable values are returned as their original string.
    """
    if is_blank(value):
        return ""
    parsed = parse_date(value, pattern)
    if parsed is None:
        return str(value).strip() if isinstance(value, str) else str(value)
    if not pattern:
        if isinstance(value, str):
            return value.strip().replace("T", " ")
        return canonical_date_string(parsed, DateGranularity.DATETIME).replace("T", " ")
    return parsed.strftime(to_strftime(pattern))


def parse_date_display(value: Any, pattern: str | None = None) -> str | None:
    """Inverse of ``format_date``: display string to canonical ISO string.

    The canonical string carries the granularity of ``pattern``. Returns
    None when the value does not parse.
    """
    parsed = parse_date(value, pattern)
    if parsed is None:
        return None
    return canonical_date_string(parsed, granularity_from_format(pattern))


# --- Text ---


def fold_text(value: Any) -> str:
    """Case- and accent-insensitive form of a cell used for comparisons."""
    text = "" if value is None else str(value)
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def natural_key(value: Any) -> tuple[tuple[int, Any], ...]:
    """Sort key comparing digit runs numerically ("Item 2" < "Item 10")."""
    parts = re.split(r"(\d+)", fold_text(value).strip())
    return tuple((0, int(part)) if part.isdecimal() else (1, part) for part in parts if part)
