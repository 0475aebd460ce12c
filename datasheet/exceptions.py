"""datasheet exception hierarchy.

All datasheet-specific exceptions inherit from DatasheetError. Engine
functions never raise for bad cell data; these exceptions are reserved
for explicit store mutations and invalid format configuration.
"""

from __future__ import annotations

from typing import Any


class DatasheetError(Exception):
    """Base exception for all datasheet errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize datasheet exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (column_id, row, column, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ColumnNotFoundError(DatasheetError):
    """A store mutation referenced a column id that does not exist."""

    def __init__(self, message: str, column_id: str, **context: Any) -> None:
        """Initialize column error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        column_id : str
            The unknown column id.
        **context : Any
            Additional context.
        """
        super().__init__(message, column_id=column_id, **context)
        self.column_id = column_id


class CellIndexError(DatasheetError):
    """A store mutation targeted a row or cell outside the dataset."""

    def __init__(
        self,
        message: str,
        row: int | None = None,
        column: int | None = None,
        **context: Any,
    ) -> None:
        """Initialize cell index error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        row : int, optional
            The offending row index.
        column : int, optional
            The offending column index.
        **context : Any
            Additional context.
        """
        super().__init__(message, row=row, column=column, **context)
        self.row = row
        self.column = column


class FormatConfigError(DatasheetError):
    """A number or date format configuration is unusable.

    Raised when thousands and decimal separators collide, or when a
    date pattern carries no date tokens at all.
    """

    def __init__(self, message: str, setting: str | None = None, **context: Any) -> None:
        """Initialize format configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        setting : str, optional
            The offending setting name.
        **context : Any
            Additional context.
        """
        super().__init__(message, setting=setting, **context)
        self.setting = setting
