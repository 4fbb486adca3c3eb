# ========================
# csv_exchange/pipeline/errors.py
# ========================

"""
Error Taxonomy

Row- and field-scoped problems are collected as ValidationError records and
never raised. Exceptions are reserved for failures that end a whole operation.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    STRUCTURAL = "structural"
    FIELD = "field"
    ROW = "row"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Machine-readable reason codes carried by every ValidationError."""

    # Structural (row shape, quoting, header)
    UNTERMINATED_QUOTE = "UNTERMINATED_QUOTE"
    MALFORMED_QUOTE = "MALFORMED_QUOTE"
    FIELD_TOO_LARGE = "FIELD_TOO_LARGE"
    FIELD_COUNT_MISMATCH = "FIELD_COUNT_MISMATCH"
    DUPLICATE_HEADER = "DUPLICATE_HEADER"
    MISSING_HEADER = "MISSING_HEADER"
    MISSING_COLUMN = "MISSING_COLUMN"

    # Field level
    TYPE_MISMATCH = "TYPE_MISMATCH"
    FORMAT_MISMATCH = "FORMAT_MISMATCH"
    NULL_NOT_ALLOWED = "NULL_NOT_ALLOWED"

    # Row level
    UNKNOWN_COLUMN = "UNKNOWN_COLUMN"
    RULE_VIOLATION = "RULE_VIOLATION"

    @property
    def category(self) -> ErrorCategory:
        if self in _FIELD_KINDS:
            return ErrorCategory.FIELD
        if self in _ROW_KINDS:
            return ErrorCategory.ROW
        return ErrorCategory.STRUCTURAL


_FIELD_KINDS = {ErrorKind.TYPE_MISMATCH, ErrorKind.FORMAT_MISMATCH, ErrorKind.NULL_NOT_ALLOWED}
_ROW_KINDS = {ErrorKind.UNKNOWN_COLUMN, ErrorKind.RULE_VIOLATION}


@dataclass(frozen=True)
class ValidationError:
    """
    A single recorded problem.

    row_index is the 1-based data row number; 0 refers to the header.
    column is None for row-level structural problems.
    """

    row_index: int
    kind: ErrorKind
    detail: str
    column: Optional[str] = None
    severity: Severity = Severity.ERROR

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['kind'] = self.kind.value
        data['severity'] = self.severity.value
        data['category'] = self.category.value
        return data


class CSVExchangeError(Exception):
    """Base class for all csv_exchange exceptions."""


class SchemaError(CSVExchangeError):
    """Raised when a schema definition is invalid."""


class ConfigError(CSVExchangeError):
    """Raised when a dialect or pipeline configuration value is invalid."""


class StreamReadError(CSVExchangeError):
    """Raised by the parser when the underlying character stream fails."""

    def __init__(self, message: str, line_number: int = 0):
        super().__init__(message)
        self.line_number = line_number


class IngestionIOError(CSVExchangeError):
    """
    Terminal I/O failure of an ingestion run.

    The partial report built before the failure is attached as ``report``.
    """

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report


class ExportError(CSVExchangeError):
    """Raised when the export sink cannot be written."""
