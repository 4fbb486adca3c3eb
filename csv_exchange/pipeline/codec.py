# ========================
# csv_exchange/pipeline/codec.py
# ========================

"""
Field Codec Module

Converts single text fields to typed values according to their column
definition, and typed values back to text for export.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import ErrorKind
from .records import ColumnMapping, RawRow, TypedRow
from .schema import ColumnDefinition, ColumnType

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

TRUE_VALUES = frozenset({"true", "t", "yes", "y", "1"})
FALSE_VALUES = frozenset({"false", "f", "no", "n", "0"})

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)

# Numeric text beyond these bounds is rejected rather than converted
INTEGER_DIGIT_LIMIT = 4000
DECIMAL_EXPONENT_LIMIT = 1000


def format_date(value, fmt: str) -> str:
    """strftime, except that %Y is always rendered with four digits."""
    year = f"{value.year:04d}"
    return "%".join(value.strftime(part.replace("%Y", year)) for part in fmt.split("%%"))


@dataclass(frozen=True)
class InvalidField:
    """Marker for a field that could not be converted; keeps the original text."""

    text: Optional[str]
    reason: ErrorKind
    detail: str


class FieldCodec:
    """
    Text <-> typed value conversion for one ingestion or export run.

    Empty text, or text equal to null_value, is a null. Nulls are only
    accepted for nullable columns; there is no zero-value default.
    """

    def __init__(self, null_value: str = "", strip_whitespace: bool = False):
        self.null_value = null_value
        self.strip_whitespace = strip_whitespace

    def is_null(self, text: Optional[str]) -> bool:
        return text is None or text == "" or text == self.null_value

    def decode(self, text: Optional[str], column: ColumnDefinition) -> Any:
        """
        Convert a raw field to the column's type.

        Args:
            text (str): Raw field text, or None when the column is absent
            column (ColumnDefinition): Target column

        Returns:
            The typed value, None for an accepted null, or an InvalidField.
        """
        if text is not None and self.strip_whitespace:
            text = text.strip()

        if self.is_null(text):
            if column.nullable:
                return None
            return InvalidField(text, ErrorKind.NULL_NOT_ALLOWED,
                                f"column '{column.name}' does not allow empty values")

        if column.type is ColumnType.TEXT:
            return self._decode_text(text, column)
        if column.type is ColumnType.INTEGER:
            return self._decode_integer(text, column)
        if column.type is ColumnType.DECIMAL:
            return self._decode_decimal(text, column)
        if column.type in (ColumnType.DATE, ColumnType.DATETIME):
            return self._decode_date(text, column)
        if column.type is ColumnType.BOOLEAN:
            return self._decode_boolean(text, column)
        return self._decode_timestamp(text, column)

    def decode_row(self, raw: RawRow, mapping: ColumnMapping) -> TypedRow:
        """Convert every schema column of a structurally valid row."""
        values = {
            column.name: self.decode(mapping.field_for(raw, column.name), column)
            for column in mapping.schema
        }
        return TypedRow(raw.row_index, raw.line_number, values, mapping.extras_for(raw))

    def _decode_text(self, text: str, column: ColumnDefinition) -> Any:
        if column.pattern is not None and column.pattern.fullmatch(text) is None:
            return InvalidField(text, ErrorKind.FORMAT_MISMATCH,
                                f"'{text}' does not match pattern {column.format!r}")
        return text

    def _decode_integer(self, text: str, column: ColumnDefinition) -> Any:
        if _INTEGER_RE.fullmatch(text) is None:
            return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"'{text}' is not an integer")
        if len(text.lstrip("+-")) <= INTEGER_DIGIT_LIMIT:
            try:
                return int(text)
            except ValueError:
                pass
        return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"integer with {len(text)} characters is out of range")

    def _decode_decimal(self, text: str, column: ColumnDefinition) -> Any:
        if _DECIMAL_RE.fullmatch(text) is None:
            return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"'{text}' is not a decimal number")
        try:
            value = Decimal(text)
        except InvalidOperation:
            return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"'{text}' is not a decimal number")
        if value.adjusted() > DECIMAL_EXPONENT_LIMIT or value.as_tuple().exponent < -DECIMAL_EXPONENT_LIMIT:
            return InvalidField(text, ErrorKind.TYPE_MISMATCH,
                                f"decimal is outside the supported range 1e-{DECIMAL_EXPONENT_LIMIT}..1e{DECIMAL_EXPONENT_LIMIT}")
        return value

    def _decode_date(self, text: str, column: ColumnDefinition) -> Any:
        expected = column.format or column.date_format
        try:
            parsed = datetime.strptime(text, column.date_format)
        except ValueError:
            return InvalidField(text, ErrorKind.FORMAT_MISMATCH, f"'{text}' does not match format {expected!r}")

        # strptime tolerates missing zero padding; the declared format must match exactly
        if format_date(parsed, column.date_format) != text:
            return InvalidField(text, ErrorKind.FORMAT_MISMATCH, f"'{text}' does not match format {expected!r}")

        if column.type is ColumnType.DATE:
            return parsed.date()
        return parsed

    def _decode_boolean(self, text: str, column: ColumnDefinition) -> Any:
        lowered = text.lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"'{text}' is not a boolean")

    def _decode_timestamp(self, text: str, column: ColumnDefinition) -> Any:
        if _INTEGER_RE.fullmatch(text) is None:
            return InvalidField(text, ErrorKind.TYPE_MISMATCH, f"'{text}' is not an epoch millisecond timestamp")
        try:
            return EPOCH + timedelta(milliseconds=int(text))
        except (OverflowError, ValueError):
            return InvalidField(text, ErrorKind.TYPE_MISMATCH,
                                f"timestamp with {len(text)} digits is out of the supported range")

    def encode(self, value: Any, column: ColumnDefinition) -> str:
        """
        Format a typed value as text for export. None becomes an empty string.
        """
        if value is None:
            return ""
        if isinstance(value, InvalidField):
            return value.text or ""

        if column.type is ColumnType.BOOLEAN:
            if isinstance(value, str):
                return value
            return "true" if value else "false"
        if column.type is ColumnType.DECIMAL:
            if isinstance(value, Decimal):
                return format(value, 'f')
            if isinstance(value, float):
                return format(Decimal(repr(value)), 'f')
            return str(value)
        if column.type in (ColumnType.DATE, ColumnType.DATETIME):
            if isinstance(value, (date, datetime)):
                return format_date(value, column.date_format)
            return str(value)
        if column.type is ColumnType.TIMESTAMP:
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    value = value.replace(tzinfo=timezone.utc)
                return str((value - EPOCH) // _ONE_MILLISECOND)
            return str(value)
        return str(value)
