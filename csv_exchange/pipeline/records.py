# ========================
# csv_exchange/pipeline/records.py
# ========================

"""
Row Records

RawRow is what the parser produces, TypedRow is what the codec produces.
ColumnMapping ties input positions to schema columns.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind, Severity, ValidationError
from .schema import Schema


@dataclass(frozen=True)
class RawRow:
    """
    One parsed input record.

    A structurally broken record carries error_kind/error_detail; its fields
    must not be converted.
    """

    fields: Tuple[str, ...]
    row_index: int
    line_number: int
    error_kind: Optional[ErrorKind] = None
    error_detail: str = ""

    @property
    def is_error(self) -> bool:
        return self.error_kind is not None

    def to_error(self) -> ValidationError:
        return ValidationError(
            row_index=self.row_index,
            kind=self.error_kind,
            detail=f"line {self.line_number}: {self.error_detail}",
        )


@dataclass(frozen=True)
class TypedRow:
    """
    Converted values keyed by schema column name, in schema order.

    Values are typed values, None for nulls, or InvalidField markers.
    extras holds raw text of input columns the schema does not declare.
    """

    row_index: int
    line_number: int
    values: Dict[str, Any]
    extras: Dict[str, str] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        return dict(self.values)


class ColumnMapping:
    """Positions of schema columns (and of undeclared extras) in the input rows."""

    def __init__(self, schema: Schema, positions: Dict[str, Optional[int]],
                 extras: Optional[Dict[str, int]] = None, expected_fields: Optional[int] = None):
        self.schema = schema
        self.positions = positions
        self.extras = extras or {}
        self.expected_fields = expected_fields
        self.issues: List[ValidationError] = []

    @classmethod
    def positional(cls, schema: Schema) -> 'ColumnMapping':
        positions = {column.name: i for i, column in enumerate(schema)}
        return cls(schema, positions, expected_fields=len(schema))

    @classmethod
    def from_header(cls, header: List[str], schema: Schema) -> 'ColumnMapping':
        """
        Map header names to schema columns case-insensitively.

        Header problems are collected in ``issues`` against row 0.
        """
        positions: Dict[str, Optional[int]] = {column.name: None for column in schema}
        extras: Dict[str, int] = {}
        issues: List[ValidationError] = []

        for i, raw_name in enumerate(header):
            name = raw_name.strip() or f"column_{i + 1}"
            column = schema.get(name)
            if column is not None and positions[column.name] is None:
                positions[column.name] = i
                continue
            if column is not None or name in extras:
                issues.append(ValidationError(
                    row_index=0, kind=ErrorKind.DUPLICATE_HEADER, column=name,
                    detail=f"header column '{name}' appears more than once; position {i + 1} ignored",
                    severity=Severity.WARNING,
                ))
                continue
            extras[name] = i

        for column in schema:
            if positions[column.name] is None:
                issues.append(ValidationError(
                    row_index=0, kind=ErrorKind.MISSING_COLUMN, column=column.name,
                    detail=f"column '{column.name}' is not present in the header",
                    severity=Severity.WARNING,
                ))

        mapping = cls(schema, positions, extras, expected_fields=len(header))
        mapping.issues = issues
        return mapping

    def field_for(self, raw: RawRow, column_name: str) -> Optional[str]:
        position = self.positions.get(column_name)
        if position is None or position >= len(raw.fields):
            return None
        return raw.fields[position]

    def extras_for(self, raw: RawRow) -> Dict[str, str]:
        return {name: raw.fields[i] for name, i in self.extras.items() if i < len(raw.fields)}
