# ========================
# csv_exchange/pipeline/validation.py
# ========================

"""
Row Validation Module

Applies per-record checks to converted rows: field conversion failures,
nullability, undeclared columns and schema-declared cross-field rules.
"""

import logging
from typing import List

from .codec import InvalidField
from .errors import ErrorKind, Severity, ValidationError
from .records import TypedRow
from .schema import Schema

logger = logging.getLogger(__name__)


class RowValidator:
    """
    Stateless validator for TypedRow objects against one schema.

    A row is accepted when none of the returned issues has error severity;
    UNKNOWN_COLUMN issues are warnings only.
    """

    def __init__(self, schema: Schema):
        self.schema = schema

    def validate(self, row: TypedRow) -> List[ValidationError]:
        """
        Check a converted row.

        Args:
            row (TypedRow): Output of FieldCodec.decode_row

        Returns:
            list[ValidationError]: Zero or more issues for this row
        """
        issues: List[ValidationError] = []

        for column in self.schema:
            value = row.values.get(column.name)
            if isinstance(value, InvalidField):
                issues.append(ValidationError(
                    row_index=row.row_index,
                    kind=value.reason,
                    column=column.name,
                    detail=value.detail,
                ))
            elif value is None and not column.nullable:
                issues.append(ValidationError(
                    row_index=row.row_index,
                    kind=ErrorKind.NULL_NOT_ALLOWED,
                    column=column.name,
                    detail=f"column '{column.name}' does not allow empty values",
                ))

        for name in row.extras:
            issues.append(ValidationError(
                row_index=row.row_index,
                kind=ErrorKind.UNKNOWN_COLUMN,
                column=name,
                detail=f"column '{name}' is not declared in the schema",
                severity=Severity.WARNING,
            ))

        if self.schema.rules:
            issues.extend(self._check_rules(row))

        return issues

    def _check_rules(self, row: TypedRow) -> List[ValidationError]:
        issues = []
        for rule in self.schema.rules:
            values = {}
            for name in rule.columns:
                value = row.values.get(self.schema.get(name).name)
                if value is None or isinstance(value, InvalidField):
                    break
                values[name.casefold()] = value
            else:
                try:
                    passed = rule.predicate(values)
                except (TypeError, ValueError, ArithmeticError) as e:
                    logger.debug(f"Rule '{rule.name}' could not be evaluated on row {row.row_index}: {e}")
                    passed = False
                if not passed:
                    issues.append(ValidationError(
                        row_index=row.row_index,
                        kind=ErrorKind.RULE_VIOLATION,
                        detail=f"rule '{rule.name}' failed: {rule.message or 'predicate returned false'}",
                    ))
        return issues

    @staticmethod
    def is_accepted(issues: List[ValidationError]) -> bool:
        return not any(issue.is_error for issue in issues)
