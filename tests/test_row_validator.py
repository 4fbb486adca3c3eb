# ========================
# tests/test_row_validator.py
# ========================

import unittest
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv_exchange.pipeline.codec import FieldCodec
from csv_exchange.pipeline.errors import ErrorCategory, ErrorKind, Severity
from csv_exchange.pipeline.records import ColumnMapping, RawRow
from csv_exchange.pipeline.schema import Schema
from csv_exchange.pipeline.validation import RowValidator


class TestRowValidator(unittest.TestCase):

    def setUp(self):
        self.schema = Schema.from_dict({
            "columns": [
                {"name": "id", "type": "integer", "nullable": False},
                {"name": "start", "type": "date"},
                {"name": "end", "type": "date"},
            ],
            "rules": [{"name": "ordered", "left": "end", "op": ">=", "right": "start"}],
        })
        self.codec = FieldCodec()
        self.validator = RowValidator(self.schema)

    def _validate(self, header, fields):
        mapping = ColumnMapping.from_header(header, self.schema)
        typed = self.codec.decode_row(RawRow(tuple(fields), 1, 2), mapping)
        return self.validator.validate(typed)

    def test_valid_row_has_no_issues(self):
        issues = self._validate(["id", "start", "end"], ["1", "2024-01-01", "2024-01-05"])
        self.assertEqual(issues, [])
        self.assertTrue(RowValidator.is_accepted(issues))

    def test_empty_required_column_yields_exactly_one_error(self):
        issues = self._validate(["id", "start", "end"], ["", "2024-01-01", "2024-01-05"])

        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].kind, ErrorKind.NULL_NOT_ALLOWED)
        self.assertEqual(issues[0].column, "id")
        self.assertEqual(issues[0].category, ErrorCategory.FIELD)
        self.assertFalse(RowValidator.is_accepted(issues))

    def test_required_column_missing_from_header(self):
        issues = self._validate(["start", "end"], ["2024-01-01", "2024-01-05"])

        self.assertEqual([issue.kind for issue in issues], [ErrorKind.NULL_NOT_ALLOWED])
        self.assertEqual(issues[0].row_index, 1)

    def test_unknown_column_is_only_a_warning(self):
        issues = self._validate(["id", "start", "end", "comment"], ["1", "", "", "hello"])

        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].kind, ErrorKind.UNKNOWN_COLUMN)
        self.assertEqual(issues[0].severity, Severity.WARNING)
        self.assertEqual(issues[0].column, "comment")
        self.assertTrue(RowValidator.is_accepted(issues))

    def test_cross_field_rule_violation(self):
        issues = self._validate(["id", "start", "end"], ["1", "2024-02-01", "2024-01-05"])

        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].kind, ErrorKind.RULE_VIOLATION)
        self.assertEqual(issues[0].category, ErrorCategory.ROW)
        self.assertIn("ordered", issues[0].detail)

    def test_rule_skipped_when_a_value_is_null_or_invalid(self):
        self.assertEqual(self._validate(["id", "start", "end"], ["1", "2024-02-01", ""]), [])

        issues = self._validate(["id", "start", "end"], ["1", "2024-02-01", "bad"])
        self.assertEqual([issue.kind for issue in issues], [ErrorKind.FORMAT_MISMATCH])

    def test_header_is_matched_case_insensitively(self):
        issues = self._validate(["END", "Id", "start"], ["2024-01-05", "7", "2024-01-01"])
        self.assertEqual(issues, [])


if __name__ == '__main__':
    unittest.main()
