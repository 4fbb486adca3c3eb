# ========================
# tests/test_schema.py
# ========================

import unittest
import sys
import os
from datetime import date

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv_exchange.pipeline.errors import SchemaError
from csv_exchange.pipeline.schema import ColumnDefinition, ColumnType, CrossFieldRule, Schema, to_strftime


class TestSchema(unittest.TestCase):

    def test_from_dict_builds_ordered_columns(self):
        schema = Schema.from_dict({
            "columns": [
                {"name": "id", "type": "int", "nullable": False},
                {"name": "name"},
                {"name": "joined", "type": "date", "format": "yyyy-MM-dd"},
            ]
        })

        self.assertEqual(schema.names, ["id", "name", "joined"])
        self.assertIs(schema.get("ID").type, ColumnType.INTEGER)
        self.assertFalse(schema.get("id").nullable)
        self.assertIs(schema.get("name").type, ColumnType.TEXT)
        self.assertEqual(schema.get("joined").date_format, "%Y-%m-%d")
        self.assertEqual(len(schema), 3)
        self.assertIn("Joined", schema)

    def test_duplicate_names_are_rejected_case_insensitively(self):
        with self.assertRaises(SchemaError):
            Schema([ColumnDefinition("Email"), ColumnDefinition("email")])

    def test_empty_schema_is_rejected(self):
        with self.assertRaises(SchemaError):
            Schema([])

    def test_unknown_type_is_rejected(self):
        with self.assertRaises(SchemaError):
            ColumnDefinition("price", "money")

    def test_format_on_non_date_non_text_column_is_rejected(self):
        with self.assertRaises(SchemaError):
            ColumnDefinition("count", ColumnType.INTEGER, format="0000")

    def test_invalid_text_pattern_is_rejected(self):
        with self.assertRaises(SchemaError):
            ColumnDefinition("code", ColumnType.TEXT, format="[A-Z")

    def test_date_pattern_translation(self):
        self.assertEqual(to_strftime("yyyy-MM-dd"), "%Y-%m-%d")
        self.assertEqual(to_strftime("dd/MM/yyyy HH:mm:ss"), "%d/%m/%Y %H:%M:%S")
        self.assertEqual(to_strftime("yyyy-MM-dd'T'HH:mm"), "%Y-%m-%dT%H:%M")
        self.assertEqual(to_strftime("%d.%m.%Y"), "%d.%m.%Y")
        with self.assertRaises(SchemaError):
            to_strftime("yyyy-QQ")

    def test_default_datetime_format(self):
        column = ColumnDefinition("created", "datetime")
        self.assertEqual(column.date_format, "%Y-%m-%d %H:%M:%S")

    def test_rule_must_reference_declared_columns(self):
        with self.assertRaises(SchemaError):
            Schema([ColumnDefinition("start", "date")], [CrossFieldRule.compare("end", ">=", "start")])

    def test_compare_rule_predicate(self):
        rule = CrossFieldRule.compare("End", ">=", "Start")
        self.assertTrue(rule.predicate({"end": date(2024, 1, 2), "start": date(2024, 1, 1)}))
        self.assertFalse(rule.predicate({"end": date(2023, 12, 31), "start": date(2024, 1, 1)}))
        with self.assertRaises(SchemaError):
            CrossFieldRule.compare("a", "=>", "b")

    def test_to_dict_round_trips(self):
        definition = {
            "columns": [
                {"name": "start", "type": "date", "nullable": False},
                {"name": "end", "type": "date", "nullable": True, "format": "dd/MM/yyyy"},
            ],
            "rules": [{"name": "ordered", "left": "end", "op": ">=", "right": "start"}],
        }
        schema = Schema.from_dict(definition)
        rebuilt = Schema.from_dict(schema.to_dict())

        self.assertEqual(rebuilt.columns, schema.columns)
        self.assertEqual(rebuilt.to_dict(), definition)

    def test_from_dict_requires_columns_list(self):
        with self.assertRaises(SchemaError):
            Schema.from_dict({"fields": []})
        with self.assertRaises(SchemaError):
            Schema.from_dict({"columns": [{"type": "text"}]})


if __name__ == '__main__':
    unittest.main()
