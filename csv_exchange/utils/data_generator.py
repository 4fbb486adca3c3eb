# ========================
# csv_exchange/utils/data_generator.py
# ========================

"""
Data Generation Utilities

Schema-driven CSV generation with controlled error injection, used for
fixtures, the CLI `generate` command and large-scale runs.
"""

import random
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import List, Dict, Any, Optional

from ..pipeline.codec import FieldCodec
from ..pipeline.export import CSVExportSerializer
from ..pipeline.schema import ColumnDefinition, ColumnType, Schema
from ..pipeline.settings import ExportConfig

logger = logging.getLogger(__name__)

SAMPLE_SCHEMA = {
    "columns": [
        {"name": "order_id", "type": "integer", "nullable": False},
        {"name": "customer", "type": "text", "nullable": False},
        {"name": "amount", "type": "decimal"},
        {"name": "order_date", "type": "date", "format": "yyyy-MM-dd", "nullable": False},
        {"name": "ship_date", "type": "date", "format": "yyyy-MM-dd"},
        {"name": "express", "type": "boolean"},
        {"name": "updated_at", "type": "timestamp"},
    ],
    "rules": [
        {"name": "ships after order", "left": "ship_date", "op": ">=", "right": "order_date"},
    ],
}

# Injected errors, each guaranteed to reject the row it is applied to
ERROR_TYPES = ('null_required', 'type_mismatch', 'format_mismatch', 'field_count', 'malformed_quote')


def sample_schema() -> Schema:
    """Order-like schema used by the CLI and the large-scale script."""
    return Schema.from_dict(SAMPLE_SCHEMA)


class DataGenerator:
    """
    Generates CSV files whose rows conform to a schema, with a fraction of
    rows deliberately broken.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize data generator.

        Args:
            seed (int): Random seed for reproducible data generation
        """
        self.random = random.Random(seed)
        self.codec = FieldCodec()
        self.customers = [
            "Acme Corp", "Globex, Inc.", "Initech", "Umbrella \"Health\"",
            "Stark Industries", "Wayne Enterprises", " Padded Name ", "Multi\nLine Ltd",
        ]
        logger.info(f"DataGenerator initialized with seed: {seed}")

    def generate_dataset(self,
                         file_path: str,
                         schema: Schema,
                         num_rows: int,
                         error_rate: float = 0.15,
                         start_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Generate a dataset with controlled error injection.

        Args:
            file_path (str): Output CSV file path
            schema (Schema): Columns to generate, written in schema order
            num_rows (int): Number of data rows to generate
            error_rate (float): Fraction of rows with an injected error
            start_date (date): First date used for date-like columns

        Returns:
            dict: Generation statistics; records_with_errors is the number of
                rows ingestion is expected to reject
        """
        logger.info(f"Generating {num_rows:,} rows with {error_rate:.1%} error rate...")

        if start_date is None:
            start_date = date(2024, 1, 1)

        stats = {
            'total_rows': num_rows,
            'error_rate': error_rate,
            'records_with_errors': 0,
            'error_types': {},
        }

        serializer = CSVExportSerializer(schema, ExportConfig(line_terminator="\n"))
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'w', newline='', encoding='utf-8') as f:
            f.write(serializer.format_header())
            for i in range(num_rows):
                f.write(self._generate_line(i, schema, serializer, start_date, error_rate, stats))

                if (i + 1) % 10000 == 0:
                    logger.debug(f"Generated {i + 1:,} records")

        stats['error_rate_actual'] = stats['records_with_errors'] / num_rows if num_rows else 0.0

        logger.info(f"Dataset generated: {file_path}")
        logger.info(f"Actual error rate: {stats['error_rate_actual']:.1%}")
        logger.info(f"Error breakdown: {stats['error_types']}")

        return stats

    def generate_record(self, index: int, schema: Schema, start_date: date) -> Dict[str, Any]:
        """Generate one valid typed record for the schema."""
        base_day = start_date + timedelta(days=self.random.randint(0, 365))
        record = {}
        for column in schema:
            if column.nullable and self.random.random() < 0.05:
                record[column.name] = None
            else:
                record[column.name] = self._value_for(column, index, base_day)

        # Keep generated rows consistent with the schema's comparison rules
        for rule in schema.rules:
            if rule.definition and rule.definition['op'] in ('>=', '>'):
                left = schema.get(rule.definition['left']).name
                right = schema.get(rule.definition['right']).name
                if record.get(left) is not None and record.get(right) is not None and not rule.predicate(
                        {left.casefold(): record[left], right.casefold(): record[right]}):
                    record[left] = None if schema.get(left).nullable else record[right]
        return record

    def _value_for(self, column: ColumnDefinition, index: int, base_day: date) -> Any:
        rng = self.random
        if column.type is ColumnType.INTEGER:
            return index + 1 if column.key.endswith('id') else rng.randint(-1000, 1000)
        if column.type is ColumnType.DECIMAL:
            return Decimal(rng.randint(1, 10_000_000)).scaleb(-2)
        if column.type is ColumnType.DATE:
            offset = rng.randint(0, 14) if 'ship' in column.key or 'end' in column.key else 0
            return base_day + timedelta(days=offset)
        if column.type is ColumnType.DATETIME:
            return datetime.combine(base_day, datetime.min.time()) + timedelta(seconds=rng.randint(0, 86399))
        if column.type is ColumnType.BOOLEAN:
            return rng.random() < 0.5
        if column.type is ColumnType.TIMESTAMP:
            moment = datetime.combine(base_day, datetime.min.time(), tzinfo=timezone.utc)
            return moment + timedelta(milliseconds=rng.randint(0, 86_399_999))
        if column.pattern is not None:
            return f"V{index}"
        return rng.choice(self.customers)

    def _generate_line(self,
                       index: int,
                       schema: Schema,
                       serializer: CSVExportSerializer,
                       start_date: date,
                       error_rate: float,
                       stats: Dict[str, Any]) -> str:
        """Generate a single encoded line, possibly with an injected error."""
        record = self.generate_record(index, schema, start_date)
        fields = [self.codec.encode(record[column.name], column) for column in schema]

        if self.random.random() < error_rate:
            error_type = self._inject_error(fields, schema)
            stats['records_with_errors'] += 1
            self._track_error_type(stats, error_type)
            if error_type == 'malformed_quote':
                # The parser skips to the end of the physical line, so the rest must stay on it
                quoted = [serializer.quote_field(text.replace('\r', ' ').replace('\n', ' ')) for text in fields[1:]]
                return serializer.config.dialect.delimiter.join([f'"{fields[0]}"x'] + quoted) + "\n"

        quoted = [serializer.quote_field(text) for text in fields]
        if len(quoted) == 1 and quoted[0] == "":
            quoted[0] = '""'
        return serializer.config.dialect.delimiter.join(quoted) + "\n"

    def _inject_error(self, fields: List[str], schema: Schema) -> str:
        """Corrupt the encoded fields in place and return the error type."""
        columns = list(schema)
        required = [i for i, column in enumerate(columns) if not column.nullable]
        typed = [i for i, column in enumerate(columns)
                 if column.type in (ColumnType.INTEGER, ColumnType.DECIMAL, ColumnType.BOOLEAN, ColumnType.TIMESTAMP)]
        dated = [i for i, column in enumerate(columns) if column.type in (ColumnType.DATE, ColumnType.DATETIME)]

        candidates = ['field_count', 'malformed_quote']
        if required:
            candidates.append('null_required')
        if typed:
            candidates.append('type_mismatch')
        if dated:
            candidates.append('format_mismatch')
        error_type = self.random.choice(candidates)

        if error_type == 'null_required':
            fields[self.random.choice(required)] = ""
        elif error_type == 'type_mismatch':
            fields[self.random.choice(typed)] = "n/a"
        elif error_type == 'format_mismatch':
            fields[self.random.choice(dated)] = "31/02/2024"
        elif error_type == 'field_count':
            fields.append("unexpected")
        return error_type

    def _track_error_type(self, stats: Dict[str, Any], error_type: str) -> None:
        """Track error types for statistics."""
        stats['error_types'][error_type] = stats['error_types'].get(error_type, 0) + 1
