# ========================
# csv_exchange/pipeline/profiling.py
# ========================

"""
Column Profiling Module

Running per-column statistics over accepted records. Only summary values
are kept, so memory does not grow with the number of rows.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from .codec import FieldCodec
from .schema import ColumnType, Schema

logger = logging.getLogger(__name__)

_ORDERED_TYPES = {
    ColumnType.INTEGER, ColumnType.DECIMAL, ColumnType.DATE,
    ColumnType.DATETIME, ColumnType.TIMESTAMP, ColumnType.TEXT,
}
_NUMERIC_TYPES = {ColumnType.INTEGER, ColumnType.DECIMAL}


class ColumnProfiler:
    """
    Tracks null counts, min/max, first/last values and, for numeric
    columns, the mean and normalized range ((max - min) / min).
    """

    def __init__(self, schema: Schema):
        self.schema = schema
        self.records_processed = 0
        self._codec = FieldCodec()
        self._reset_statistics()

    def _reset_statistics(self) -> None:
        self.stats: Dict[str, Dict[str, Any]] = {
            column.name: {
                'non_null': 0,
                'nulls': 0,
                'min': None,
                'max': None,
                'first': None,
                'last': None,
                'total': Decimal(0),
            }
            for column in self.schema
        }

    def process_chunk(self, chunk: Iterable[Mapping[str, Any]]) -> None:
        """
        Update statistics with a chunk of accepted records.

        Args:
            chunk (iterable[dict]): Accepted records keyed by column name
        """
        for record in chunk:
            self._process_single_record(record)
            self.records_processed += 1

    def _process_single_record(self, record: Mapping[str, Any]) -> None:
        for column in self.schema:
            value = record.get(column.name)
            data = self.stats[column.name]
            if value is None:
                data['nulls'] += 1
                continue

            data['non_null'] += 1
            if data['first'] is None:
                data['first'] = value
            data['last'] = value

            if column.type in _ORDERED_TYPES:
                if data['min'] is None or value < data['min']:
                    data['min'] = value
                if data['max'] is None or value > data['max']:
                    data['max'] = value
            if column.type in _NUMERIC_TYPES and data['total'] is not None:
                try:
                    data['total'] += Decimal(value)
                except ArithmeticError as e:
                    logger.debug(f"Mean of column '{column.name}' dropped: {e}")
                    data['total'] = None

    def get_summary(self) -> Dict[str, Dict[str, Any]]:
        """
        Render the statistics with values formatted the way export writes them.
        """
        summary = {}
        for column in self.schema:
            data = self.stats[column.name]
            entry = {
                'type': column.type.value,
                'non_null': data['non_null'],
                'nulls': data['nulls'],
                'first': self._format(data['first'], column),
                'last': self._format(data['last'], column),
            }
            if column.type in _ORDERED_TYPES:
                entry['min'] = self._format(data['min'], column)
                entry['max'] = self._format(data['max'], column)
            if column.type in _NUMERIC_TYPES and data['non_null']:
                try:
                    if data['total'] is not None:
                        entry['mean'] = float(data['total'] / data['non_null'])
                    if data['min'] > 0:
                        entry['normalized_range'] = float((Decimal(data['max']) - Decimal(data['min'])) / Decimal(data['min']))
                except ArithmeticError as e:
                    logger.debug(f"Numeric summary of column '{column.name}' incomplete: {e}")
            summary[column.name] = entry
        return summary

    def _format(self, value: Any, column) -> Any:
        if value is None:
            return None
        return self._codec.encode(value, column)
