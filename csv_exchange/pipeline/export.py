# ========================
# csv_exchange/pipeline/export.py
# ========================

"""
Export Serializer Module

Turns typed records back into delimited text. Output is produced one row at
a time so large exports can be streamed to a file or an HTTP response.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, TextIO

from .codec import FieldCodec
from .errors import ExportError
from .schema import Schema
from .settings import ExportConfig

logger = logging.getLogger(__name__)


class CSVExportSerializer:
    """
    Serializes records for one schema and dialect.

    Records are mappings keyed by column name; keys are matched
    case-insensitively, missing keys are written as null and keys not in the
    schema are ignored.
    """

    def __init__(self, schema: Schema, config: Optional[ExportConfig] = None):
        self.schema = schema
        self.config = config or ExportConfig()
        self.codec = FieldCodec()

        dialect = self.config.dialect
        self._delimiter = dialect.delimiter
        self._quote = dialect.quote_char
        self._escape = dialect.escape_char if dialect.escape_char != dialect.quote_char else None
        self._special = {dialect.delimiter, dialect.quote_char, '\r', '\n'}
        if self._escape:
            self._special.add(self._escape)

    def quote_field(self, text: str) -> str:
        """
        Quote a field when it holds the delimiter, quote, escape, a line break,
        or leading/trailing whitespace.
        """
        if not text:
            return text
        if not (any(ch in self._special for ch in text) or text[0].isspace() or text[-1].isspace()):
            return text

        quote = self._quote
        if self._escape:
            escaped = text.replace(self._escape, self._escape * 2).replace(quote, self._escape + quote)
        else:
            escaped = text.replace(quote, quote * 2)
        return f"{quote}{escaped}{quote}"

    def format_row(self, record: Mapping[str, Any]) -> str:
        values = self._lookup(record)
        fields = [self.quote_field(self.codec.encode(value, column))
                  for column, value in zip(self.schema, values)]
        if len(fields) == 1 and fields[0] == "":
            fields[0] = self._quote * 2
        return self._delimiter.join(fields) + self.config.line_terminator

    def format_header(self) -> str:
        return self._delimiter.join(self.quote_field(name) for name in self.schema.names) + self.config.line_terminator

    def _lookup(self, record: Mapping[str, Any]) -> List[Any]:
        if all(column.name in record for column in self.schema):
            return [record[column.name] for column in self.schema]
        folded: Dict[str, Any] = {str(key).casefold(): value for key, value in record.items()}
        return [folded.get(column.key) for column in self.schema]

    def iter_lines(self, records: Iterable[Mapping[str, Any]]) -> Iterator[str]:
        """
        Yield the header (if configured) and then one encoded row per record.

        Args:
            records (iterable[dict]): Records to serialize; only read

        Yields:
            str: One line including its line terminator
        """
        if self.config.has_header:
            yield self.format_header()
        for record in records:
            yield self.format_row(record)

    def write(self, records: Iterable[Mapping[str, Any]], sink: TextIO) -> int:
        """
        Write records to a text sink.

        Args:
            records (iterable[dict]): Records to serialize
            sink (TextIO): Writable text stream, opened with newline=''

        Returns:
            int: Number of records written

        Raises:
            ExportError: if the sink fails
        """
        written = 0
        try:
            for line in self.iter_lines(records):
                sink.write(line)
                written += 1
        except OSError as e:
            logger.error(f"Export failed after {written} lines: {e}")
            raise ExportError(f"failed writing export output: {e}") from e

        rows = written - 1 if self.config.has_header else written
        logger.info(f"Exported {rows:,} records")
        return rows

    def to_string(self, records: Iterable[Mapping[str, Any]]) -> str:
        """Serialize everything in memory. Meant for small results."""
        return ''.join(self.iter_lines(records))


def export(records: Iterable[Mapping[str, Any]],
           schema: Schema,
           config: Optional[ExportConfig] = None) -> Iterator[str]:
    """Serialize records lazily. See CSVExportSerializer.iter_lines."""
    return CSVExportSerializer(schema, config).iter_lines(records)
