# ========================
# csv_exchange/pipeline/ingestion.py
# ========================

"""
Data Ingestion Module

Memory-bounded, single-pass parsing of delimited text streams. The tokenizer
reads the stream in fixed-size blocks and yields one record at a time;
CSVReader adds header handling, row numbering and field-count checks.
"""

import logging
from typing import Iterator, List, Optional, TextIO, Tuple

from .errors import ErrorKind, StreamReadError, ValidationError, Severity
from .records import RawRow
from .settings import CSVDialect

logger = logging.getLogger(__name__)

# Tokenizer states
_START_RECORD = 0
_START_FIELD = 1
_IN_FIELD = 2
_IN_QUOTED = 3
_QUOTE_IN_QUOTED = 4
_ESCAPE_IN_QUOTED = 5
_SKIP_LINE = 6

_LINE_BREAKS = "\r\n"

# (fields, start line, (error kind, detail) or None)
TokenizedRecord = Tuple[List[str], int, Optional[Tuple[ErrorKind, str]]]


class CSVTokenizer:
    """
    Splits a character stream into records, honoring quotes and escapes.

    Malformed records are yielded with an error instead of fields. When a
    quoted field runs to the end of the stream, or past max_field_size, the
    text after the record's first line is parsed again so that later rows
    are not swallowed by the broken quote.
    """

    def __init__(self,
                 stream: TextIO,
                 dialect: Optional[CSVDialect] = None,
                 max_field_size: int = 131072,
                 skip_empty_lines: bool = True,
                 read_size: int = 65536):
        self.stream = stream
        self.dialect = dialect or CSVDialect()
        self.max_field_size = max_field_size
        self.skip_empty_lines = skip_empty_lines
        self.read_size = read_size

        self._buffer = ""
        self._pos = 0
        self._eof = False
        self._first_read = True
        self.line_number = 1

    # -- character source ---------------------------------------------------

    def _fill(self) -> bool:
        """Read the next block from the stream. Returns False at end of input."""
        if self._eof:
            return False
        try:
            block = self.stream.read(self.read_size)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Stream read failed near line {self.line_number}: {e}")
            raise StreamReadError(f"Failed to read input near line {self.line_number}: {e}",
                                  self.line_number) from e

        if self._first_read:
            self._first_read = False
            if block.startswith('\ufeff'):
                block = block[1:]
        if not block:
            self._eof = True
            return False
        self._buffer = self._buffer[self._pos:] + block
        self._pos = 0
        return True

    def _next_char(self) -> str:
        if self._pos >= len(self._buffer) and not self._fill():
            return ""
        ch = self._buffer[self._pos]
        self._pos += 1
        return ch

    def _peek_char(self) -> str:
        if self._pos >= len(self._buffer) and not self._fill():
            return ""
        return self._buffer[self._pos]

    def _push_back(self, text: str) -> None:
        self._buffer = text + self._buffer[self._pos:]
        self._pos = 0

    def _line_break(self, ch: str, raw: List[str]) -> str:
        """Consume a full line break starting with ch (CRLF counts once)."""
        self.line_number += 1
        if ch == '\r' and self._peek_char() == '\n':
            self._pos += 1
            raw.append('\n')
            return '\r\n'
        return ch

    def _recover(self, raw: List[str], start_line: int) -> bool:
        """
        Re-queue everything after the first line of a broken record.

        Returns False when the record never left its first line.
        """
        text = ''.join(raw)
        cut = min((i for i in (text.find('\r'), text.find('\n')) if i != -1), default=-1)
        if cut == -1:
            return False
        end = cut + 1
        if text[cut] == '\r' and text[end:end + 1] == '\n':
            end += 1
        self._push_back(text[end:])
        self.line_number = start_line + 1
        return True

    # -- record loop --------------------------------------------------------

    def records(self) -> Iterator[TokenizedRecord]:
        """
        Yield records lazily until the stream is exhausted.

        Yields:
            tuple: (fields, start line number, error or None)
        """
        delimiter = self.dialect.delimiter
        quote = self.dialect.quote_char
        escape = self.dialect.escape_char
        if escape == quote:
            escape = None
        limit = self.max_field_size

        state = _START_RECORD
        fields: List[str] = []
        field: List[str] = []
        raw: List[str] = []
        start_line = self.line_number

        while True:
            ch = self._next_char()

            if ch == "":
                if state in (_IN_QUOTED, _ESCAPE_IN_QUOTED):
                    yield [], start_line, (ErrorKind.UNTERMINATED_QUOTE,
                                           "quoted field is not closed before end of input")
                    state = _START_RECORD
                    if self._recover(raw, start_line):
                        continue
                    return
                if state in (_START_RECORD, _SKIP_LINE):
                    return
                fields.append(''.join(field))
                yield fields, start_line, None
                return

            if state == _START_RECORD:
                start_line = self.line_number
                fields, field, raw = [], [], []
                if ch in _LINE_BREAKS:
                    self._line_break(ch, raw)
                    if not self.skip_empty_lines:
                        yield [""], start_line, None
                    continue
                state = _START_FIELD

            if state == _SKIP_LINE:
                if ch in _LINE_BREAKS:
                    self._line_break(ch, raw)
                    state = _START_RECORD
                continue

            raw.append(ch)

            if state == _START_FIELD:
                if ch == quote:
                    state = _IN_QUOTED
                elif ch == delimiter:
                    fields.append("")
                elif ch in _LINE_BREAKS:
                    fields.append("")
                    self._line_break(ch, raw)
                    yield fields, start_line, None
                    state = _START_RECORD
                else:
                    field = [ch]
                    state = _IN_FIELD

            elif state == _IN_FIELD:
                if ch == delimiter:
                    fields.append(''.join(field))
                    field = []
                    state = _START_FIELD
                elif ch in _LINE_BREAKS:
                    fields.append(''.join(field))
                    self._line_break(ch, raw)
                    yield fields, start_line, None
                    state = _START_RECORD
                else:
                    field.append(ch)
                    if len(field) > limit:
                        yield [], start_line, (ErrorKind.FIELD_TOO_LARGE,
                                               f"field exceeds {limit} characters")
                        state = _SKIP_LINE

            elif state == _IN_QUOTED:
                if escape is not None and ch == escape:
                    state = _ESCAPE_IN_QUOTED
                elif ch == quote:
                    state = _QUOTE_IN_QUOTED
                else:
                    field.append(self._line_break(ch, raw) if ch in _LINE_BREAKS else ch)
                    if len(field) > limit:
                        yield [], start_line, (ErrorKind.FIELD_TOO_LARGE,
                                               f"quoted field exceeds {limit} characters")
                        state = _START_RECORD if self._recover(raw, start_line) else _SKIP_LINE

            elif state == _ESCAPE_IN_QUOTED:
                field.append(self._line_break(ch, raw) if ch in _LINE_BREAKS else ch)
                state = _IN_QUOTED

            elif state == _QUOTE_IN_QUOTED:
                if ch == quote:
                    field.append(quote)
                    state = _IN_QUOTED
                elif ch == delimiter:
                    fields.append(''.join(field))
                    field = []
                    state = _START_FIELD
                elif ch in _LINE_BREAKS:
                    fields.append(''.join(field))
                    self._line_break(ch, raw)
                    yield fields, start_line, None
                    state = _START_RECORD
                else:
                    yield [], start_line, (ErrorKind.MALFORMED_QUOTE,
                                           f"unexpected character {ch!r} after closing quote")
                    state = _SKIP_LINE


class CSVReader:
    """
    A memory-efficient CSV reader producing numbered RawRow objects.

    When has_header is set the first record is consumed as the header and
    every data row must have the same number of fields. Without a header,
    expected_fields (usually the schema width) is enforced instead.
    """

    def __init__(self,
                 stream: TextIO,
                 dialect: Optional[CSVDialect] = None,
                 has_header: bool = True,
                 expected_fields: Optional[int] = None,
                 max_field_size: int = 131072,
                 skip_empty_lines: bool = True):
        """
        Initialize the CSV reader.

        Args:
            stream (TextIO): Character stream to read; it is read exactly once
            dialect (CSVDialect): Delimiter and quoting rules
            has_header (bool): Whether the first record is a header
            expected_fields (int): Field count for headerless input
            max_field_size (int): Longest accepted field, in characters
            skip_empty_lines (bool): Drop blank lines instead of yielding them
        """
        self.tokenizer = CSVTokenizer(stream, dialect, max_field_size, skip_empty_lines)
        self.has_header = has_header
        self.expected_fields = expected_fields
        self.header: List[str] = []
        self.header_issues: List[ValidationError] = []
        self.rows_read = 0

    def read_rows(self) -> Iterator[RawRow]:
        """
        Yield every data row exactly once, in input order.

        Raises:
            StreamReadError: if the underlying stream fails
        """
        records = self.tokenizer.records()
        expected = self.expected_fields

        if self.has_header:
            expected = self._read_header(records)

        for fields, line_number, error in records:
            self.rows_read += 1
            if error is not None:
                yield RawRow((), self.rows_read, line_number, error[0], error[1])
            elif expected is not None and len(fields) != expected:
                yield RawRow(tuple(fields), self.rows_read, line_number, ErrorKind.FIELD_COUNT_MISMATCH,
                             f"expected {expected} fields, found {len(fields)}")
            else:
                yield RawRow(tuple(fields), self.rows_read, line_number)

        logger.debug(f"Total rows read: {self.rows_read}")

    def _read_header(self, records: Iterator[TokenizedRecord]) -> Optional[int]:
        for fields, line_number, error in records:
            if error is not None:
                self.header_issues.append(ValidationError(
                    row_index=0, kind=error[0],
                    detail=f"line {line_number}: header is malformed ({error[1]}); using positional columns",
                ))
                return self.expected_fields
            self.header = fields
            logger.info(f"CSV header: {self.header}")
            return len(fields)

        self.header_issues.append(ValidationError(
            row_index=0, kind=ErrorKind.MISSING_HEADER,
            detail="input is empty; no header row found",
            severity=Severity.WARNING,
        ))
        return self.expected_fields

    def read_in_chunks(self, chunk_size: int) -> Iterator[List[RawRow]]:
        """
        A generator that yields lists of RawRow of at most chunk_size rows.

        Args:
            chunk_size (int): The number of rows to yield per chunk.
        """
        chunk = []
        for row in self.read_rows():
            chunk.append(row)
            if len(chunk) == chunk_size:
                logger.debug(f"Yielding chunk with {len(chunk)} rows")
                yield chunk
                chunk = []

        if chunk:
            logger.debug(f"Yielding final chunk with {len(chunk)} rows")
            yield chunk
