# ========================
# csv_exchange/pipeline/settings.py
# ========================

"""
Pipeline Settings

Explicit, immutable configuration values handed to the parser, the ingestion
pipeline and the exporter. Nothing here reads the environment; see
csv_exchange.utils.config for the service-level settings that build these.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from .errors import ConfigError


@dataclass(frozen=True)
class CSVDialect:
    """
    Delimiter and quoting rules shared by the parser and the exporter.

    escape_char=None means quotes inside quoted fields are escaped by
    doubling them. When an escape character is set, doubled quotes are still
    accepted on input.
    """

    delimiter: str = ","
    quote_char: str = '"'
    escape_char: Optional[str] = None

    def __post_init__(self):
        for name in ('delimiter', 'quote_char'):
            value = getattr(self, name)
            if not isinstance(value, str) or len(value) != 1:
                raise ConfigError(f"{name} must be a single character, got {value!r}")
        if self.escape_char is not None and (not isinstance(self.escape_char, str) or len(self.escape_char) != 1):
            raise ConfigError(f"escape_char must be a single character or None, got {self.escape_char!r}")

        special = [self.delimiter, self.quote_char]
        if self.escape_char is not None and self.escape_char != self.quote_char:
            special.append(self.escape_char)
        if len(set(special)) != len(special):
            raise ConfigError("delimiter, quote_char and escape_char must be distinct")
        if any(ch in '\r\n' for ch in special):
            raise ConfigError("line break characters cannot be used as delimiter, quote or escape")


@dataclass(frozen=True)
class IngestConfig:
    """Options for a single ingestion run."""

    dialect: CSVDialect = field(default_factory=CSVDialect)
    has_header: bool = True
    max_errors: Optional[int] = None
    null_value: str = ""
    skip_empty_lines: bool = True
    strip_whitespace: bool = False
    max_field_size: int = 131072
    chunk_size: int = 1000
    workers: int = 1
    max_retained_records: Optional[int] = None

    def __post_init__(self):
        if self.max_errors is not None and self.max_errors < 0:
            raise ConfigError(f"max_errors must be >= 0 or None, got {self.max_errors}")
        if self.max_field_size <= 0:
            raise ConfigError(f"max_field_size must be positive, got {self.max_field_size}")
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.workers <= 0:
            raise ConfigError(f"workers must be positive, got {self.workers}")
        if self.max_retained_records is not None and self.max_retained_records < 0:
            raise ConfigError(f"max_retained_records must be >= 0 or None, got {self.max_retained_records}")

    @classmethod
    def from_options(cls, delimiter: str = ",", quote_char: str = '"',
                     escape_char: Optional[str] = None, **options) -> 'IngestConfig':
        """Build a config from flat keyword options, as received over HTTP or CLI."""
        dialect = CSVDialect(delimiter=delimiter, quote_char=quote_char, escape_char=escape_char or None)
        return cls(dialect=dialect, **options)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExportConfig:
    """Options for serializing records back to delimited text."""

    dialect: CSVDialect = field(default_factory=CSVDialect)
    has_header: bool = True
    line_terminator: str = "\r\n"

    def __post_init__(self):
        if self.line_terminator not in ("\n", "\r\n", "\r"):
            raise ConfigError(f"line_terminator must be one of \\n, \\r\\n, \\r; got {self.line_terminator!r}")

    @classmethod
    def from_options(cls, delimiter: str = ",", quote_char: str = '"',
                     escape_char: Optional[str] = None, **options) -> 'ExportConfig':
        dialect = CSVDialect(delimiter=delimiter, quote_char=quote_char, escape_char=escape_char or None)
        return cls(dialect=dialect, **options)
