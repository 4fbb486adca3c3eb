# ========================
# csv_exchange/pipeline/schema.py
# ========================

"""
Schema Module

Declares the shape of a dataset: ordered, typed column definitions and
optional cross-field rules evaluated after field conversion.
"""

import operator
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import SchemaError


class ColumnType(str, Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"


# Aliases accepted when schemas arrive as JSON
TYPE_ALIASES = {
    "string": ColumnType.TEXT,
    "str": ColumnType.TEXT,
    "int": ColumnType.INTEGER,
    "long": ColumnType.INTEGER,
    "float": ColumnType.DECIMAL,
    "double": ColumnType.DECIMAL,
    "number": ColumnType.DECIMAL,
    "bool": ColumnType.BOOLEAN,
    "epoch_millis": ColumnType.TIMESTAMP,
}

DEFAULT_FORMATS = {
    ColumnType.DATE: "%Y-%m-%d",
    ColumnType.DATETIME: "%Y-%m-%d %H:%M:%S",
}

# Letter-style date pattern tokens (yyyy-MM-dd) and their strftime equivalents
_DATE_TOKENS = {
    "yyyy": "%Y", "uuuu": "%Y", "yy": "%y",
    "MMMM": "%B", "MMM": "%b", "MM": "%m",
    "dd": "%d",
    "EEEE": "%A", "EEE": "%a",
    "HH": "%H", "hh": "%I",
    "mm": "%M", "ss": "%S",
    "a": "%p",
}


def to_strftime(pattern: str) -> str:
    """
    Translate a letter-style date pattern to a strftime format.

    Patterns already containing '%' are returned unchanged. Text in single
    quotes is copied literally.
    """
    if '%' in pattern:
        return pattern

    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "'":
            end = pattern.find("'", i + 1)
            if end == -1:
                raise SchemaError(f"Unterminated literal in date pattern: {pattern!r}")
            out.append(pattern[i + 1:end] or "'")
            i = end + 1
        elif ch.isalpha():
            j = i
            while j < len(pattern) and pattern[j] == ch:
                j += 1
            token = pattern[i:j]
            if token not in _DATE_TOKENS:
                raise SchemaError(f"Unsupported token {token!r} in date pattern {pattern!r}")
            out.append(_DATE_TOKENS[token])
            i = j
        else:
            out.append(ch)
            i += 1
    return ''.join(out)


def _coerce_type(value: Any) -> ColumnType:
    if isinstance(value, ColumnType):
        return value
    key = str(value).strip().lower()
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    try:
        return ColumnType(key)
    except ValueError:
        raise SchemaError(f"Unknown column type: {value!r}") from None


@dataclass(frozen=True)
class ColumnDefinition:
    """
    A single typed column.

    format is a date pattern for date/datetime columns and a regular
    expression (matched against the whole value) for text columns.
    """

    name: str
    type: ColumnType = ColumnType.TEXT
    nullable: bool = True
    format: Optional[str] = None
    date_format: Optional[str] = field(default=None, init=False, repr=False, compare=False)
    pattern: Optional['re.Pattern'] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise SchemaError("Column name must be a non-empty string")
        column_type = _coerce_type(self.type)
        object.__setattr__(self, 'type', column_type)

        if column_type in DEFAULT_FORMATS:
            object.__setattr__(self, 'date_format', to_strftime(self.format or DEFAULT_FORMATS[column_type]))
        elif column_type is ColumnType.TEXT:
            if self.format is not None:
                try:
                    object.__setattr__(self, 'pattern', re.compile(self.format))
                except re.error as e:
                    raise SchemaError(f"Invalid pattern for column '{self.name}': {e}") from e
        elif self.format is not None:
            raise SchemaError(f"Column '{self.name}' of type {column_type.value} does not accept a format")

    @property
    def key(self) -> str:
        """Case-folded name used for lookups."""
        return self.name.strip().casefold()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ColumnDefinition':
        if 'name' not in data:
            raise SchemaError(f"Column definition is missing 'name': {dict(data)}")
        return cls(
            name=data['name'],
            type=data.get('type', ColumnType.TEXT),
            nullable=bool(data.get('nullable', True)),
            format=data.get('format'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {'name': self.name, 'type': self.type.value, 'nullable': self.nullable}
        if self.format is not None:
            data['format'] = self.format
        return data


_COMPARISONS = {
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
    '==': operator.eq,
    '!=': operator.ne,
}


@dataclass(frozen=True)
class CrossFieldRule:
    """
    A predicate over several typed values of one row.

    The predicate receives a dict of the referenced columns' values, keyed by
    case-folded column name, and only runs when all of them are valid and
    non-null.
    """

    name: str
    columns: Tuple[str, ...]
    predicate: Callable[[Dict[str, Any]], bool]
    message: str = ""
    definition: Optional[Dict[str, str]] = field(default=None, compare=False)

    @classmethod
    def compare(cls, left: str, op: str, right: str, name: Optional[str] = None) -> 'CrossFieldRule':
        """Build a rule such as ``compare('end_date', '>=', 'start_date')``."""
        if op not in _COMPARISONS:
            raise SchemaError(f"Unsupported comparison operator: {op!r}")
        compare_fn = _COMPARISONS[op]
        left_key, right_key = left.casefold(), right.casefold()

        def predicate(values: Dict[str, Any]) -> bool:
            return compare_fn(values[left_key], values[right_key])

        return cls(
            name=name or f"{left} {op} {right}",
            columns=(left, right),
            predicate=predicate,
            message=f"expected {left} {op} {right}",
            definition={'name': name or f"{left} {op} {right}", 'left': left, 'op': op, 'right': right},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CrossFieldRule':
        try:
            return cls.compare(data['left'], data['op'], data['right'], name=data.get('name'))
        except KeyError as e:
            raise SchemaError(f"Rule definition is missing {e}: {dict(data)}") from None


class Schema:
    """Ordered column definitions with case-insensitive unique names."""

    def __init__(self, columns: Sequence[ColumnDefinition], rules: Sequence[CrossFieldRule] = ()):
        if not columns:
            raise SchemaError("Schema must declare at least one column")

        self._columns: Tuple[ColumnDefinition, ...] = tuple(columns)
        self._by_key: Dict[str, ColumnDefinition] = {}
        for column in self._columns:
            if column.key in self._by_key:
                raise SchemaError(f"Duplicate column name (case-insensitive): '{column.name}'")
            self._by_key[column.key] = column

        for rule in rules:
            unknown = [name for name in rule.columns if name.casefold() not in self._by_key]
            if unknown:
                raise SchemaError(f"Rule '{rule.name}' references unknown columns: {unknown}")
        self._rules: Tuple[CrossFieldRule, ...] = tuple(rules)

    @property
    def columns(self) -> Tuple[ColumnDefinition, ...]:
        return self._columns

    @property
    def rules(self) -> Tuple[CrossFieldRule, ...]:
        return self._rules

    @property
    def names(self) -> List[str]:
        return [column.name for column in self._columns]

    def get(self, name: str) -> Optional[ColumnDefinition]:
        return self._by_key.get(name.strip().casefold())

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[ColumnDefinition]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"Schema({', '.join(f'{c.name}:{c.type.value}' for c in self._columns)})"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Schema':
        """
        Build a schema from a JSON-like mapping.

        Example:
            {"columns": [{"name": "id", "type": "integer", "nullable": false},
                         {"name": "joined", "type": "date", "format": "yyyy-MM-dd"}],
             "rules": [{"left": "ended", "op": ">=", "right": "joined"}]}
        """
        if not isinstance(data, Mapping) or not isinstance(data.get('columns'), list):
            raise SchemaError("Schema definition must be an object with a 'columns' list")
        columns = [ColumnDefinition.from_dict(column) for column in data['columns']]
        rules = [CrossFieldRule.from_dict(rule) for rule in data.get('rules', [])]
        return cls(columns, rules)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'columns': [column.to_dict() for column in self._columns]}
        declared = [rule.definition for rule in self._rules if rule.definition]
        if declared:
            data['rules'] = declared
        return data
