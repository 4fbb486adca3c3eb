# ========================
# csv_exchange/pipeline/report.py
# ========================

"""
Ingestion Report Module

IngestionReportBuilder accumulates row outcomes during one run; the
IngestionReport it produces is immutable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from .codec import FieldCodec
from .errors import ErrorKind, ValidationError
from .schema import Schema


class PipelineState(str, Enum):
    INIT = "INIT"
    STREAMING = "STREAMING"
    FINALIZED = "FINALIZED"
    ABORTED = "ABORTED"
    CANCELLED = "CANCELLED"


class AbortReason(str, Enum):
    TOO_MANY_ERRORS = "TOO_MANY_ERRORS"
    IO_FAILURE = "IO_FAILURE"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class RowOutcome:
    """Result of converting and validating one raw row."""

    row_index: int
    record: Optional[Dict[str, Any]]
    issues: Tuple[ValidationError, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class IngestionReport:
    """
    Outcome of one ingestion run.

    total_rows counts data rows read from the input. For a FINALIZED report
    accepted_count + rejected_count == total_rows; otherwise it can be less.
    """

    schema: Schema = field(repr=False, compare=False)
    state: PipelineState
    abort_reason: Optional[AbortReason]
    abort_detail: str
    total_rows: int
    accepted_count: int
    rejected_count: int
    errors: Tuple[ValidationError, ...]
    records: Tuple[Dict[str, Any], ...]
    records_truncated: bool
    warnings_suppressed: int
    header: Tuple[str, ...]
    column_stats: Dict[str, Dict[str, Any]]
    elapsed_seconds: float

    @property
    def is_complete(self) -> bool:
        return self.state is PipelineState.FINALIZED

    @property
    def is_cancelled(self) -> bool:
        return self.state is PipelineState.CANCELLED

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.errors if issue.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.errors) - self.error_count

    def errors_for_row(self, row_index: int) -> List[ValidationError]:
        return [issue for issue in self.errors if issue.row_index == row_index]

    def to_dict(self, include_records: bool = True) -> Dict[str, Any]:
        """
        Render the report for JSON. Record values are formatted as export
        would write them, so decimals and dates keep their exact text.
        """
        data = {
            'state': self.state.value,
            'complete': self.is_complete,
            'abort_reason': self.abort_reason.value if self.abort_reason else None,
            'abort_detail': self.abort_detail or None,
            'total_rows': self.total_rows,
            'accepted_count': self.accepted_count,
            'rejected_count': self.rejected_count,
            'error_count': self.error_count,
            'warning_count': self.warning_count,
            'warnings_suppressed': self.warnings_suppressed,
            'errors': [issue.to_dict() for issue in self.errors],
            'header': list(self.header),
            'column_stats': self.column_stats,
            'elapsed_seconds': round(self.elapsed_seconds, 4),
            'records_truncated': self.records_truncated,
        }
        if include_records:
            codec = FieldCodec()
            data['records'] = [
                {column.name: codec.encode(record.get(column.name), column) for column in self.schema}
                for record in self.records
            ]
        return data


class IngestionReportBuilder:
    """
    Mutable accumulator used by the pipeline while streaming.

    UNKNOWN_COLUMN warnings are kept once per column; later repeats are only
    counted in warnings_suppressed.
    """

    def __init__(self, schema: Schema, max_retained_records: Optional[int] = None):
        self.schema = schema
        self.max_retained_records = max_retained_records
        self.accepted_count = 0
        self.rejected_count = 0
        self.errors: List[ValidationError] = []
        self.records: List[Dict[str, Any]] = []
        self.records_truncated = False
        self.warnings_suppressed = 0
        self._seen_unknown: Set[Optional[str]] = set()

    def add_header_issues(self, issues: List[ValidationError]) -> None:
        self.errors.extend(issues)

    def add_outcome(self, outcome: RowOutcome) -> None:
        self._add_issues(outcome.issues)
        if outcome.accepted:
            self.accepted_count += 1
            if self.max_retained_records is None or len(self.records) < self.max_retained_records:
                self.records.append(outcome.record)
            else:
                self.records_truncated = True
        else:
            self.rejected_count += 1

    def _add_issues(self, issues) -> None:
        for issue in issues:
            if issue.kind is ErrorKind.UNKNOWN_COLUMN:
                if issue.column in self._seen_unknown:
                    self.warnings_suppressed += 1
                    continue
                self._seen_unknown.add(issue.column)
            self.errors.append(issue)

    def build(self,
              state: PipelineState,
              total_rows: int,
              header: List[str],
              column_stats: Dict[str, Dict[str, Any]],
              elapsed_seconds: float,
              abort_reason: Optional[AbortReason] = None,
              abort_detail: str = "") -> IngestionReport:
        return IngestionReport(
            schema=self.schema,
            state=state,
            abort_reason=abort_reason,
            abort_detail=abort_detail,
            total_rows=total_rows,
            accepted_count=self.accepted_count,
            rejected_count=self.rejected_count,
            errors=tuple(self.errors),
            records=tuple(self.records),
            records_truncated=self.records_truncated,
            warnings_suppressed=self.warnings_suppressed,
            header=tuple(header),
            column_stats=column_stats,
            elapsed_seconds=elapsed_seconds,
        )
