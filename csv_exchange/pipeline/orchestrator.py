# ========================
# csv_exchange/pipeline/orchestrator.py
# ========================

"""
Pipeline Orchestrator Module

Drives the reader, codec and validator over one input stream and
accumulates an IngestionReport. Processing is fail-soft: row problems are
recorded and the run continues, unless the error threshold is crossed, the
caller cancels, or the stream itself fails.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple

from .codec import FieldCodec
from .errors import IngestionIOError, StreamReadError
from .ingestion import CSVReader
from .profiling import ColumnProfiler
from .records import ColumnMapping, RawRow
from .report import AbortReason, IngestionReport, IngestionReportBuilder, PipelineState, RowOutcome
from .schema import Schema
from .settings import IngestConfig
from .validation import RowValidator
from ..utils.performance_monitor import monitor_performance

logger = logging.getLogger(__name__)

RecordSink = Callable[[List[Dict[str, Any]]], Any]


def merge_in_input_order(tagged: Sequence[Tuple[int, RowOutcome]]) -> List[RowOutcome]:
    """
    Restore input order of outcomes computed out of order.

    Args:
        tagged: (position in chunk, outcome) pairs in completion order

    Returns:
        list[RowOutcome]: Outcomes sorted by position

    Raises:
        ValueError: if positions are not exactly 0..n-1
    """
    ordered = sorted(tagged, key=lambda item: item[0])
    if [position for position, _ in ordered] != list(range(len(ordered))):
        raise ValueError("Outcome positions must be unique and contiguous")
    return [outcome for _, outcome in ordered]


class IngestionPipeline:
    """
    Orchestrates one ingestion run: parse, convert, validate, aggregate.

    A pipeline instance holds only configuration; each call to run() owns
    its own state, reader, report builder and profiler, so one instance can
    serve concurrent runs.
    """

    def __init__(self, schema: Schema, config: Optional[IngestConfig] = None):
        """
        Initialize the ingestion pipeline.

        Args:
            schema (Schema): Expected columns and rules
            config (IngestConfig): Dialect, header, threshold and chunking options
        """
        self.schema = schema
        self.config = config or IngestConfig()
        self.codec = FieldCodec(null_value=self.config.null_value,
                                strip_whitespace=self.config.strip_whitespace)
        self.validator = RowValidator(schema)
        logger.debug(f"IngestionPipeline initialized: {schema!r}, chunk size {self.config.chunk_size}, "
                     f"workers {self.config.workers}")

    def run(self,
            stream: TextIO,
            cancel_event: Optional[Any] = None,
            record_sink: Optional[RecordSink] = None) -> IngestionReport:
        """
        Ingest a character stream.

        Args:
            stream (TextIO): Input text; read once, incrementally
            cancel_event: Object with is_set() (e.g. threading.Event), checked
                before every row
            record_sink (callable): Receives accepted records chunk by chunk

        Returns:
            IngestionReport: FINALIZED, ABORTED or CANCELLED report

        Raises:
            IngestionIOError: if the stream fails; the partial report is attached
        """
        config = self.config
        reader = CSVReader(
            stream,
            dialect=config.dialect,
            has_header=config.has_header,
            expected_fields=len(self.schema),
            max_field_size=config.max_field_size,
            skip_empty_lines=config.skip_empty_lines,
        )
        builder = IngestionReportBuilder(self.schema, config.max_retained_records)
        profiler = ColumnProfiler(self.schema)
        state = PipelineState.STREAMING
        abort_reason = None
        abort_detail = ""

        logger.info(f"Starting ingestion against {self.schema!r}")

        with monitor_performance("Ingestion") as monitor:
            executor = ThreadPoolExecutor(max_workers=config.workers) if config.workers > 1 else None
            try:
                rows = reader.read_rows()
                mapping = None

                while True:
                    chunk, cancelled = self._next_chunk(rows, cancel_event)
                    if mapping is None and (chunk or not cancelled):
                        mapping = self._build_mapping(reader, builder)

                    if chunk:
                        outcomes = self._process_chunk(chunk, mapping, executor)
                        accepted, tripped_at = self._aggregate(outcomes, builder)
                        if accepted:
                            profiler.process_chunk(accepted)
                            if record_sink is not None:
                                record_sink(accepted)
                        monitor.update_progress(len(chunk))
                        logger.debug(f"Chunk {monitor.chunks_processed}: {len(accepted)}/{len(chunk)} rows accepted")

                        if tripped_at is not None:
                            state = PipelineState.ABORTED
                            abort_reason = AbortReason.TOO_MANY_ERRORS
                            abort_detail = (f"rejected rows exceeded max_errors={config.max_errors} "
                                            f"at row {tripped_at}")
                            logger.warning(f"Ingestion aborted: {abort_detail}")
                            break

                    if cancelled:
                        state = PipelineState.CANCELLED
                        abort_reason = AbortReason.CANCELLED
                        abort_detail = f"cancelled after {reader.rows_read} rows"
                        logger.warning(f"Ingestion cancelled after {reader.rows_read} rows")
                        break
                    if not chunk:
                        state = PipelineState.FINALIZED
                        break

            except StreamReadError as e:
                state = PipelineState.ABORTED
                report = builder.build(
                    state, reader.rows_read, reader.header, profiler.get_summary(),
                    monitor.elapsed_seconds, AbortReason.IO_FAILURE, str(e),
                )
                logger.error(f"Ingestion aborted by I/O failure: {e}")
                raise IngestionIOError(str(e), report) from e
            finally:
                if executor is not None:
                    executor.shutdown(wait=True)

            report = builder.build(
                state, reader.rows_read, reader.header, profiler.get_summary(),
                monitor.elapsed_seconds, abort_reason, abort_detail,
            )

        self._log_final_summary(report)
        return report

    def _next_chunk(self, rows: Iterator[RawRow], cancel_event) -> Tuple[List[RawRow], bool]:
        """Read up to chunk_size rows, checking for cancellation before each one."""
        chunk: List[RawRow] = []
        while len(chunk) < self.config.chunk_size:
            if cancel_event is not None and cancel_event.is_set():
                return chunk, True
            row = next(rows, None)
            if row is None:
                break
            chunk.append(row)
        return chunk, False

    def _build_mapping(self, reader: CSVReader, builder: IngestionReportBuilder) -> ColumnMapping:
        builder.add_header_issues(reader.header_issues)
        if reader.header:
            mapping = ColumnMapping.from_header(reader.header, self.schema)
            builder.add_header_issues(mapping.issues)
            return mapping
        return ColumnMapping.positional(self.schema)

    def evaluate_row(self, raw: RawRow, mapping: ColumnMapping) -> RowOutcome:
        """Convert and validate a single raw row."""
        if raw.is_error:
            return RowOutcome(raw.row_index, None, (raw.to_error(),))

        typed = self.codec.decode_row(raw, mapping)
        issues = self.validator.validate(typed)
        record = typed.to_record() if RowValidator.is_accepted(issues) else None
        return RowOutcome(raw.row_index, record, tuple(issues))

    def _process_chunk(self, chunk: List[RawRow], mapping: ColumnMapping,
                       executor: Optional[ThreadPoolExecutor]) -> List[RowOutcome]:
        if executor is None:
            return [self.evaluate_row(raw, mapping) for raw in chunk]

        futures = {executor.submit(self.evaluate_row, raw, mapping): position
                   for position, raw in enumerate(chunk)}
        tagged = [(futures[future], future.result()) for future in as_completed(futures)]
        return merge_in_input_order(tagged)

    def _aggregate(self, outcomes: List[RowOutcome],
                   builder: IngestionReportBuilder) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        Fold outcomes into the report in input order.

        Returns:
            tuple: (accepted records of this chunk, row index at which the
                error threshold tripped or None)
        """
        max_errors = self.config.max_errors
        accepted = []
        for outcome in outcomes:
            builder.add_outcome(outcome)
            if outcome.accepted:
                accepted.append(outcome.record)
            elif max_errors is not None and builder.rejected_count > max_errors:
                return accepted, outcome.row_index
        return accepted, None

    def _log_final_summary(self, report: IngestionReport) -> None:
        logger.info("=" * 60)
        logger.info("INGESTION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"State: {report.state.value}")
        logger.info(f"Rows read: {report.total_rows:,}")
        logger.info(f"Accepted: {report.accepted_count:,}")
        logger.info(f"Rejected: {report.rejected_count:,}")
        logger.info(f"Errors: {report.error_count:,}, warnings: {report.warning_count:,}")
        if report.abort_reason:
            logger.info(f"Abort reason: {report.abort_reason.value} ({report.abort_detail})")
        logger.info("=" * 60)


def ingest(stream: TextIO,
           schema: Schema,
           config: Optional[IngestConfig] = None,
           cancel_event: Optional[Any] = None,
           record_sink: Optional[RecordSink] = None) -> IngestionReport:
    """Ingest a character stream against a schema. See IngestionPipeline.run."""
    return IngestionPipeline(schema, config).run(stream, cancel_event=cancel_event, record_sink=record_sink)
