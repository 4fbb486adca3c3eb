# ========================
# tests/test_pipeline.py
# ========================

import unittest
import sys
import os
import io
import random
import threading
from datetime import date
from decimal import Decimal

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv_exchange.pipeline import (
    AbortReason,
    ErrorKind,
    IngestConfig,
    IngestionIOError,
    IngestionPipeline,
    PipelineState,
    Schema,
    export,
    ingest,
)
from csv_exchange.pipeline.orchestrator import merge_in_input_order
from csv_exchange.pipeline.report import RowOutcome

PEOPLE_SCHEMA = {
    "columns": [
        {"name": "id", "type": "integer", "nullable": False},
        {"name": "name", "type": "text"},
        {"name": "joined", "type": "date", "format": "yyyy-MM-dd"},
    ]
}


class CancelAfter:
    """Cancellation signal that trips after a number of checks."""

    def __init__(self, checks):
        self.remaining = checks

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


class FailingStream:
    def __init__(self, first_block):
        self.first_block = first_block
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls == 1:
            return self.first_block
        raise OSError("disk went away")


class TestIngestionPipeline(unittest.TestCase):

    def setUp(self):
        self.schema = Schema.from_dict(PEOPLE_SCHEMA)

    def _ingest(self, text, **options):
        return ingest(io.StringIO(text), self.schema, IngestConfig(**options))

    def test_reference_example(self):
        report = self._ingest(
            "id,name,joined\n"
            "1,Alice,2024-01-10\n"
            ",Bob,2024-02-05\n"
            "3,Carol,not-a-date\n"
        )

        self.assertEqual(report.state, PipelineState.FINALIZED)
        self.assertTrue(report.is_complete)
        self.assertEqual(report.total_rows, 3)
        self.assertEqual(report.accepted_count, 1)
        self.assertEqual(report.rejected_count, 2)
        self.assertEqual(report.records, ({"id": 1, "name": "Alice", "joined": date(2024, 1, 10)},))

        row2 = report.errors_for_row(2)
        self.assertEqual([(e.kind, e.column) for e in row2], [(ErrorKind.NULL_NOT_ALLOWED, "id")])
        row3 = report.errors_for_row(3)
        self.assertEqual([(e.kind, e.column) for e in row3], [(ErrorKind.FORMAT_MISMATCH, "joined")])

    def test_every_row_counted_once(self):
        lines = ["id,name,joined"]
        for i in range(1, 101):
            if i % 7 == 0:
                lines.append(f"x{i},n,2024-01-01")
            elif i % 11 == 0:
                lines.append(f"{i},only-two-fields")
            else:
                lines.append(f"{i},name {i},2024-01-{(i % 28) + 1:02d}")
        report = self._ingest("\n".join(lines) + "\n", chunk_size=9)

        self.assertEqual(report.total_rows, 100)
        self.assertEqual(report.accepted_count + report.rejected_count, report.total_rows)
        self.assertEqual([r["id"] for r in report.records], sorted(r["id"] for r in report.records))

    def test_zero_error_threshold_aborts_on_first_rejected_row(self):
        report = self._ingest("id,name,joined\n1,a,2024-01-01\n,b,2024-01-02\n3,c,2024-01-03\n", max_errors=0)

        self.assertEqual(report.state, PipelineState.ABORTED)
        self.assertEqual(report.abort_reason, AbortReason.TOO_MANY_ERRORS)
        self.assertFalse(report.is_complete)
        self.assertEqual(report.accepted_count, 1)
        self.assertEqual(report.rejected_count, 1)
        self.assertEqual([r["id"] for r in report.records], [1])
        self.assertLessEqual(report.accepted_count + report.rejected_count, report.total_rows)

    def test_threshold_allows_up_to_max_errors(self):
        text = "id,name,joined\n,a,\n2,b,\n,c,\n4,d,\n"
        self.assertEqual(self._ingest(text, max_errors=2).state, PipelineState.FINALIZED)

        report = self._ingest(text, max_errors=1)
        self.assertEqual(report.state, PipelineState.ABORTED)
        self.assertEqual(report.rejected_count, 2)
        self.assertEqual(report.accepted_count, 1)

    def test_unterminated_quote_is_structural_and_later_rows_survive(self):
        report = self._ingest('id,name,joined\n1,"Ann,2024-01-01\n2,Ben,2024-01-02\n3,Cy,2024-01-03\n')

        self.assertEqual(report.state, PipelineState.FINALIZED)
        self.assertEqual(report.errors[0].kind, ErrorKind.UNTERMINATED_QUOTE)
        self.assertEqual(report.errors[0].category.value, "structural")
        self.assertEqual([r["id"] for r in report.records], [2, 3])
        self.assertEqual(report.accepted_count + report.rejected_count, report.total_rows)

    def test_cancellation_before_start(self):
        event = threading.Event()
        event.set()
        report = ingest(io.StringIO("id,name,joined\n1,a,\n"), self.schema, cancel_event=event)

        self.assertEqual(report.state, PipelineState.CANCELLED)
        self.assertEqual(report.abort_reason, AbortReason.CANCELLED)
        self.assertTrue(report.is_cancelled)
        self.assertFalse(report.is_complete)
        self.assertEqual(report.total_rows, 0)

    def test_cancellation_mid_stream_keeps_processed_rows(self):
        text = "id,name,joined\n" + "".join(f"{i},n,\n" for i in range(1, 11))
        report = ingest(io.StringIO(text), self.schema, IngestConfig(chunk_size=4), cancel_event=CancelAfter(6))

        self.assertEqual(report.state, PipelineState.CANCELLED)
        self.assertEqual(report.total_rows, 6)
        self.assertEqual(report.accepted_count, 6)

    def test_io_failure_raises_with_partial_report(self):
        stream = FailingStream("id,name,joined\n1,a,\n2,b,\n")
        with self.assertRaises(IngestionIOError) as ctx:
            IngestionPipeline(self.schema, IngestConfig(chunk_size=1)).run(stream)

        report = ctx.exception.report
        self.assertEqual(report.state, PipelineState.ABORTED)
        self.assertEqual(report.abort_reason, AbortReason.IO_FAILURE)
        self.assertFalse(report.is_complete)
        self.assertEqual(report.accepted_count, 2)

    def test_non_utf8_input_is_an_io_failure(self):
        stream = io.TextIOWrapper(io.BytesIO(b"id,name,joined\n1,\xff\xfe,\n"), encoding="utf-8", newline="")
        with self.assertRaises(IngestionIOError) as ctx:
            ingest(stream, self.schema)
        self.assertEqual(ctx.exception.report.abort_reason, AbortReason.IO_FAILURE)

    def test_parallel_workers_preserve_input_order(self):
        rng = random.Random(7)
        lines = ["id,name,joined"]
        for i in range(1, 301):
            lines.append(f"{i},n{i},2024-02-{rng.randint(1, 31):02d}")
        text = "\n".join(lines) + "\n"

        sequential = self._ingest(text, chunk_size=16)
        parallel = self._ingest(text, chunk_size=16, workers=4)

        self.assertEqual(parallel.records, sequential.records)
        self.assertEqual(parallel.errors, sequential.errors)
        self.assertEqual(parallel.rejected_count, sequential.rejected_count)
        self.assertGreater(parallel.rejected_count, 0)

    def test_merge_restores_order(self):
        outcomes = [RowOutcome(i + 1, {"id": i}) for i in range(5)]
        tagged = list(enumerate(outcomes))
        random.Random(3).shuffle(tagged)

        self.assertEqual(merge_in_input_order(tagged), outcomes)
        with self.assertRaises(ValueError):
            merge_in_input_order([(0, outcomes[0]), (0, outcomes[1])])

    def test_unknown_column_warning_is_reported_once(self):
        report = self._ingest("id,name,joined,comment\n1,a,,x\n2,b,,y\n3,c,,z\n")

        unknown = [e for e in report.errors if e.kind is ErrorKind.UNKNOWN_COLUMN]
        self.assertEqual(len(unknown), 1)
        self.assertEqual(report.warnings_suppressed, 2)
        self.assertEqual(report.accepted_count, 3)
        self.assertEqual(report.warning_count, 1)
        self.assertEqual(report.error_count, 0)

    def test_missing_header_column_is_warned(self):
        report = self._ingest("id,name\n1,a\n")

        self.assertEqual(report.errors_for_row(0)[0].kind, ErrorKind.MISSING_COLUMN)
        self.assertEqual(report.records, ({"id": 1, "name": "a", "joined": None},))

    def test_headerless_input_is_positional(self):
        report = self._ingest("1,a,2024-01-01\n2,b,\n", has_header=False)

        self.assertEqual(report.header, ())
        self.assertEqual([r["id"] for r in report.records], [1, 2])

    def test_empty_and_header_only_input(self):
        empty = self._ingest("")
        self.assertEqual(empty.state, PipelineState.FINALIZED)
        self.assertEqual(empty.total_rows, 0)
        self.assertEqual(empty.errors[0].kind, ErrorKind.MISSING_HEADER)

        header_only = self._ingest("id,name,joined\n")
        self.assertEqual(header_only.state, PipelineState.FINALIZED)
        self.assertEqual(header_only.total_rows, 0)
        self.assertEqual(header_only.errors, ())

    def test_record_sink_receives_chunks(self):
        batches = []
        text = "id,name,joined\n" + "".join(f"{i},n,\n" for i in range(1, 6))
        report = ingest(io.StringIO(text), self.schema, IngestConfig(chunk_size=2, max_retained_records=2),
                        record_sink=batches.append)

        self.assertEqual([len(batch) for batch in batches], [2, 2, 1])
        self.assertEqual(report.accepted_count, 5)
        self.assertEqual(len(report.records), 2)
        self.assertTrue(report.records_truncated)

    def test_column_stats(self):
        schema = Schema.from_dict({"columns": [{"name": "price", "type": "decimal"}]})
        report = ingest(io.StringIO("price\n2.50\n\n10.00\n5\n"), schema,
                        IngestConfig(skip_empty_lines=False))

        stats = report.column_stats["price"]
        self.assertEqual(stats["non_null"], 3)
        self.assertEqual(stats["nulls"], 1)
        self.assertEqual(stats["min"], "2.50")
        self.assertEqual(stats["max"], "10.00")
        self.assertEqual(stats["first"], "2.50")
        self.assertEqual(stats["last"], "5")
        self.assertAlmostEqual(stats["normalized_range"], 3.0)

    def test_round_trip_through_export(self):
        schema = Schema.from_dict({
            "columns": [
                {"name": "id", "type": "integer", "nullable": False},
                {"name": "note", "type": "text"},
                {"name": "price", "type": "decimal"},
                {"name": "active", "type": "boolean"},
                {"name": "at", "type": "timestamp"},
            ]
        })
        text = (
            "id,note,price,active,at\n"
            '1,"comma, and ""quote""",19.990,yes,1704067200123\n'
            '2,"line\nbreak",,0,\n'
            '3," padded ",-0.5,TRUE,0\n'
        )
        first = ingest(io.StringIO(text), schema)
        exported = "".join(export(first.records, schema))
        second = ingest(io.StringIO(exported), schema)

        self.assertEqual(first.accepted_count, 3)
        self.assertEqual(second.records, first.records)
        self.assertEqual(second.records[0]["price"], Decimal("19.990"))
        self.assertEqual(second.records[2]["note"], " padded ")

    def test_extreme_numeric_fields_are_row_errors(self):
        schema = Schema.from_dict({
            "columns": [
                {"name": "n", "type": "integer"},
                {"name": "price", "type": "decimal"},
                {"name": "at", "type": "timestamp"},
            ]
        })
        text = (
            "n,price,at\n"
            "1,2.5,0\n"
            + "9" * 5000 + ",1,1\n"
            "2,1e1000000,2\n"
            "3,NaN,3\n"
            "4,1,\n" + ",,-" + "9" * 5000 + "\n"
            "5,7.5,5\n"
        )
        report = ingest(io.StringIO(text), schema)

        self.assertEqual(report.state, PipelineState.FINALIZED)
        self.assertEqual(report.total_rows, 7)
        self.assertEqual([r["n"] for r in report.records], [1, 4, 5])
        self.assertEqual(report.rejected_count, 4)
        self.assertEqual([(e.row_index, e.column) for e in report.errors],
                         [(2, "n"), (3, "price"), (4, "price"), (6, "at")])
        self.assertTrue(all(e.kind is ErrorKind.TYPE_MISMATCH for e in report.errors))
        self.assertEqual(report.column_stats["price"]["max"], "7.5")

    def test_pipeline_instance_carries_no_run_state(self):
        pipeline = IngestionPipeline(self.schema, IngestConfig(max_errors=0))
        aborted = pipeline.run(io.StringIO("id,name,joined\n,a,\n"))
        finalized = pipeline.run(io.StringIO("id,name,joined\n1,a,\n"))

        self.assertEqual(aborted.state, PipelineState.ABORTED)
        self.assertEqual(finalized.state, PipelineState.FINALIZED)
        self.assertFalse(hasattr(pipeline, "state"))

    def test_report_to_dict_is_json_ready(self):
        report = self._ingest("id,name,joined\n1,a,2024-01-10\n,b,\n")
        data = report.to_dict()

        self.assertEqual(data["state"], "FINALIZED")
        self.assertEqual(data["records"], [{"id": "1", "name": "a", "joined": "2024-01-10"}])
        self.assertEqual(data["errors"][0]["kind"], "NULL_NOT_ALLOWED")
        self.assertEqual(data["errors"][0]["category"], "field")
        self.assertNotIn("records", report.to_dict(include_records=False))


if __name__ == '__main__':
    unittest.main()
