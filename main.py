#!/usr/bin/env python3
# ========================
# main.py
# ========================

"""
Main Entry Point for CSV Exchange

    python main.py generate data/raw/orders.csv --rows 10000 --error-rate 0.15
    python main.py ingest data/raw/orders.csv --schema schema.json --dataset orders

`ingest` streams accepted records straight into <output_dir>/<dataset>.csv
and writes the ingestion report next to it.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from csv_exchange.pipeline import (
    CSVExchangeError,
    CSVExportSerializer,
    IngestionIOError,
    IngestionPipeline,
    Schema,
    save_report,
)
from csv_exchange.utils import Config, DataGenerator, sample_schema, setup_logging

logger = logging.getLogger(__name__)


def _load_schema(path: str) -> Schema:
    if not path:
        return sample_schema()
    with open(path, 'r', encoding='utf-8') as f:
        return Schema.from_dict(json.load(f))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Schema-validated CSV ingestion and export")
    subparsers = parser.add_subparsers(dest='command', required=True)

    ingest = subparsers.add_parser('ingest', help="Ingest a CSV file against a schema")
    ingest.add_argument('input_file')
    ingest.add_argument('--schema', default=None, help="Schema JSON file (default: sample order schema)")
    ingest.add_argument('--dataset', default=None, help="Output dataset name (default: input file stem)")
    ingest.add_argument('--output-dir', default=None)
    ingest.add_argument('--delimiter', default=None)
    ingest.add_argument('--no-header', action='store_true')
    ingest.add_argument('--max-errors', type=int, default=None)
    ingest.add_argument('--workers', type=int, default=None)
    ingest.add_argument('--chunk-size', type=int, default=None)

    generate = subparsers.add_parser('generate', help="Generate a sample CSV file with injected errors")
    generate.add_argument('output_file')
    generate.add_argument('--schema', default=None, help="Schema JSON file (default: sample order schema)")
    generate.add_argument('--rows', type=int, default=None)
    generate.add_argument('--error-rate', type=float, default=0.15)
    generate.add_argument('--seed', type=int, default=42)

    return parser


def run_ingest(args: argparse.Namespace, config: Config) -> int:
    schema = _load_schema(args.schema)
    overrides = {'has_header': not args.no_header, 'max_retained_records': 0}
    for option in ('delimiter', 'max_errors', 'workers', 'chunk_size'):
        value = getattr(args, option)
        if value is not None:
            overrides[option] = value
    ingest_config = config.ingest_config(**overrides)

    dataset = args.dataset or Path(args.input_file).stem
    output_dir = Path(args.output_dir or config.DEFAULT_OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"{dataset}.csv"

    serializer = CSVExportSerializer(schema, config.export_config(line_terminator="\n"))

    with open(args.input_file, 'r', newline='', encoding='utf-8') as source, \
            open(output_file, 'w', newline='', encoding='utf-8') as sink:
        sink.write(serializer.format_header())

        def write_accepted(records):
            sink.writelines(serializer.format_row(record) for record in records)

        try:
            report = IngestionPipeline(schema, ingest_config).run(source, record_sink=write_accepted)
        except IngestionIOError as e:
            if e.report is not None:
                save_report(e.report, str(output_dir / f"{dataset}.report.json"))
            raise

    report_file = save_report(report, str(output_dir / f"{dataset}.report.json"))
    _print_execution_summary(report, str(output_file), report_file)
    return 0 if report.is_complete else 2


def run_generate(args: argparse.Namespace, config: Config) -> int:
    schema = _load_schema(args.schema)
    generator = DataGenerator(seed=args.seed)
    stats = generator.generate_dataset(
        file_path=args.output_file,
        schema=schema,
        num_rows=args.rows or config.DEFAULT_SAMPLE_ROWS,
        error_rate=args.error_rate,
    )
    print(f"Generated {stats['total_rows']:,} rows in {args.output_file}")
    print(f"Rows with injected errors: {stats['records_with_errors']:,} {stats['error_types']}")
    return 0


def _print_execution_summary(report, output_file: str, report_file: str) -> None:
    """Print final execution summary."""
    print("\n" + "=" * 70)
    print("INGESTION SUMMARY")
    print("=" * 70)
    print(f"   State: {report.state.value}"
          + (f" ({report.abort_reason.value}: {report.abort_detail})" if report.abort_reason else ""))
    print(f"   Rows read: {report.total_rows:,}")
    print(f"   Accepted: {report.accepted_count:,}")
    print(f"   Rejected: {report.rejected_count:,}")
    print(f"   Errors: {report.error_count:,}  Warnings: {report.warning_count:,}")
    print(f"   Time: {report.elapsed_seconds:.2f}s")
    print(f"\n   Accepted records: {output_file}")
    print(f"   Report: {report_file}")
    print("=" * 70)


def main(argv=None) -> int:
    """Main execution function."""
    args = build_parser().parse_args(argv)
    config = Config()

    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file="pipeline.log",
        log_dir="logs"
    )

    try:
        if args.command == 'ingest':
            return run_ingest(args, config)
        return run_generate(args, config)
    except (CSVExchangeError, OSError, json.JSONDecodeError) as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
