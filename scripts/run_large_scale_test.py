#!/usr/bin/env python3
# ========================
# scripts/run_large_scale_test.py
# ========================

"""
Script to test ingestion with a large generated dataset.

Generates N rows (default 1M) with injected errors, ingests them with
bounded memory and checks the report against the generation statistics.
"""

import sys
import os

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from csv_exchange.pipeline import IngestConfig, IngestionPipeline
from csv_exchange.utils import Config, DataGenerator, sample_schema, setup_logging


def main():
    """Run a large-scale ingestion test."""

    settings = Config()

    # Parse command line arguments
    if len(sys.argv) > 1:
        try:
            num_rows = int(sys.argv[1])
            workers = int(sys.argv[2]) if len(sys.argv) > 2 else 1
        except ValueError:
            print("Usage: python run_large_scale_test.py [num_rows] [workers]")
            print("Example: python run_large_scale_test.py 1000000 4")
            sys.exit(1)
    else:
        num_rows = settings.LARGE_DATASET_ROWS
        workers = 1

    settings.ensure_directories()
    input_file = os.path.join(settings.DEFAULT_RAW_DIR, "large_orders.csv")
    chunk_size = 10000

    setup_logging(settings.LOG_LEVEL)

    print("=" * 60)
    print("LARGE SCALE INGESTION TEST")
    print("=" * 60)
    print(f"Target dataset size: {num_rows:,} rows")
    print(f"Chunk size: {chunk_size:,} rows, workers: {workers}")
    print(f"Input file: {input_file}")
    print("=" * 60)

    schema = sample_schema()

    print(f"\nStep 1: Generating {num_rows:,} rows of sample data...")
    stats = DataGenerator(seed=42).generate_dataset(input_file, schema, num_rows, error_rate=0.15)

    print("\nStep 2: Ingesting...")
    config = IngestConfig(chunk_size=chunk_size, workers=workers, max_retained_records=0)
    with open(input_file, 'r', newline='', encoding='utf-8') as f:
        report = IngestionPipeline(schema, config).run(f)

    print("\nStep 3: Verifying report...")
    checks = {
        'state is FINALIZED': report.is_complete,
        'every row counted once': report.accepted_count + report.rejected_count == report.total_rows,
        'row count matches generation': report.total_rows == stats['total_rows'],
        'rejected rows match injected errors': report.rejected_count == stats['records_with_errors'],
    }
    for name, passed in checks.items():
        print(f"{'OK  ' if passed else 'FAIL'} {name}")

    rate = report.total_rows / report.elapsed_seconds if report.elapsed_seconds else 0
    print(f"\n{report.total_rows:,} rows in {report.elapsed_seconds:.2f}s ({rate:,.0f} rows/sec)")

    if not all(checks.values()):
        sys.exit(1)


if __name__ == '__main__':
    main()
