# ========================
# csv_exchange/pipeline/storage.py
# ========================

"""
Data Storage Module

Storage collaborators for accepted records and report persistence. The
ingestion core never calls these itself; callers hand records over after
(or while) a run completes.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .errors import CSVExchangeError, ExportError
from .export import CSVExportSerializer
from .orchestrator import IngestionPipeline
from .report import IngestionReport
from .schema import Schema
from .settings import ExportConfig, IngestConfig

logger = logging.getLogger(__name__)

_DATASET_NAME = re.compile(r'[A-Za-z0-9][A-Za-z0-9_.-]{0,127}')


class DatasetNotFoundError(CSVExchangeError):
    """Raised when loading a dataset that was never saved."""


@dataclass(frozen=True)
class SaveOutcome:
    dataset: str
    records_saved: int
    location: str


def validate_dataset_name(dataset: str) -> str:
    if not isinstance(dataset, str) or not _DATASET_NAME.fullmatch(dataset) or '..' in dataset:
        raise ValueError(f"Invalid dataset name: {dataset!r}")
    return dataset


class RecordStore:
    """
    Storage contract: save(dataset, schema, records) and load(dataset).
    Implementations own their synchronization.
    """

    def save(self, dataset: str, schema: Schema, records: Iterable[Mapping[str, Any]]) -> SaveOutcome:
        raise NotImplementedError

    def load(self, dataset: str) -> Tuple[Schema, List[Dict[str, Any]]]:
        raise NotImplementedError

    def list_datasets(self) -> List[str]:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    """Keeps datasets in a dict guarded by a lock. Saving replaces a dataset."""

    def __init__(self):
        self._lock = threading.Lock()
        self._datasets: Dict[str, Tuple[Schema, List[Dict[str, Any]]]] = {}

    def save(self, dataset: str, schema: Schema, records: Iterable[Mapping[str, Any]]) -> SaveOutcome:
        validate_dataset_name(dataset)
        rows = [dict(record) for record in records]
        with self._lock:
            self._datasets[dataset] = (schema, rows)
        logger.info(f"Stored {len(rows):,} records in memory as '{dataset}'")
        return SaveOutcome(dataset, len(rows), f"memory://{dataset}")

    def load(self, dataset: str) -> Tuple[Schema, List[Dict[str, Any]]]:
        with self._lock:
            if dataset not in self._datasets:
                raise DatasetNotFoundError(f"Dataset '{dataset}' does not exist")
            schema, rows = self._datasets[dataset]
            return schema, list(rows)

    def list_datasets(self) -> List[str]:
        with self._lock:
            return sorted(self._datasets)


class CSVFileRecordStore(RecordStore):
    """
    Saves each dataset as <name>.csv plus <name>.schema.json in output_dir.

    Files are written through the exporter and read back through the
    ingestion pipeline, so a saved dataset loads to equal typed records.
    """

    def __init__(self, output_dir: str = "data/processed"):
        """
        Initialize the file store.

        Args:
            output_dir (str): Directory to save dataset files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info(f"CSVFileRecordStore initialized with output directory: {self.output_dir}")

    def _paths(self, dataset: str) -> Tuple[Path, Path]:
        validate_dataset_name(dataset)
        return self.output_dir / f"{dataset}.csv", self.output_dir / f"{dataset}.schema.json"

    def save(self, dataset: str, schema: Schema, records: Iterable[Mapping[str, Any]]) -> SaveOutcome:
        data_path, schema_path = self._paths(dataset)
        serializer = CSVExportSerializer(schema, ExportConfig(line_terminator="\n"))

        with self._lock:
            try:
                with open(schema_path, 'w', encoding='utf-8') as f:
                    json.dump(schema.to_dict(), f, indent=2, ensure_ascii=False)
                with open(data_path, 'w', newline='', encoding='utf-8') as f:
                    written = serializer.write(records, f)
            except OSError as e:
                logger.error(f"Error writing dataset '{dataset}' to {data_path}: {e}")
                raise ExportError(f"could not save dataset '{dataset}': {e}") from e

        logger.info(f"Saved {written:,} records to {data_path}")
        return SaveOutcome(dataset, written, str(data_path))

    def load(self, dataset: str) -> Tuple[Schema, List[Dict[str, Any]]]:
        data_path, schema_path = self._paths(dataset)
        if not data_path.exists() or not schema_path.exists():
            raise DatasetNotFoundError(f"Dataset '{dataset}' does not exist in {self.output_dir}")

        with open(schema_path, 'r', encoding='utf-8') as f:
            schema = Schema.from_dict(json.load(f))

        records: List[Dict[str, Any]] = []
        with open(data_path, 'r', newline='', encoding='utf-8') as f:
            report = IngestionPipeline(schema, IngestConfig(max_retained_records=0)).run(
                f, record_sink=records.extend)

        if report.rejected_count:
            logger.warning(f"Dataset '{dataset}': {report.rejected_count} stored rows failed to load")
        return schema, records

    def list_datasets(self) -> List[str]:
        return sorted(path.name[:-len('.schema.json')] for path in self.output_dir.glob('*.schema.json'))


def save_report(report: IngestionReport, file_path: str, include_records: bool = False) -> str:
    """
    Save an ingestion report as JSON.

    Args:
        report (IngestionReport): Report to save
        file_path (str): Destination path; parent directories are created
        include_records (bool): Also write the retained accepted records

    Returns:
        str: Path of the written file
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(report.to_dict(include_records=include_records), f, indent=2, ensure_ascii=False)

    logger.info(f"Report saved to {path}")
    return str(path)
