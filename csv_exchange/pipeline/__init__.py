# ========================
# csv_exchange/pipeline/__init__.py
# ========================

"""
CSV Exchange Pipeline Package

Core components for schema-driven CSV ingestion and export:
- schema: Column definitions, types and cross-field rules
- ingestion: Streaming, memory-bounded CSV parsing
- codec: Text <-> typed value conversion
- validation: Per-row checks
- orchestrator: Ingestion run coordination and reporting
- export: Streaming CSV serialization
- storage: Record store collaborators
"""

from .errors import (
    CSVExchangeError,
    ConfigError,
    ErrorCategory,
    ErrorKind,
    ExportError,
    IngestionIOError,
    SchemaError,
    Severity,
    StreamReadError,
    ValidationError,
)
from .settings import CSVDialect, ExportConfig, IngestConfig
from .schema import ColumnDefinition, ColumnType, CrossFieldRule, Schema
from .codec import FieldCodec, InvalidField
from .ingestion import CSVReader
from .validation import RowValidator
from .report import AbortReason, IngestionReport, PipelineState
from .orchestrator import IngestionPipeline, ingest
from .export import CSVExportSerializer, export
from .storage import CSVFileRecordStore, DatasetNotFoundError, InMemoryRecordStore, RecordStore, save_report

__all__ = [
    'AbortReason',
    'CSVDialect',
    'CSVExchangeError',
    'CSVExportSerializer',
    'CSVFileRecordStore',
    'CSVReader',
    'ColumnDefinition',
    'ColumnType',
    'ConfigError',
    'CrossFieldRule',
    'DatasetNotFoundError',
    'ErrorCategory',
    'ErrorKind',
    'ExportConfig',
    'ExportError',
    'FieldCodec',
    'InMemoryRecordStore',
    'IngestConfig',
    'IngestionIOError',
    'IngestionPipeline',
    'IngestionReport',
    'InvalidField',
    'PipelineState',
    'RecordStore',
    'RowValidator',
    'Schema',
    'SchemaError',
    'Severity',
    'StreamReadError',
    'ValidationError',
    'export',
    'ingest',
    'save_report',
]

__version__ = "1.0.0"
