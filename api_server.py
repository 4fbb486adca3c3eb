# ========================
# api_server.py
# ========================

"""
FastAPI Server for CSV Exchange

Thin HTTP adapter: turns uploads into text streams, runs ingestion against a
caller-supplied schema, stores accepted records and streams them back out as
CSV. Row-level problems are part of the report, never an HTTP failure.
"""

import codecs
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
import uvicorn

from csv_exchange.pipeline import (
    CSVExchangeError,
    CSVExportSerializer,
    CSVFileRecordStore,
    ConfigError,
    DatasetNotFoundError,
    InMemoryRecordStore,
    IngestionIOError,
    IngestionPipeline,
    RecordStore,
    Schema,
    SchemaError,
)
from csv_exchange.pipeline.storage import validate_dataset_name
from csv_exchange.utils.config import Config
from csv_exchange.utils.logging_setup import setup_logging
from csv_exchange.utils.performance_monitor import get_process_memory_mb

config = Config()

# Setup logging
setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_store(settings: Config) -> RecordStore:
    """Record store selected by PIPELINE_STORE."""
    if settings.STORE_BACKEND == 'files':
        return CSVFileRecordStore(settings.DEFAULT_OUTPUT_DIR)
    return InMemoryRecordStore()


store: RecordStore = create_store(config)

# Initialize FastAPI app
app = FastAPI(
    title="CSV Exchange API",
    description="Schema-validated CSV ingestion and streaming CSV export",
    version="1.0.0"
)

# Add CORS middleware to allow frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _parse_schema(schema_json: str) -> Schema:
    try:
        return Schema.from_dict(json.loads(schema_json))
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Schema is not valid JSON: {e}")
    except SchemaError as e:
        raise HTTPException(status_code=400, detail=f"Invalid schema: {e}")


def _check_dataset_name(name: str) -> None:
    try:
        validate_dataset_name(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "CSV Exchange API",
        "version": "1.0.0",
        "endpoints": {
            "ingest": "POST /datasets/{name}/ingest - Upload a CSV file with a JSON schema",
            "datasets": "GET /datasets - List stored datasets",
            "dataset": "GET /datasets/{name} - Schema and record count of a dataset",
            "export": "GET /datasets/{name}/export - Download a dataset as CSV",
            "health": "/health - Health check",
            "api_docs": "/docs - API documentation"
        },
        "api_docs_url": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "memory_mb": round(get_process_memory_mb(), 2),
        "datasets": len(store.list_datasets()),
    }


@app.post("/datasets/{name}/ingest")
def ingest_dataset(
    name: str,
    file: UploadFile = File(...),
    schema: str = Form(..., description="Schema as JSON: {\"columns\": [...], \"rules\": [...]}"),
    delimiter: str = Query(",", min_length=1, max_length=1),
    quote_char: str = Query('"', min_length=1, max_length=1),
    escape_char: Optional[str] = Query(None, max_length=1),
    has_header: bool = Query(True),
    max_errors: Optional[int] = Query(None, ge=0, description="Abort once rejected rows exceed this"),
    null_value: str = Query(""),
    skip_empty_lines: bool = Query(True),
    strip_whitespace: bool = Query(False),
    workers: int = Query(1, ge=1, le=32),
    include_records: bool = Query(False, description="Include retained records in the response"),
):
    """
    Ingest an uploaded CSV file and store its accepted records.

    Returns 200 with the ingestion report even when rows were rejected or the
    run aborted on the error threshold; records are stored only for complete
    runs. A stream that cannot be decoded returns 422 with the partial report.
    """
    _check_dataset_name(name)
    parsed_schema = _parse_schema(schema)

    if file.size is not None and file.size > config.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"Upload exceeds {config.MAX_UPLOAD_MB} MB")

    try:
        ingest_config = config.ingest_config(
            delimiter=delimiter,
            quote_char=quote_char,
            escape_char=escape_char,
            has_header=has_header,
            max_errors=max_errors,
            null_value=null_value,
            skip_empty_lines=skip_empty_lines,
            strip_whitespace=strip_whitespace,
            workers=workers,
        )
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=f"Invalid ingest options: {e}")

    accepted: List[Dict[str, Any]] = []
    stream = codecs.getreader('utf-8')(file.file)
    try:
        report = IngestionPipeline(parsed_schema, ingest_config).run(stream, record_sink=accepted.extend)
    except IngestionIOError as e:
        logger.warning(f"Ingestion of '{name}' failed reading upload {file.filename}: {e}")
        raise HTTPException(status_code=422, detail={
            "message": f"Could not read upload: {e}",
            "report": e.report.to_dict(include_records=False) if e.report else None,
        })

    saved = None
    if report.is_complete:
        try:
            outcome = store.save(name, parsed_schema, accepted)
        except CSVExchangeError as e:
            logger.error(f"Failed to store dataset '{name}': {e}")
            raise HTTPException(status_code=500, detail=f"Failed to store dataset: {e}")
        saved = {"dataset": outcome.dataset, "records_saved": outcome.records_saved, "location": outcome.location}

    logger.info(f"Ingested {file.filename} into '{name}': {report.accepted_count} accepted, "
                f"{report.rejected_count} rejected, state {report.state.value}")

    return {
        "dataset": name,
        "filename": file.filename,
        "saved": saved,
        "report": report.to_dict(include_records=include_records),
    }


@app.get("/datasets")
async def list_datasets():
    """List stored datasets."""
    return {"datasets": store.list_datasets()}


@app.get("/datasets/{name}")
def get_dataset(name: str):
    """Schema and record count of a stored dataset."""
    _check_dataset_name(name)
    try:
        dataset_schema, records = store.load(name)
    except DatasetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"dataset": name, "schema": dataset_schema.to_dict(), "record_count": len(records)}


@app.get("/datasets/{name}/export")
def export_dataset(
    name: str,
    delimiter: str = Query(",", min_length=1, max_length=1),
    quote_char: str = Query('"', min_length=1, max_length=1),
    escape_char: Optional[str] = Query(None, max_length=1),
    has_header: bool = Query(True),
):
    """Stream a stored dataset as CSV."""
    _check_dataset_name(name)
    try:
        dataset_schema, records = store.load(name)
    except DatasetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        export_config = config.export_config(
            delimiter=delimiter, quote_char=quote_char, escape_char=escape_char, has_header=has_header)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=f"Invalid export options: {e}")

    serializer = CSVExportSerializer(dataset_schema, export_config)
    logger.info(f"Exporting {len(records):,} records of '{name}'")
    return StreamingResponse(
        serializer.iter_lines(records),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{name}.csv"'},
    )


def start_server(host: str = "0.0.0.0", port: Optional[int] = None, reload: bool = False):
    """Start the FastAPI server."""
    port = port or config.API_PORT
    logger.info(f"Starting CSV Exchange API server on {host}:{port}")
    uvicorn.run(
        "api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level=config.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    start_server(reload=True)
