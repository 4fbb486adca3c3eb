# ========================
# csv_exchange/utils/config.py
# ========================

"""
Configuration Management

Service-level settings read from the environment. The pipeline never reads
these directly; Config builds the explicit IngestConfig/ExportConfig values
that are handed to it.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional

from ..pipeline.errors import ConfigError
from ..pipeline.settings import CSVDialect, ExportConfig, IngestConfig


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == '' or value.strip().lower() == 'none':
        return None
    return int(value)


class Config:
    """
    Configuration class for the CSV exchange service.
    Supports environment variables and default values.
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_dict (dict): Optional configuration overrides
        """
        # Ingestion
        self.DEFAULT_CHUNK_SIZE = int(os.getenv('PIPELINE_CHUNK_SIZE', '1000'))
        self.MAX_ERRORS = _optional_int(os.getenv('PIPELINE_MAX_ERRORS'))
        self.MAX_RETAINED_RECORDS = _optional_int(os.getenv('PIPELINE_MAX_RETAINED_RECORDS', '10000'))
        self.WORKERS = int(os.getenv('PIPELINE_WORKERS', '1'))
        self.MAX_FIELD_SIZE = int(os.getenv('PIPELINE_MAX_FIELD_SIZE', '131072'))

        # Dialect
        self.DELIMITER = os.getenv('CSV_DELIMITER', ',')
        self.QUOTE_CHAR = os.getenv('CSV_QUOTE_CHAR', '"')

        # File Paths
        self.DEFAULT_OUTPUT_DIR = os.getenv('PIPELINE_OUTPUT_DIR', 'data/processed')
        self.DEFAULT_RAW_DIR = os.getenv('PIPELINE_RAW_DIR', 'data/raw')
        self.STORE_BACKEND = os.getenv('PIPELINE_STORE', 'memory')  # memory | files

        # Data Generation Settings
        self.DEFAULT_SAMPLE_ROWS = int(os.getenv('SAMPLE_ROWS', '10000'))
        self.LARGE_DATASET_ROWS = int(os.getenv('LARGE_DATASET_ROWS', '1000000'))

        # API Settings
        self.API_PORT = int(os.getenv('API_PORT', '8000'))
        self.MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '100'))

        # Logging Configuration
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

        # Override with provided config
        if config_dict:
            self._update_from_dict(config_dict)

    def _update_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for key, value in config_dict.items():
            if hasattr(self, key.upper()):
                setattr(self, key.upper(), value)

    def get_data_paths(self) -> Dict[str, Path]:
        """Get all configured data paths as Path objects."""
        return {
            'output_dir': Path(self.DEFAULT_OUTPUT_DIR),
            'raw_data_dir': Path(self.DEFAULT_RAW_DIR),
            'logs_dir': Path('logs')
        }

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        for path in self.get_data_paths().values():
            path.mkdir(parents=True, exist_ok=True)

    def ingest_config(self, **overrides) -> IngestConfig:
        """
        Build the IngestConfig for one run from these settings.

        Args:
            **overrides: IngestConfig fields or delimiter/quote_char/escape_char

        Returns:
            IngestConfig: Validated, immutable run configuration

        Raises:
            ConfigError: if a resulting value is invalid
        """
        options = {
            'delimiter': self.DELIMITER,
            'quote_char': self.QUOTE_CHAR,
            'max_errors': self.MAX_ERRORS,
            'max_field_size': self.MAX_FIELD_SIZE,
            'chunk_size': self.DEFAULT_CHUNK_SIZE,
            'workers': self.WORKERS,
            'max_retained_records': self.MAX_RETAINED_RECORDS,
        }
        options.update(overrides)
        return IngestConfig.from_options(**options)

    def export_config(self, **overrides) -> ExportConfig:
        """Build an ExportConfig using the configured dialect."""
        options = {'delimiter': self.DELIMITER, 'quote_char': self.QUOTE_CHAR}
        options.update(overrides)
        return ExportConfig.from_options(**options)

    def validate_config(self) -> Dict[str, bool]:
        """
        Validate configuration values.

        Returns:
            dict: Validation results for each setting
        """
        validations = {}

        # Validate numeric ranges
        validations['chunk_size'] = self.DEFAULT_CHUNK_SIZE > 0
        validations['max_errors'] = self.MAX_ERRORS is None or self.MAX_ERRORS >= 0
        validations['max_retained_records'] = self.MAX_RETAINED_RECORDS is None or self.MAX_RETAINED_RECORDS >= 0
        validations['workers'] = self.WORKERS > 0
        validations['max_field_size'] = self.MAX_FIELD_SIZE > 0
        validations['sample_rows'] = self.DEFAULT_SAMPLE_ROWS > 0
        validations['api_port'] = 1000 <= self.API_PORT <= 65535
        validations['max_upload_mb'] = self.MAX_UPLOAD_MB > 0
        validations['store_backend'] = self.STORE_BACKEND in ('memory', 'files')

        try:
            CSVDialect(delimiter=self.DELIMITER, quote_char=self.QUOTE_CHAR)
            validations['dialect'] = True
        except ConfigError:
            validations['dialect'] = False

        # Validate log level
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        validations['log_level'] = self.LOG_LEVEL.upper() in valid_log_levels

        return validations

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            attr: getattr(self, attr)
            for attr in dir(self)
            if attr.isupper() and not callable(getattr(self, attr))
        }

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_from_file(cls, file_path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(file_path, 'r') as f:
            config_dict = json.load(f)
        return cls(config_dict)

    def __str__(self) -> str:
        """String representation of configuration."""
        lines = ["Configuration Settings:"]
        config_dict = self.to_dict()
        for key, value in sorted(config_dict.items()):
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)
