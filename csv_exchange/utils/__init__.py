# ========================
# csv_exchange/utils/__init__.py
# ========================

"""
Utilities Package

Configuration, logging, performance monitoring and test data generation
for the CSV exchange service.
"""

from .config import Config
from .performance_monitor import monitor_performance, PerformanceMonitor
from .logging_setup import setup_logging
from .data_generator import DataGenerator, sample_schema

__all__ = [
    'Config',
    'monitor_performance',
    'PerformanceMonitor',
    'setup_logging',
    'DataGenerator',
    'sample_schema',
]
