# ========================
# csv_exchange/utils/performance_monitor.py
# ========================

"""
Performance Monitoring Utilities

Tracks elapsed time, throughput and peak memory of ingestion runs.
"""

import os
import time
import logging
from contextlib import contextmanager
from typing import Dict, Any

import psutil

logger = logging.getLogger(__name__)


def get_process_memory_mb() -> float:
    """Resident memory of the current process in MB."""
    try:
        return psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
    except psutil.Error as e:
        logger.debug(f"Could not get memory usage: {e}")
        return 0.0


class PerformanceMonitor:
    """
    Performance monitoring utility for the pipeline.
    Tracks memory usage, processing time, and throughput.
    """

    def __init__(self, name: str = "Pipeline", log_every_chunks: int = 100):
        """
        Initialize performance monitor.

        Args:
            name (str): Name for this monitoring session
            log_every_chunks (int): Progress is logged every N chunks
        """
        self.name = name
        self.log_every_chunks = log_every_chunks
        self.start_time = None
        self.end_time = None
        self.peak_memory_mb = 0.0
        self.records_processed = 0
        self.chunks_processed = 0

        logger.debug(f"PerformanceMonitor initialized: {name}")

    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        self.start_time = time.perf_counter()
        self.peak_memory_mb = get_process_memory_mb()
        logger.debug(f"{self.name} - monitoring started, memory: {self.peak_memory_mb:.2f} MB")

    def update_progress(self, records_in_chunk: int) -> None:
        """
        Update progress tracking.

        Args:
            records_in_chunk (int): Number of records processed in this chunk
        """
        self.records_processed += records_in_chunk
        self.chunks_processed += 1
        current_memory = get_process_memory_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, current_memory)

        if self.chunks_processed % self.log_every_chunks == 0:
            self._log_progress(current_memory)

    def _log_progress(self, current_memory: float) -> None:
        elapsed = self.elapsed_seconds
        throughput = self.records_processed / elapsed if elapsed > 0 else 0
        logger.info(
            f"{self.name} - Progress: {self.chunks_processed} chunks, "
            f"{self.records_processed:,} records, "
            f"{throughput:.0f} records/sec, "
            f"Memory: {current_memory:.2f} MB"
        )

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop monitoring and return performance summary.

        Returns:
            dict: Performance statistics
        """
        self.end_time = time.perf_counter()
        total_time = self.elapsed_seconds
        throughput = self.records_processed / total_time if total_time > 0 else 0

        summary = {
            'name': self.name,
            'total_processing_time_seconds': total_time,
            'records_processed': self.records_processed,
            'chunks_processed': self.chunks_processed,
            'average_throughput_records_per_second': throughput,
            'peak_memory_usage_mb': self.peak_memory_mb,
        }

        logger.info(
            f"{self.name} - {self.records_processed:,} records in {total_time:.2f}s "
            f"({throughput:.0f} records/sec), peak memory {self.peak_memory_mb:.2f} MB"
        )
        return summary

    def get_current_stats(self) -> Dict[str, Any]:
        """Get current performance statistics."""
        elapsed = self.elapsed_seconds
        return {
            'elapsed_seconds': elapsed,
            'records_processed': self.records_processed,
            'chunks_processed': self.chunks_processed,
            'current_memory_mb': get_process_memory_mb(),
            'peak_memory_mb': self.peak_memory_mb,
            'current_throughput': self.records_processed / elapsed if elapsed > 0 else 0
        }


@contextmanager
def monitor_performance(name: str = "Pipeline", log_every_chunks: int = 100):
    """
    Context manager for easy performance monitoring.

    Args:
        name (str): Name for this monitoring session
        log_every_chunks (int): Progress is logged every N chunks

    Yields:
        PerformanceMonitor: Monitor instance
    """
    monitor = PerformanceMonitor(name, log_every_chunks)
    monitor.start_monitoring()
    try:
        yield monitor
    finally:
        monitor.stop_monitoring()
