"""Warehouse sinks: the write side of the exporter."""

from tibber_exporter.sinks.base import (
    PARTITION_COLUMN,
    WAREHOUSE_COLUMNS,
    NullSink,
    Sink,
    create_sink,
)
from tibber_exporter.sinks.sqlite import SqliteSink

__all__ = [
    "PARTITION_COLUMN",
    "WAREHOUSE_COLUMNS",
    "NullSink",
    "Sink",
    "SqliteSink",
    "create_sink",
]
