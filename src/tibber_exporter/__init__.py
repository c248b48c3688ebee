"""Incremental exporter of Tibber day-ahead spot prices."""

__version__ = "0.1.0"
