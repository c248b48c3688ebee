"""Sink protocol, the shared warehouse schema, no-op sink, and factory."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from tibber_exporter.core.config import WarehouseConfig
from tibber_exporter.core.exceptions import ConfigError
from tibber_exporter.core.models import PriceRecord, WarehouseBackend

logger = logging.getLogger(__name__)

# (column, BigQuery type) in table order. Partitioned daily on "from".
WAREHOUSE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("id", "STRING"),
    ("source", "STRING"),
    ("from", "TIMESTAMP"),
    ("till", "TIMESTAMP"),
    ("marketPrice", "FLOAT"),
    ("marketPriceTax", "FLOAT"),
    ("sourcingMarkupPrice", "FLOAT"),
    ("energyTaxPrice", "FLOAT"),
)
PARTITION_COLUMN = "from"


@runtime_checkable
class Sink(Protocol):
    """Append-only destination for exported price records.

    Sinks do not deduplicate; the exporter decides what gets written.
    """

    async def ensure_schema(self) -> None:
        """Create or update the destination table. Safe to call every run."""
        ...

    async def insert(self, record: PriceRecord) -> None:
        """Append one identified record."""
        ...

    async def close(self) -> None: ...


class NullSink:
    """Sink used when the warehouse is disabled. Accepts and drops everything."""

    async def ensure_schema(self) -> None:
        logger.info("Warehouse disabled, skipping schema provisioning")

    async def insert(self, record: PriceRecord) -> None:
        logger.debug("Warehouse disabled, dropping %s", record.id)

    async def close(self) -> None:
        return None


def create_sink(config: WarehouseConfig) -> Sink:
    """Create the sink selected by configuration."""
    if not config.enable:
        return NullSink()

    if config.backend == WarehouseBackend.BIGQUERY:
        from tibber_exporter.sinks.bigquery import BigQuerySink

        return BigQuerySink.from_config(config)

    if config.backend == WarehouseBackend.SQLITE:
        from tibber_exporter.sinks.sqlite import SqliteSink

        return SqliteSink(config.sqlite_path, table=config.table, init=config.init)

    raise ConfigError(
        f"Unsupported warehouse backend: {config.backend}",
        context={"field": "warehouse.backend", "value": str(config.backend)},
    )
