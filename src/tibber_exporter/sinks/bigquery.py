"""Google BigQuery warehouse sink.

Wraps the blocking ``google-cloud-bigquery`` client; every client call runs
in a worker thread so the exporter's event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import requests
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery

from tibber_exporter.core.config import WarehouseConfig
from tibber_exporter.core.exceptions import FatalError, TransientError
from tibber_exporter.core.models import PriceRecord
from tibber_exporter.sinks.base import PARTITION_COLUMN, WAREHOUSE_COLUMNS

logger = logging.getLogger(__name__)

T = TypeVar("T")

TABLE_SCHEMA = [bigquery.SchemaField(name, type_) for name, type_ in WAREHOUSE_COLUMNS]

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    google_exceptions.ServerError,
    google_exceptions.TooManyRequests,
    # Checked before GoogleAPIError; retry deadlines are not call errors.
    google_exceptions.RetryError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


class BigQuerySink:
    """BigQuery implementation of the Sink protocol.

    Parameters
    ----------
    project_id, dataset, table : str
        Location of the destination table.
    credentials_path : str | None
        Service account key file. Falls back to application default
        credentials when None or missing.
    init : bool
        Whether ``ensure_schema`` creates/updates the table. Default: True.
    ready_timeout : float
        Seconds to wait for a freshly created table to become visible.
    poll_interval : float
        Seconds between visibility checks.
    client : bigquery.Client | None
        Pre-built client (useful for testing).
    """

    def __init__(
        self,
        project_id: str,
        dataset: str,
        table: str,
        credentials_path: str | None = None,
        init: bool = True,
        ready_timeout: float = 30.0,
        poll_interval: float = 1.0,
        client: bigquery.Client | None = None,
    ) -> None:
        self._project_id = project_id
        self._dataset = dataset
        self._table = table
        self._credentials_path = credentials_path
        self._init = init
        self._ready_timeout = ready_timeout
        self._poll_interval = poll_interval
        self._client = client

    @classmethod
    def from_config(cls, config: WarehouseConfig) -> BigQuerySink:
        return cls(
            project_id=config.project_id,
            dataset=config.dataset,
            table=config.table,
            credentials_path=config.credentials_path,
            init=config.init,
            ready_timeout=config.table_ready_timeout,
        )

    @property
    def table_id(self) -> str:
        return f"{self._project_id}.{self._dataset}.{self._table}"

    def _get_client(self) -> bigquery.Client:
        if self._client is None:
            if self._credentials_path and Path(self._credentials_path).exists():
                self._client = bigquery.Client.from_service_account_json(
                    self._credentials_path, project=self._project_id
                )
            else:
                self._client = bigquery.Client(project=self._project_id)
        return self._client

    # --- Schema Provisioning ---

    async def ensure_schema(self) -> None:
        """Create the partitioned table, or bring an existing table's schema up to date."""
        if not self._init:
            logger.info("Table initialization disabled, skipping")
            return

        if await self._call(self._table_exists):
            await self._call(self._update_schema)
            logger.info("Updated schema for bigquery table %s", self._table)
            return

        await self._call(self._create_table)
        await self._wait_until_ready()
        logger.info("Created bigquery table %s", self._table)

    def _table_exists(self) -> bool:
        try:
            self._get_client().get_table(self.table_id)
        except google_exceptions.NotFound:
            return False
        return True

    def _create_table(self) -> None:
        table = bigquery.Table(self.table_id, schema=TABLE_SCHEMA)
        table.time_partitioning = bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            field=PARTITION_COLUMN,
        )
        self._get_client().create_table(table, exists_ok=True)

    def _update_schema(self) -> None:
        client = self._get_client()
        table = client.get_table(self.table_id)
        table.schema = TABLE_SCHEMA
        client.update_table(table, ["schema"])

    async def _wait_until_ready(self) -> None:
        deadline = time.monotonic() + self._ready_timeout
        while not await self._call(self._table_exists):
            if time.monotonic() >= deadline:
                raise FatalError(
                    f"BigQuery table {self.table_id} not visible after "
                    f"{self._ready_timeout}s",
                    context={"reason": "table_not_ready", "table": self.table_id},
                )
            await asyncio.sleep(self._poll_interval)

    # --- Inserts ---

    async def insert(self, record: PriceRecord) -> None:
        """Stream one row; the record id doubles as the insert id."""
        row = record.to_row()
        errors = await self._call(self._insert_rows, [row], [record.id])
        if errors:
            raise FatalError(
                f"BigQuery rejected row for {record.window_start.isoformat()}",
                context={"reason": "insert_rejected", "errors": errors},
            )
        logger.info("Inserted spot price %s into bigquery table %s", record.id, self._table)

    def _insert_rows(self, rows: list[dict], row_ids: list[str | None]) -> list:
        return self._get_client().insert_rows_json(self.table_id, rows, row_ids=row_ids)

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)

    # --- Error Mapping ---

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking client call in a thread and classify its failures."""
        try:
            return await asyncio.to_thread(fn, *args)
        except _TRANSIENT_ERRORS as e:
            raise TransientError(
                f"BigQuery call failed: {e}",
                context={"table": self.table_id, "error": str(e)},
            ) from e
        except google_exceptions.GoogleAPICallError as e:
            raise FatalError(
                f"BigQuery call failed: {e}",
                context={"reason": "api_error", "table": self.table_id},
            ) from e
        except auth_exceptions.GoogleAuthError as e:
            raise FatalError(
                f"BigQuery credentials rejected: {e}",
                context={"reason": "credentials", "table": self.table_id},
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise FatalError(
                f"BigQuery client error: {e}",
                context={"reason": "client_error", "table": self.table_id},
            ) from e
