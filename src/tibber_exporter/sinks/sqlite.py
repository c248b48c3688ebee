"""SQLite-backed warehouse sink.

Mirrors the BigQuery table layout in a local database file. Uses aiosqlite
for async access. Meant for local runs and tests.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
from pydantic import TypeAdapter

from tibber_exporter.core.exceptions import ConfigError, FatalError, TransientError
from tibber_exporter.core.models import PriceRecord
from tibber_exporter.sinks.base import PARTITION_COLUMN, WAREHOUSE_COLUMNS

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SQLITE_TYPES = {"STRING": "TEXT", "TIMESTAMP": "TEXT", "FLOAT": "REAL"}

_TIMESTAMP = TypeAdapter(datetime)


class SqliteSink:
    """SQLite implementation of the Sink protocol.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file.
        Created automatically if it doesn't exist.
    table : str
        Destination table name.
    init : bool
        Whether ``ensure_schema`` creates the table. Default: True.
    """

    def __init__(self, db_path: str, table: str = "spot_prices", init: bool = True) -> None:
        if not _TABLE_NAME.match(table):
            raise ConfigError(
                f"Invalid SQLite table name: {table!r}",
                context={"field": "warehouse.table", "value": table},
            )
        self._db_path = db_path
        self._table = table
        self._init = init
        self._columns = [name for name, _ in WAREHOUSE_COLUMNS]

    async def ensure_schema(self) -> None:
        """Create the price table and its index if they don't exist."""
        if not self._init:
            logger.info("Table initialization disabled, skipping")
            return

        column_defs = ", ".join(
            f'"{name}" {_SQLITE_TYPES[type_]} NOT NULL' for name, type_ in WAREHOUSE_COLUMNS
        )
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    f'CREATE TABLE IF NOT EXISTS "{self._table}" ({column_defs})'
                )
                await db.execute(
                    f'CREATE INDEX IF NOT EXISTS "idx_{self._table}_{PARTITION_COLUMN}" '
                    f'ON "{self._table}" ("{PARTITION_COLUMN}")'
                )
                await db.commit()
        except (sqlite3.Error, OSError) as e:
            raise FatalError(
                f"Failed to provision SQLite table {self._table}: {e}",
                context={"reason": "schema", "table": self._table},
            ) from e

        logger.info("Ensured sqlite table %s at %s", self._table, self._db_path)

    async def insert(self, record: PriceRecord) -> None:
        """Append one row. Locked databases are reported as transient."""
        row = record.to_row()
        placeholders = ", ".join("?" for _ in self._columns)
        quoted = ", ".join(f'"{c}"' for c in self._columns)

        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    f'INSERT INTO "{self._table}" ({quoted}) VALUES ({placeholders})',
                    [row[c] for c in self._columns],
                )
                await db.commit()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                raise FatalError(
                    f"SQLite table {self._table} does not exist",
                    context={"reason": "missing_table", "table": self._table},
                ) from e
            raise TransientError(
                f"SQLite insert failed: {e}",
                context={"table": self._table},
            ) from e
        except sqlite3.Error as e:
            raise FatalError(
                f"SQLite insert failed: {e}",
                context={"reason": "insert", "table": self._table},
            ) from e

        logger.info("Inserted spot price %s into sqlite table %s", record.id, self._table)

    async def list_records(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[PriceRecord]:
        """Return stored records ordered by window start.

        `start` is inclusive, `end` exclusive.
        """
        clauses: list[str] = []
        params: list[str] = []
        if start is not None:
            clauses.append(f'"{PARTITION_COLUMN}" >= ?')
            params.append(_as_column_value(start))
        if end is not None:
            clauses.append(f'"{PARTITION_COLUMN}" < ?')
            params.append(_as_column_value(end))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        quoted = ", ".join(f'"{c}"' for c in self._columns)

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                f'SELECT {quoted} FROM "{self._table}"{where} '
                f'ORDER BY "{PARTITION_COLUMN}"',
                params,
            )
            rows = await cursor.fetchall()

        return [PriceRecord.model_validate(dict(zip(self._columns, row))) for row in rows]

    async def close(self) -> None:
        return None


def _as_column_value(ts: datetime) -> str:
    """Format a timestamp the way rows store it, so text comparison orders correctly."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return _TIMESTAMP.dump_python(ts.astimezone(timezone.utc), mode="json")
