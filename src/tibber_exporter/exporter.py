"""The export run: fetch, deduplicate against the cursor, write, persist state."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from functools import partial

from tibber_exporter.core.config import ExporterConfig
from tibber_exporter.core.models import PriceRecord, RunState, RunSummary, is_new
from tibber_exporter.core.retry import RetryPolicy
from tibber_exporter.prices.provider import PriceSource
from tibber_exporter.prices.tibber import TibberPriceSource
from tibber_exporter.sinks.base import Sink, create_sink
from tibber_exporter.state.store import StateStore, create_state_store

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class PriceExporter:
    """Runs one incremental export of day-ahead prices.

    A run writes every fetched record whose window starts after the
    persisted cursor, then moves the cursor to the last written window
    start. Runs must not overlap; the scheduler that triggers them is
    responsible for that.

    If a write fails after earlier writes of the same run succeeded, those
    rows stay in the warehouse but the cursor does not move, so the next run
    writes them again under new ids (at-least-once delivery).

    Parameters
    ----------
    source : PriceSource
        Where prices come from.
    sink : Sink
        Where new prices are written.
    state_store : StateStore
        Where the cursor is kept between runs.
    source_tag : str
        Value of the ``source`` column for every written record.
    retry : RetryPolicy | None
        Policy wrapped around the fetch and each insert. Default: 3 attempts.
    clock : Callable[[], datetime]
        Returns the current time; called once per run.
    id_factory : Callable[[], str]
        Produces a fresh record identifier per fetched record.
    """

    def __init__(
        self,
        source: PriceSource,
        sink: Sink,
        state_store: StateStore,
        source_tag: str,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._source = source
        self._sink = sink
        self._state_store = state_store
        self._source_tag = source_tag
        self._retry = retry or RetryPolicy()
        self._clock = clock
        self._id_factory = id_factory

    async def __aenter__(self) -> PriceExporter:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close all collaborators, even when an earlier close fails."""
        try:
            await self._source.close()
        finally:
            try:
                await self._sink.close()
            finally:
                await self._state_store.close()

    async def run(self) -> RunSummary:
        """Execute one export run.

        Returns:
            Counts for the run and the resulting cursor.

        Raises:
            FatalError: Schema provisioning failed, or a non-retryable
                fetch/insert failure.
            TransientError: Fetch or insert still failing after all attempts.
            StorageError: The new state could not be persisted.
        """
        now = self._clock()

        logger.info("Initializing warehouse table...")
        await self._sink.ensure_schema()

        logger.info("Reading previous state...")
        previous = await self._read_previous_state()

        logger.info("Retrieving day-ahead prices...")
        fetched = await self._retry.call(
            self._source.fetch_spot_prices, description="Fetching spot prices"
        )
        logger.info("Retrieved %d day-ahead prices", len(fetched))

        logger.info("Storing retrieved day-ahead prices...")
        future: list[PriceRecord] = []
        last_written: datetime | None = None
        written = 0
        for fetched_record in fetched:
            record = fetched_record.with_identity(self._id_factory(), self._source_tag)
            logger.debug("%r", record)

            if record.is_future(now):
                future.append(record)

            if not is_new(record, previous):
                logger.info(
                    "Skipping %s, already present in warehouse",
                    record.window_start.isoformat(),
                )
                continue

            await self._retry.call(
                partial(self._sink.insert, record),
                description=f"Inserting spot price {record.window_start.isoformat()}",
            )
            written += 1
            if last_written is None or record.window_start > last_written:
                last_written = record.window_start

        cursor = previous.cursor if previous is not None else None
        state_written = False
        if last_written is not None:
            logger.info("Writing new state...")
            await self._state_store.write(
                RunState(cursor=last_written, cached_future_records=future)
            )
            cursor = last_written
            state_written = True
        else:
            logger.info("No new prices written, leaving state untouched")

        summary = RunSummary(
            started_at=now,
            fetched=len(fetched),
            written=written,
            skipped=len(fetched) - written,
            future=len(future),
            cursor=cursor,
            state_written=state_written,
        )
        logger.info(
            "Export finished: %d fetched, %d written, %d skipped",
            summary.fetched,
            summary.written,
            summary.skipped,
        )
        return summary

    async def _read_previous_state(self) -> RunState | None:
        """Any failure reading state counts as "no previous state"."""
        try:
            state = await self._state_store.read()
        except Exception:
            logger.warning(
                "Reading previous state failed, treating all prices as new",
                exc_info=True,
            )
            return None

        if state is None:
            logger.info("No previous state, treating all prices as new")
        else:
            logger.info("Previous cursor is %s", state.cursor.isoformat())
        return state


def create_exporter(config: ExporterConfig) -> PriceExporter:
    """Build a fully wired exporter from configuration."""
    return PriceExporter(
        source=TibberPriceSource(config.tibber),
        sink=create_sink(config.warehouse),
        state_store=create_state_store(config.state),
        source_tag=config.source,
        retry=RetryPolicy.from_config(config.retry),
    )
