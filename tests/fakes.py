"""In-memory collaborators and record builders shared by the test suites."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tibber_exporter.core.models import PriceRecord, RunState

# Midnight UTC of the "today" used throughout the tests.
DAY_ONE = datetime(2024, 1, 15, tzinfo=timezone.utc)


def hourly_records(start: datetime, count: int = 24, price: float = 0.2) -> list[PriceRecord]:
    """Consecutive unidentified hourly records starting at `start`."""
    return [
        PriceRecord.starting_at(
            start + timedelta(hours=h),
            market_price=round(price + h / 100, 4),
            market_price_tax=round((price + h / 100) * 0.25, 4),
        )
        for h in range(count)
    ]


class FakePriceSource:
    """PriceSource serving a fixed record list, optionally failing first."""

    def __init__(
        self,
        records: list[PriceRecord] | None = None,
        failures: list[Exception] | None = None,
        close_error: Exception | None = None,
    ) -> None:
        self.records = list(records or [])
        self.failures = list(failures or [])
        self.close_error = close_error
        self.calls = 0
        self.closed = False

    async def fetch_spot_prices(self) -> list[PriceRecord]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return list(self.records)

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class RecordingSink:
    """Sink that keeps inserted records in memory.

    `insert_errors` maps a window start to exceptions raised, one per
    attempt, before the insert for that hour succeeds.
    """

    def __init__(
        self,
        schema_error: Exception | None = None,
        insert_errors: dict[datetime, list[Exception]] | None = None,
    ) -> None:
        self.schema_error = schema_error
        self.insert_errors = {k: list(v) for k, v in (insert_errors or {}).items()}
        self.inserted: list[PriceRecord] = []
        self.insert_attempts = 0
        self.schema_calls = 0
        self.closed = False

    async def ensure_schema(self) -> None:
        self.schema_calls += 1
        if self.schema_error is not None:
            raise self.schema_error

    async def insert(self, record: PriceRecord) -> None:
        self.insert_attempts += 1
        errors = self.insert_errors.get(record.window_start)
        if errors:
            raise errors.pop(0)
        self.inserted.append(record)

    async def close(self) -> None:
        self.closed = True


class InMemoryStateStore:
    """StateStore holding the document in memory."""

    def __init__(
        self,
        state: RunState | None = None,
        read_error: Exception | None = None,
        write_error: Exception | None = None,
    ) -> None:
        self.state = state
        self.read_error = read_error
        self.write_error = write_error
        self.reads = 0
        self.writes = 0
        self.closed = False

    async def read(self) -> RunState | None:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        return self.state

    async def write(self, state: RunState) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.state = state
        self.writes += 1

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def tibber_body(*days: datetime, energy: float = 0.15) -> dict:
    """A Tibber priceInfo response with 24 CET quotations per given day.

    The first day is reported as ``today``, the second as ``tomorrow``.
    """
    cet = timezone(timedelta(hours=1))
    price_days = []
    for day in days:
        local = day.astimezone(cet)
        price_days.append(
            [
                {
                    "energy": round(energy + h / 200, 4),
                    "tax": round((energy + h / 200) * 0.19, 4),
                    "currency": "EUR",
                    "startsAt": (local + timedelta(hours=h)).isoformat(timespec="milliseconds"),
                }
                for h in range(24)
            ]
        )
    today = price_days[0] if price_days else []
    tomorrow = price_days[1] if len(price_days) > 1 else []
    home = {"currentSubscription": {"priceInfo": {"today": today, "tomorrow": tomorrow}}}
    return {"data": {"viewer": {"homes": [home]}}}
