"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import StrEnum

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Every quotation is valid for exactly one hour.
PRICE_WINDOW = timedelta(hours=1)

# --- Enumerations ---


class WarehouseBackend(StrEnum):
    """Supported warehouse sinks."""

    BIGQUERY = "bigquery"
    SQLITE = "sqlite"


class StateBackend(StrEnum):
    """Supported run-state backends."""

    FILE = "file"
    CONFIGMAP = "configmap"


class LogFormat(StrEnum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


# --- Price Models ---


class PriceRecord(BaseModel):
    """One hourly spot price quotation.

    Fetched records carry no `id` or `source`; both are assigned by the
    exporter right before the record is written. Serializes with camelCase
    aliases (`from`, `till`, `marketPrice`, ...), which is the shape of both
    the warehouse row and the persisted state entry.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str | None = None
    source: str | None = None
    window_start: datetime = Field(alias="from")
    window_end: datetime = Field(alias="till")
    market_price: float
    market_price_tax: float
    sourcing_markup_price: float = 0.0
    energy_tax_price: float = 0.0

    @field_validator("window_start", "window_end")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC; aware ones are converted."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def window_is_one_hour(self) -> PriceRecord:
        if self.window_end - self.window_start != PRICE_WINDOW:
            raise ValueError(
                f"price window must span exactly one hour, got "
                f"{self.window_start.isoformat()} -> {self.window_end.isoformat()}"
            )
        return self

    @classmethod
    def starting_at(
        cls,
        window_start: datetime,
        market_price: float,
        market_price_tax: float,
    ) -> PriceRecord:
        """Build an unidentified record for the hour starting at `window_start`."""
        return cls(
            window_start=window_start,
            window_end=window_start + PRICE_WINDOW,
            market_price=market_price,
            market_price_tax=market_price_tax,
        )

    def with_identity(self, record_id: str, source: str) -> PriceRecord:
        """Return a copy carrying the write-time identifier and source tag."""
        return self.model_copy(update={"id": record_id, "source": source})

    def is_future(self, now: datetime) -> bool:
        """True while the quotation's window has not fully elapsed at `now`."""
        return self.window_end > now

    def to_row(self) -> dict:
        """JSON-compatible warehouse row keyed by column name."""
        return self.model_dump(mode="json", by_alias=True)


# --- Run State ---


class RunState(BaseModel):
    """Progress persisted between runs.

    `cursor` is the window start of the most recently written record and is
    the only deduplication checkpoint. `cached_future_records` holds the
    records whose window had not elapsed when the producing run started.

    Documents written under the legacy keys `lastFrom` / `futureSpotPrices`
    are accepted on read.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cursor: datetime = Field(
        validation_alias=AliasChoices("cursor", "lastFrom"),
        serialization_alias="cursor",
    )
    cached_future_records: list[PriceRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("cachedFutureRecords", "futureSpotPrices"),
        serialization_alias="cachedFutureRecords",
    )

    @field_validator("cursor")
    @classmethod
    def cursor_to_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def is_exported(self, record: PriceRecord) -> bool:
        """True if `record` is at or behind the cursor, i.e. already written."""
        return record.window_start <= self.cursor

    def to_document(self) -> dict:
        """JSON-compatible mapping in the persisted document shape."""
        return self.model_dump(mode="json", by_alias=True)


def is_new(record: PriceRecord, previous: RunState | None) -> bool:
    """Whether `record` still has to be written given the previous run's state."""
    return previous is None or not previous.is_exported(record)


# --- Run Results ---


class RunSummary(BaseModel):
    """Outcome of one successful exporter run."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    fetched: int
    written: int
    skipped: int
    future: int
    cursor: datetime | None = None
    state_written: bool = False
