"""Shared pytest fixtures for tibber-exporter."""

from __future__ import annotations

import itertools

import pytest

from tests.fakes import DAY_ONE, SleepRecorder, hourly_records
from tibber_exporter.core.models import PriceRecord
from tibber_exporter.core.retry import RetryPolicy


@pytest.fixture
def today_records() -> list[PriceRecord]:
    return hourly_records(DAY_ONE)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_retry(sleep_recorder: SleepRecorder) -> RetryPolicy:
    """Default 3-attempt policy that never actually sleeps."""
    return RetryPolicy(sleep=sleep_recorder)


@pytest.fixture
def sequential_ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"
