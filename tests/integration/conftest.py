"""Integration test fixtures: real SQLite and state files, mocked Tibber API."""

from __future__ import annotations

from pathlib import Path

import pytest

from tibber_exporter.core.config import ExporterConfig


@pytest.fixture
def integration_config(tmp_path: Path) -> ExporterConfig:
    """Config wiring the SQLite warehouse and a local state file."""
    return ExporterConfig.model_validate(
        {
            "source": "tibber",
            "tibber": {"access_token": "integration-token"},
            "warehouse": {
                "backend": "sqlite",
                "sqlite_path": str(tmp_path / "warehouse" / "prices.db"),
            },
            "state": {
                "enable": True,
                "backend": "file",
                "file_path": str(tmp_path / "configs" / "state.yaml"),
            },
            "retry": {"base_delay": 0, "max_delay": 0},
        }
    )
