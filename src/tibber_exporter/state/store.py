"""Run-state persistence: protocol, YAML codec, file and no-op stores, factory."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from tibber_exporter.core.config import StateConfig
from tibber_exporter.core.exceptions import ConfigError, StorageError
from tibber_exporter.core.models import RunState, StateBackend

logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    """Reads and replaces the persisted RunState document as a whole."""

    async def read(self) -> RunState | None:
        """Return the previous state, or None if absent or unreadable. Never raises."""
        ...

    async def write(self, state: RunState) -> None:
        """Replace the stored document. Raises StorageError on failure."""
        ...

    async def close(self) -> None: ...


# --- YAML Codec ---


def parse_state(text: str, origin: str) -> RunState | None:
    """Decode a YAML state document; anything unusable yields None."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("State at %s is not valid YAML, ignoring it: %s", origin, e)
        return None

    if data is None:
        logger.info("State at %s is empty", origin)
        return None

    try:
        return RunState.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "State at %s does not match the expected shape, ignoring it: %s",
            origin,
            e.error_count(),
        )
        return None


def dump_state(state: RunState) -> str:
    """Encode a state as a human-readable YAML document."""
    return yaml.safe_dump(state.to_document(), sort_keys=False)


# --- Stores ---


class NullStateStore:
    """Store used when state persistence is disabled: nothing in, nothing out."""

    async def read(self) -> RunState | None:
        return None

    async def write(self, state: RunState) -> None:
        logger.info("State persistence disabled, not storing cursor %s", state.cursor)

    async def close(self) -> None:
        return None


class FileStateStore:
    """Keeps the state document in a local YAML file.

    Writes go to a sibling temp file first and are moved into place, so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> RunState | None:
        if not self._path.exists():
            logger.info("No state file at %s", self._path)
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read state file %s: %s", self._path, e)
            return None

        state = parse_state(text, str(self._path))
        if state is not None:
            logger.info("Read state file at %s", self._path)
        return state

    async def write(self, state: RunState) -> None:
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(dump_state(state), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageError(
                f"Failed to write state file {self._path}: {e}",
                context={"operation": "write", "target": str(self._path)},
            ) from e
        logger.info("Stored last state in %s", self._path)

    async def close(self) -> None:
        return None


def create_state_store(config: StateConfig) -> StateStore:
    """Create the state store selected by configuration."""
    if not config.enable:
        return NullStateStore()

    if config.backend == StateBackend.FILE:
        return FileStateStore(config.file_path)

    if config.backend == StateBackend.CONFIGMAP:
        from tibber_exporter.state.configmap import ConfigMapStateStore

        return ConfigMapStateStore.from_config(config)

    raise ConfigError(
        f"Unsupported state backend: {config.backend}",
        context={"field": "state.backend", "value": str(config.backend)},
    )
