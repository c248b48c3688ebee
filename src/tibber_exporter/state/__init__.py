"""Run-state persistence between exporter runs."""

from tibber_exporter.state.configmap import ConfigMapStateStore
from tibber_exporter.state.store import (
    FileStateStore,
    NullStateStore,
    StateStore,
    create_state_store,
    dump_state,
    parse_state,
)

__all__ = [
    "ConfigMapStateStore",
    "FileStateStore",
    "NullStateStore",
    "StateStore",
    "create_state_store",
    "dump_state",
    "parse_state",
]
