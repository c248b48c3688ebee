"""tibber_exporter.core: Foundation types, config, retry, and exceptions."""

from tibber_exporter.core.config import (
    ExporterConfig,
    LoggingConfig,
    RetryConfig,
    StateConfig,
    TibberConfig,
    WarehouseConfig,
    load_config,
)
from tibber_exporter.core.exceptions import (
    ConfigError,
    ExporterError,
    FatalError,
    StorageError,
    TransientError,
)
from tibber_exporter.core.models import (
    PRICE_WINDOW,
    LogFormat,
    PriceRecord,
    RunState,
    RunSummary,
    StateBackend,
    WarehouseBackend,
    is_new,
)
from tibber_exporter.core.retry import RetryPolicy

__all__ = [
    # Enums
    "LogFormat",
    "StateBackend",
    "WarehouseBackend",
    # Models
    "PRICE_WINDOW",
    "PriceRecord",
    "RunState",
    "RunSummary",
    "is_new",
    # Config
    "ExporterConfig",
    "TibberConfig",
    "WarehouseConfig",
    "StateConfig",
    "RetryConfig",
    "LoggingConfig",
    "load_config",
    # Retry
    "RetryPolicy",
    # Exceptions
    "ExporterError",
    "ConfigError",
    "TransientError",
    "FatalError",
    "StorageError",
]
