"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tibber_exporter.core.exceptions import ConfigError
from tibber_exporter.core.models import LogFormat, StateBackend, WarehouseBackend

_TIBBER_API_URL = "https://api.tibber.com/v1-beta/gql"


class TibberConfig(BaseModel):
    """Tibber API access configuration."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    api_url: str = _TIBBER_API_URL
    request_timeout: int = 30
    home_index: int = 0

    @field_validator("access_token")
    @classmethod
    def token_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("access_token must not be empty")
        return v.strip()

    @field_validator("home_index")
    @classmethod
    def home_index_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("home_index must be >= 0")
        return v


class WarehouseConfig(BaseModel):
    """Warehouse sink configuration.

    `enable: false` swaps in a no-op sink; `init: false` skips table
    provisioning but still writes rows.
    """

    model_config = ConfigDict(frozen=True)

    enable: bool = True
    init: bool = True
    backend: WarehouseBackend = WarehouseBackend.BIGQUERY
    project_id: str | None = None
    dataset: str | None = None
    table: str = "spot_prices"
    credentials_path: str | None = "/secrets/keyfile.json"
    sqlite_path: str = "./data/spot_prices.db"
    table_ready_timeout: float = 30.0

    @model_validator(mode="after")
    def bigquery_location_required(self) -> WarehouseConfig:
        if (
            self.enable
            and self.backend == WarehouseBackend.BIGQUERY
            and not (self.project_id and self.dataset)
        ):
            raise ValueError(
                "project_id and dataset are required when backend is 'bigquery'"
            )
        return self


class StateConfig(BaseModel):
    """Run-state persistence configuration. Disabled by default."""

    model_config = ConfigDict(frozen=True)

    enable: bool = False
    backend: StateBackend = StateBackend.CONFIGMAP
    file_path: str = "/configs/state.yaml"
    configmap_name: str = "tibber-price-exporter"
    namespace: str | None = None
    kube_api_url: str = "https://kubernetes.default.svc"
    service_account_dir: str = "/var/run/secrets/kubernetes.io/serviceaccount"
    request_timeout: int = 30


class RetryConfig(BaseModel):
    """Retry policy for price fetches and warehouse inserts."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 10.0

    @field_validator("max_attempts")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("base_delay", "max_delay")
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v


class LoggingConfig(BaseModel):
    """Log output configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v!r}")
        return upper


class ExporterConfig(BaseModel):
    """Root configuration for the exporter."""

    model_config = ConfigDict(frozen=True)

    source: str
    tibber: TibberConfig
    warehouse: WarehouseConfig
    state: StateConfig = StateConfig()
    retry: RetryConfig = RetryConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("source")
    @classmethod
    def source_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be empty")
        return v


DEFAULT_CONFIG_FILE = "tibber-exporter.yml"

# Leaf keys passed through verbatim from the environment; a numeric-looking
# token or project id is still a string.
_STRING_KEYS = frozenset(
    {"access_token", "source", "project_id", "dataset", "table", "namespace"}
)


def load_config(
    config_path: str | None = None,
    env_prefix: str = "TIBBER_EXPORTER_",
) -> ExporterConfig:
    """Build the exporter config from a YAML file overlaid with environment variables.

    The file is `config_path`, else `<prefix>CONFIG`, else `tibber-exporter.yml`
    in the working directory when present. Environment variables win over the
    file; `__` separates nesting levels, so `TIBBER_EXPORTER_STATE__ENABLE=true`
    sets `state.enable`.
    """
    try:
        path = _resolve_config_path(config_path, env_var=f"{env_prefix}CONFIG")
        raw = _load_yaml(path) if path is not None else {}
        return ExporterConfig.model_validate(_merge_env_vars(raw, env_prefix))
    except ConfigError:
        raise
    except (OSError, ValueError) as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(
    explicit: str | None, env_var: str = "TIBBER_EXPORTER_CONFIG"
) -> Path | None:
    # A path that was asked for must exist; only the default file is optional.
    for origin, value in (("--config", explicit), (env_var, os.environ.get(env_var))):
        if not value:
            continue
        path = Path(value)
        if not path.exists():
            raise ConfigError(
                f"Config file from {origin} not found: {value}",
                context={"field": origin, "value": value},
            )
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.exists() else None


def _load_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Return a copy of `base` with `<prefix>SECTION__KEY` variables applied.

    `base` is left untouched.
    """
    result = _copy_tree(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        *parents, leaf = key[len(prefix) :].lower().split("__")
        if not parents and leaf == "config":
            continue

        section = result
        for part in parents:
            if not isinstance(section.get(part), dict):
                section[part] = {}
            section = section[part]
        section[leaf] = value if leaf in _STRING_KEYS else _auto_cast(value)

    return result


def _copy_tree(data: dict) -> dict:
    return {k: _copy_tree(v) if isinstance(v, dict) else v for k, v in data.items()}


def _auto_cast(value: str) -> str | int | float | bool:
    """Cast an environment string to bool, int or float where it reads as one."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
