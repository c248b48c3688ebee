"""Tests for tibber_exporter.core.config."""

import os
import pytest

from pydantic import ValidationError

from tibber_exporter.core.config import (
    ExporterConfig,
    LoggingConfig,
    RetryConfig,
    StateConfig,
    TibberConfig,
    WarehouseConfig,
    load_config,
    _auto_cast,
    _merge_env_vars,
)
from tibber_exporter.core.exceptions import ConfigError
from tibber_exporter.core.models import LogFormat, StateBackend, WarehouseBackend

MINIMAL_YAML = """\
source: tibber
tibber:
  access_token: 'yaml-token'
warehouse:
  project_id: my-project
  dataset: energy
"""


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No TIBBER_EXPORTER_* variables and no config file in the working dir."""
    for key in list(os.environ):
        if key.startswith("TIBBER_EXPORTER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestTibberConfig:
    def test_defaults(self):
        c = TibberConfig(access_token="token")
        assert c.api_url == "https://api.tibber.com/v1-beta/gql"
        assert c.request_timeout == 30
        assert c.home_index == 0

    def test_token_required(self):
        with pytest.raises(ValidationError, match="access_token must not be empty"):
            TibberConfig(access_token="   ")

    def test_token_stripped(self):
        assert TibberConfig(access_token=" token\n").access_token == "token"

    def test_token_not_in_repr(self):
        assert "secret-token" not in repr(TibberConfig(access_token="secret-token"))

    def test_negative_home_index_rejected(self):
        with pytest.raises(ValidationError, match="home_index"):
            TibberConfig(access_token="token", home_index=-1)


class TestWarehouseConfig:
    def test_defaults_to_bigquery(self):
        c = WarehouseConfig(project_id="p", dataset="d")
        assert c.backend == WarehouseBackend.BIGQUERY
        assert c.enable is True
        assert c.init is True
        assert c.table == "spot_prices"

    def test_bigquery_requires_location(self):
        with pytest.raises(ValidationError, match="project_id and dataset are required"):
            WarehouseConfig(project_id="p")

    def test_disabled_bigquery_needs_no_location(self):
        assert WarehouseConfig(enable=False).enable is False

    def test_sqlite_needs_no_location(self):
        c = WarehouseConfig(backend="sqlite")
        assert c.backend == WarehouseBackend.SQLITE


class TestStateConfig:
    def test_disabled_by_default(self):
        c = StateConfig()
        assert c.enable is False
        assert c.backend == StateBackend.CONFIGMAP
        assert c.file_path == "/configs/state.yaml"


class TestRetryConfig:
    def test_defaults(self):
        c = RetryConfig()
        assert c.max_attempts == 3
        assert c.base_delay == 0.1

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValidationError, match="max_attempts"):
            RetryConfig(max_attempts=0)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError, match="delays must be >= 0"):
            RetryConfig(max_delay=-1)


class TestLoggingConfig:
    def test_level_uppercased(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError, match="unknown log level"):
            LoggingConfig(level="chatty")

    def test_json_by_default(self):
        assert LoggingConfig().format == LogFormat.JSON


class TestExporterConfig:
    def test_blank_source_rejected(self):
        with pytest.raises(ValidationError, match="source must not be empty"):
            ExporterConfig(
                source=" ",
                tibber=TibberConfig(access_token="t"),
                warehouse=WarehouseConfig(enable=False),
            )

    def test_warehouse_required(self):
        with pytest.raises(ValidationError):
            ExporterConfig(source="tibber", tibber=TibberConfig(access_token="t"))


class TestLoadConfig:
    def test_yaml_loading(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(MINIMAL_YAML)
        config = load_config(config_path=str(yaml_file))
        assert config.source == "tibber"
        assert config.tibber.access_token == "yaml-token"
        assert config.warehouse.project_id == "my-project"
        assert config.state.enable is False

    def test_env_overrides_yaml(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(MINIMAL_YAML)
        clean_env.setenv("TIBBER_EXPORTER_TIBBER__ACCESS_TOKEN", "env-token")
        clean_env.setenv("TIBBER_EXPORTER_RETRY__MAX_ATTEMPTS", "5")
        config = load_config(config_path=str(yaml_file))
        assert config.tibber.access_token == "env-token"
        assert config.retry.max_attempts == 5

    def test_env_only(self, clean_env):
        clean_env.setenv("TIBBER_EXPORTER_SOURCE", "tibber")
        clean_env.setenv("TIBBER_EXPORTER_TIBBER__ACCESS_TOKEN", "token")
        clean_env.setenv("TIBBER_EXPORTER_WAREHOUSE__BACKEND", "sqlite")
        clean_env.setenv("TIBBER_EXPORTER_STATE__ENABLE", "true")
        clean_env.setenv("TIBBER_EXPORTER_STATE__BACKEND", "file")
        config = load_config()
        assert config.warehouse.backend == WarehouseBackend.SQLITE
        assert config.state.enable is True
        assert config.state.backend == StateBackend.FILE

    def test_numeric_token_stays_string(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(MINIMAL_YAML)
        clean_env.setenv("TIBBER_EXPORTER_TIBBER__ACCESS_TOKEN", "12345")
        config = load_config(config_path=str(yaml_file))
        assert config.tibber.access_token == "12345"

    def test_config_path_from_env(self, tmp_path, clean_env):
        yaml_file = tmp_path / "elsewhere.yml"
        yaml_file.write_text(MINIMAL_YAML)
        clean_env.setenv("TIBBER_EXPORTER_CONFIG", str(yaml_file))
        assert load_config().source == "tibber"

    def test_default_file_in_working_dir(self, tmp_path, clean_env):
        (tmp_path / "tibber-exporter.yml").write_text(MINIMAL_YAML)
        assert load_config().tibber.access_token == "yaml-token"

    def test_missing_token_raises(self, clean_env):
        clean_env.setenv("TIBBER_EXPORTER_SOURCE", "tibber")
        clean_env.setenv("TIBBER_EXPORTER_WAREHOUSE__BACKEND", "sqlite")
        with pytest.raises(ConfigError):
            load_config()

    def test_missing_config_file_raises(self, clean_env):
        with pytest.raises(ConfigError, match="not found"):
            load_config(config_path="/nonexistent/file.yml")

    def test_missing_env_config_file_raises(self, clean_env):
        clean_env.setenv("TIBBER_EXPORTER_CONFIG", "/nonexistent/file.yml")
        with pytest.raises(ConfigError, match="not found"):
            load_config()

    def test_invalid_yaml_raises(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("tibber: [unclosed\n")
        with pytest.raises(ConfigError, match="Failed to parse YAML"):
            load_config(config_path=str(yaml_file))

    def test_non_mapping_yaml_raises(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config(config_path=str(yaml_file))

    def test_config_path_follows_env_prefix(self, tmp_path, clean_env):
        yaml_file = tmp_path / "staging.yml"
        yaml_file.write_text(MINIMAL_YAML)
        clean_env.setenv("STAGING_CONFIG", str(yaml_file))
        assert load_config(env_prefix="STAGING_").tibber.access_token == "yaml-token"

    def test_unreadable_config_path_raises(self, tmp_path, clean_env):
        with pytest.raises(ConfigError):
            load_config(config_path=str(tmp_path))

    def test_config_is_frozen(self, tmp_path, clean_env):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(MINIMAL_YAML)
        config = load_config(config_path=str(yaml_file))
        with pytest.raises(ValidationError):
            config.source = "other"


class TestAutoCast:
    def test_true(self):
        assert _auto_cast("true") is True
        assert _auto_cast("True") is True
        assert _auto_cast("TRUE") is True

    def test_false(self):
        assert _auto_cast("false") is False

    def test_int(self):
        assert _auto_cast("42") == 42

    def test_float(self):
        assert _auto_cast("0.5") == 0.5

    def test_string(self):
        assert _auto_cast("configmap") == "configmap"


class TestMergeEnvVars:
    def test_simple_override(self, monkeypatch):
        monkeypatch.setenv("TEST_RETRY__MAX_ATTEMPTS", "5")
        result = _merge_env_vars({"retry": {"max_attempts": 3}}, "TEST_")
        assert result["retry"]["max_attempts"] == 5

    def test_creates_nested_structure(self, monkeypatch):
        monkeypatch.setenv("TEST_STATE__ENABLE", "true")
        result = _merge_env_vars({}, "TEST_")
        assert result["state"]["enable"] is True

    def test_skips_config_key(self, monkeypatch):
        monkeypatch.setenv("TEST_CONFIG", "/some/path")
        result = _merge_env_vars({}, "TEST_")
        assert "config" not in result

    def test_string_keys_not_cast(self, monkeypatch):
        monkeypatch.setenv("TEST_WAREHOUSE__PROJECT_ID", "123456")
        result = _merge_env_vars({}, "TEST_")
        assert result["warehouse"]["project_id"] == "123456"

    def test_base_left_untouched(self, monkeypatch):
        monkeypatch.setenv("TEST_RETRY__MAX_ATTEMPTS", "7")
        base = {"retry": {"max_attempts": 3}}
        result = _merge_env_vars(base, "TEST_")
        assert result["retry"]["max_attempts"] == 7
        assert base == {"retry": {"max_attempts": 3}}

    def test_scalar_parent_replaced(self, monkeypatch):
        monkeypatch.setenv("TEST_STATE__ENABLE", "false")
        result = _merge_env_vars({"state": "oops"}, "TEST_")
        assert result["state"] == {"enable": False}
