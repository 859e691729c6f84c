"""
Tests for configuration loading, validation, and migration.
"""

import configparser

import pytest
from pydantic import ValidationError

from flipdeck.exceptions import ConfigurationError
from flipdeck.models.config import AppConfig
from flipdeck.storage.config_manager import ConfigManager


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("FLIPDECK_REMOTE_URL", raising=False)
    monkeypatch.delenv("FLIPDECK_API_KEY", raising=False)


@pytest.fixture
def manager(tmp_path):
    return ConfigManager(tmp_path / "flipdeck" / "config.ini")


def test_saved_config_loads_back(manager):
    manager.save_new_config(
        {"remote_url": "https://example.supabase.co/", "api_key": "secret"}
    )
    config = manager.load_config()

    assert config.remote_url == "https://example.supabase.co"
    assert config.api_key == "secret"
    assert config.load_timeout == 10.0
    assert config.refresh_timeout == 5.0
    assert config.config_path == str(manager.config_file_path.parent)


def test_missing_file_without_env_fails(manager):
    with pytest.raises(ConfigurationError, match="not configured"):
        manager.load_config()


def test_environment_supplies_endpoint(manager, monkeypatch):
    monkeypatch.setenv("FLIPDECK_REMOTE_URL", "http://localhost:54321")
    monkeypatch.setenv("FLIPDECK_API_KEY", "env-key")

    config = manager.load_config()

    assert config.remote_url == "http://localhost:54321"
    assert config.api_key == "env-key"


def test_precedence_file_then_env_then_cli(manager, monkeypatch):
    manager.save_new_config({"remote_url": "https://file.example", "api_key": "file"})
    monkeypatch.setenv("FLIPDECK_API_KEY", "env")

    config = manager.load_config({"load_timeout": 20.0})

    assert config.remote_url == "https://file.example"
    assert config.api_key == "env"
    assert config.load_timeout == 20.0


def test_invalid_url_is_rejected(manager):
    with pytest.raises(ConfigurationError, match="http"):
        manager.load_config({"remote_url": "ftp://nope", "api_key": "k"})


def test_refresh_may_not_exceed_load_timeout(manager):
    with pytest.raises(ConfigurationError, match="refresh_timeout"):
        manager.load_config(
            {
                "remote_url": "https://x.example",
                "api_key": "k",
                "load_timeout": 3.0,
                "refresh_timeout": 4.0,
            }
        )


def test_non_numeric_value_is_a_configuration_error(manager):
    manager.config_file_path.parent.mkdir(parents=True)
    manager.config_file_path.write_text(
        "[DEFAULT]\nremote_url = https://x.example\napi_key = k\nload_timeout = soon\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="Invalid value"):
        manager.load_config()


def test_missing_keys_are_migrated(manager):
    manager.config_file_path.parent.mkdir(parents=True)
    manager.config_file_path.write_text(
        "[DEFAULT]\nremote_url = https://x.example\napi_key = k\n", encoding="utf-8"
    )

    manager.load_config()

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(manager.config_file_path, encoding="utf-8")
    assert parser["DEFAULT"]["probe_interval"] == "30.0"
    assert parser["DEFAULT"]["json_logs"] == "false"


def test_unset_endpoint_is_rejected_by_the_model():
    with pytest.raises(ValidationError, match="not configured"):
        AppConfig(config_path="/tmp/flipdeck")


def test_key_missing_from_every_source_fails(manager, monkeypatch):
    monkeypatch.setenv("FLIPDECK_REMOTE_URL", "https://x.example")

    with pytest.raises(ConfigurationError, match="API key is not configured"):
        manager.load_config()
