from __future__ import annotations

import json

import pytest

from state.config_store import ConfigError, ConfigStore
from state.models import DEFAULT_SERVER, DEFAULT_WEBUI, Config


def test_defaults_and_alfred_dirs(tmp_path):
    env = {
        "alfred_workflow_cache": str(tmp_path / "cache"),
        "alfred_workflow_data": str(tmp_path / "data"),
    }
    store = ConfigStore.from_env(env)
    config = store.load()

    assert store.path == tmp_path / "data" / "config.json"
    assert config.cache_dir == str(tmp_path / "cache")
    assert config.data_dir == str(tmp_path / "data")
    assert config.server == DEFAULT_SERVER
    assert config.webui == DEFAULT_WEBUI
    assert config.icon_cache_enabled is True
    assert config.effective_sfa_mode == -1
    assert config.debug is False


def test_env_overrides_with_day_ages(tmp_path):
    env = {
        "email": "me@example.com",
        "sfa": "true",
        "sfamode": "1",
        "icon_cache_age": "2",
        "auto_fetch_icon_cache_age": "0.5",
        "max_results": "25",
        "reordering_disabled": "0",
        "alfred_debug": "1",
    }
    config = ConfigStore(tmp_path / "config.json", env=env).load()

    assert config.email == "me@example.com"
    assert config.sfa is True
    assert config.effective_sfa_mode == 1
    assert config.icon_max_cache_age == 2 * 24 * 3600
    assert config.auto_fetch_icon_max_cache_age == 12 * 3600
    assert config.max_results == 25
    assert config.reordering_disabled is False
    assert config.debug is True


def test_saved_values_win_over_env(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"email": "saved@example.com", "cache_dir": "/ignored"}))

    config = ConfigStore(path, env={"email": "env@example.com"}).load()

    assert config.email == "saved@example.com"
    assert config.cache_dir != "/ignored"


def test_unreadable_config_file_is_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2")

    config = ConfigStore(path, env={}).load()

    assert config == ConfigStore(tmp_path / "none.json", env={}).load()


def test_set_server_defaults_when_empty_and_persists(tmp_path):
    store = ConfigStore(tmp_path / "config.json", env={})
    config = store.load()

    updated = store.set(config, "server", "")

    assert updated.server == DEFAULT_SERVER
    saved = json.loads((tmp_path / "config.json").read_text())
    assert saved == {"server": DEFAULT_SERVER}


def test_set_same_value_twice_is_idempotent(tmp_path):
    path = tmp_path / "config.json"
    store = ConfigStore(path, env={})
    config = store.load()

    once = store.set(config, "webui", "https://vault.example.com")
    first = path.read_text()
    twice = store.set(once, "webui", "https://vault.example.com")

    assert once.webui == twice.webui == "https://vault.example.com"
    assert path.read_text() == first
    assert ConfigStore(path, env={}).load().webui == "https://vault.example.com"


def test_set_typed_values(tmp_path):
    store = ConfigStore(tmp_path / "config.json", env={})
    config = store.load()

    config = store.set(config, "2fa", "true")
    config = store.set(config, "2famode", "3")
    config = store.set(config, "apikey", "false")

    assert config.sfa is True
    assert config.sfa_mode == 3
    assert config.use_apikey is False
    reloaded = ConfigStore(tmp_path / "config.json", env={}).load()
    assert (reloaded.sfa, reloaded.sfa_mode) == (True, 3)


def test_set_rejects_unknown_key_and_bad_mode(tmp_path):
    store = ConfigStore(tmp_path / "config.json", env={})
    config = store.load()

    with pytest.raises(ConfigError):
        store.set(config, "colour", "blue")
    with pytest.raises(ConfigError):
        store.set(config, "2famode", "yubikey")
    assert not (tmp_path / "config.json").exists()
    assert isinstance(config, Config)
