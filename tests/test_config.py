import json

import pytest

from relaybot.config.loader import (
    camel_to_snake,
    load_config,
    require_complete,
    save_config,
    snake_to_camel,
)
from relaybot.errors import ConfigError

FULL_ENV = {
    "DISCORD_BOT_TOKEN": "discord-token",
    "INWORLD_KEY": "key",
    "INWORLD_SECRET": "secret",
    "INWORLD_SCENE": "workspaces/w/characters/victoria",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in FULL_ENV:
        monkeypatch.delenv(name, raising=False)


def test_flat_env_names_are_read(tmp_path):
    config = load_config(tmp_path / "missing.json", environ=FULL_ENV)

    assert config.discord.token == "discord-token"
    assert config.inworld.api_key == "key"
    assert config.inworld.api_secret == "secret"
    assert config.inworld.scene == "workspaces/w/characters/victoria"
    assert config.missing_required() == []
    assert require_complete(config) is config


def test_missing_required_settings_fail_fast(tmp_path):
    env = {k: v for k, v in FULL_ENV.items() if k != "INWORLD_SECRET"}
    config = load_config(tmp_path / "missing.json", environ=env)

    with pytest.raises(ConfigError) as exc:
        require_complete(config)
    assert exc.value.missing == ["INWORLD_SECRET"]


def test_defaults(tmp_path):
    config = load_config(tmp_path / "missing.json", environ={})

    assert config.relay.max_direct_sessions == 50
    assert config.shared_disconnect_timeout == 5.0
    assert config.discord.trigger_keyword == "Victoria"
    assert len(config.missing_required()) == 4


def test_json_file_uses_camel_case(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "discord": {"token": "file-token", "triggerKeyword": "Ada"},
        "relay": {"maxDirectSessions": 3, "sharedDisconnectTimeoutMs": 2500},
    }))

    config = load_config(path, environ={})

    assert config.discord.token == "file-token"
    assert config.discord.trigger_keyword == "Ada"
    assert config.relay.max_direct_sessions == 3
    assert config.shared_disconnect_timeout == 2.5


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "discord": {"token": "file-token"},
        "relay": {"maxDirectSessions": 3},
    }))
    monkeypatch.setenv("RELAYBOT_RELAY__MAX_DIRECT_SESSIONS", "7")

    config = load_config(path, environ={"DISCORD_BOT_TOKEN": "env-token"})

    assert config.discord.token == "env-token"
    assert config.relay.max_direct_sessions == 7


def test_save_and_reload(tmp_path):
    path = tmp_path / "config.json"
    config = load_config(tmp_path / "missing.json", environ=FULL_ENV)
    save_config(config, path)

    saved = json.loads(path.read_text())
    assert saved["discord"]["triggerKeyword"] == "Victoria"
    assert saved["inworld"]["apiKey"] == "key"
    assert load_config(path, environ={}).inworld.api_secret == "secret"


def test_key_case_conversion():
    assert camel_to_snake("maxDirectSessions") == "max_direct_sessions"
    assert snake_to_camel("shared_disconnect_timeout_ms") == "sharedDisconnectTimeoutMs"
