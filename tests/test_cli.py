import json

import pytest
from typer.testing import CliRunner

from relaybot import __version__
from relaybot.cli.commands import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DISCORD_BOT_TOKEN", "INWORLD_KEY", "INWORLD_SECRET", "INWORLD_SCENE"):
        monkeypatch.delenv(name, raising=False)


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_run_aborts_on_missing_configuration(tmp_path):
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.json")])

    assert result.exit_code == 1
    assert "INWORLD_KEY" in result.stdout


def test_status_reports_required_settings(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"inworld": {"scene": "workspaces/w/characters/victoria"}}))
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "abcdefghij")

    result = runner.invoke(app, ["status", "--config", str(path)])

    assert result.exit_code == 0
    assert "DISCORD_BOT_TOKEN" in result.stdout
    assert "abcdefghij" not in result.stdout
    assert "workspaces/w/characters/victoria" in result.stdout
