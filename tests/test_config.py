"""Tests for agentrem.core.config — Config loading, env overrides, set_config."""

from pathlib import Path

import pytest
import yaml

from agentrem.core.config import Config
from agentrem.core.errors import ValidationError


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Set up a temp config directory."""
    config_path = tmp_path / "config.yaml"
    monkeypatch.setenv("AGENTREM_CONFIG", str(config_path))
    for var in ("AGENTREM_DB", "AGENTREM_AGENT", "AGENTREM_ON_FIRE"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def _write_config(path: Path, data: dict):
    config_file = path / "config.yaml"
    config_file.write_text(yaml.dump(data))
    return config_file


class TestConfigLoad:
    def test_defaults(self, config_dir):
        cfg = Config.load()
        assert cfg.agent == "main"
        assert cfg.budget == 800
        assert cfg.watch_interval == 30.0
        assert cfg.cooldown == 300.0
        assert cfg.on_fire is None
        assert cfg.on_fire_timeout == 5.0

    def test_load_from_yaml(self, config_dir):
        _write_config(config_dir, {
            "agent": "ops",
            "budget": 400,
            "cooldown": 60,
            "on_fire": "notify.sh",
            "gc_older_than_days": 7,
        })
        cfg = Config.load()
        assert cfg.agent == "ops"
        assert cfg.budget == 400
        assert cfg.cooldown == 60.0
        assert isinstance(cfg.cooldown, float)
        assert cfg.on_fire == "notify.sh"
        assert cfg.gc_older_than_days == 7

    def test_env_overrides_yaml(self, config_dir, monkeypatch):
        _write_config(config_dir, {"agent": "ops"})
        monkeypatch.setenv("AGENTREM_AGENT", "night-shift")
        cfg = Config.load()
        assert cfg.agent == "night-shift"

    def test_env_override_db_path(self, config_dir, monkeypatch):
        monkeypatch.setenv("AGENTREM_DB", "/custom/db.sqlite")
        cfg = Config.load()
        assert cfg.db_path == "/custom/db.sqlite"

    def test_env_override_on_fire(self, config_dir, monkeypatch):
        monkeypatch.setenv("AGENTREM_ON_FIRE", "echo fired")
        assert Config.load().on_fire == "echo fired"

    def test_missing_config_file(self, config_dir):
        # no config file yet
        cfg = Config.load()
        assert cfg.budget == 800

    def test_unreadable_yaml_falls_back(self, config_dir):
        (config_dir / "config.yaml").write_text("budget: [unclosed\n")
        cfg = Config.load()
        assert cfg.budget == 800


class TestSetConfig:
    def test_persists_and_keeps_other_keys(self, config_dir):
        _write_config(config_dir, {"agent": "ops"})
        Config.set_config("budget", "250")
        data = yaml.safe_load((config_dir / "config.yaml").read_text())
        assert data == {"agent": "ops", "budget": 250}
        assert Config.load().budget == 250

    def test_float_key_coerced(self, config_dir):
        Config.set_config("cooldown", "90")
        assert Config.load().cooldown == 90.0

    def test_unknown_key(self, config_dir):
        with pytest.raises(ValidationError):
            Config.set_config("llm_model", "x")


class TestResolvedPaths:
    def test_expands_tilde(self):
        cfg = Config(db_path="~/test.db", log_dir="~/logs")
        assert "~" not in str(cfg.resolved_db_path)
        assert "~" not in str(cfg.resolved_log_dir)

    def test_gc_interval_in_seconds(self):
        assert Config(gc_interval_hours=2).gc_interval == 7200
