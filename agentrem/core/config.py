"""Configuration for agentrem."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = "~/.agentrem/reminders.db"
_DEFAULT_CONFIG_PATH = "~/.agentrem/config.yaml"
_DEFAULT_LOG_DIR = "~/.agentrem/logs"

_INT_KEYS = ("budget", "gc_older_than_days")
_FLOAT_KEYS = (
    "watch_interval",
    "cooldown",
    "gc_interval_hours",
    "on_fire_timeout",
    "condition_timeout",
)
_STR_KEYS = ("db_path", "agent", "on_fire", "log_dir")


@dataclass
class Config:
    # Storage
    db_path: str = _DEFAULT_DB_PATH
    agent: str = "main"

    # Evaluation
    budget: int = 800                  # abstract units, x4 = chars
    condition_timeout: float = 10.0    # seconds

    # Watch loop
    watch_interval: float = 30.0       # seconds
    cooldown: float = 300.0            # seconds between re-notifications
    gc_interval_hours: float = 24.0
    gc_older_than_days: int = 30

    # On-fire hook
    on_fire: Optional[str] = None
    on_fire_timeout: float = 5.0       # seconds

    log_dir: str = _DEFAULT_LOG_DIR

    @classmethod
    def config_path(cls, path: Optional[str] = None) -> Path:
        return Path(
            path or os.getenv("AGENTREM_CONFIG", _DEFAULT_CONFIG_PATH)
        ).expanduser()

    @classmethod
    def load(cls, path: Optional[str] = None) -> Config:
        """Load config from YAML file, falling back to defaults."""
        config_path = cls.config_path(path)

        data: dict = {}
        if config_path.exists():
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable config {config_path}: {e}")

        cfg = cls()

        for key in _STR_KEYS:
            if data.get(key):
                setattr(cfg, key, str(data[key]))
        for key in _INT_KEYS:
            if key in data:
                setattr(cfg, key, int(data[key]))
        for key in _FLOAT_KEYS:
            if key in data:
                setattr(cfg, key, float(data[key]))

        # Environment overrides
        if env_db := os.getenv("AGENTREM_DB"):
            cfg.db_path = env_db
        if env_agent := os.getenv("AGENTREM_AGENT"):
            cfg.agent = env_agent
        if env_hook := os.getenv("AGENTREM_ON_FIRE"):
            cfg.on_fire = env_hook

        return cfg

    @classmethod
    def set_config(cls, key: str, value: str, path: Optional[str] = None) -> None:
        """Persist a single key into the YAML file, keeping other keys."""
        if key not in _STR_KEYS + _INT_KEYS + _FLOAT_KEYS:
            from .errors import ValidationError
            raise ValidationError(f"Unknown config key: {key}")

        config_path = cls.config_path(path)
        data: Dict[str, Any] = {}
        if config_path.exists():
            data = yaml.safe_load(config_path.read_text()) or {}

        if key in _INT_KEYS:
            data[key] = int(value)
        elif key in _FLOAT_KEYS:
            data[key] = float(value)
        else:
            data[key] = value

        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.safe_dump(data, sort_keys=False))

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()

    @property
    def resolved_log_dir(self) -> Path:
        return Path(self.log_dir).expanduser()

    @property
    def gc_interval(self) -> float:
        """Maintenance interval in seconds."""
        return self.gc_interval_hours * 3600

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
