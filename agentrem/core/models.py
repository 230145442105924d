"""Data models for agentrem."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

SCHEMA_VERSION = 1

TRIGGER_KINDS = ("time", "keyword", "condition", "session", "heartbeat", "manual")
STATUSES = ("active", "snoozed", "completed", "expired", "deleted")
SOURCES = ("agent", "user", "system")
MATCH_MODES = ("any", "all", "regex")
RECUR_UNITS = ("d", "w", "m")

PRIORITY_LABELS: Dict[int, str] = {
    1: "critical",
    2: "high",
    3: "normal",
    4: "low",
    5: "someday",
}


@dataclass
class Reminder:
    id: str
    content: str
    trigger_type: str = "time"     # see TRIGGER_KINDS
    trigger_at: Optional[str] = None
    trigger_config: Optional[str] = None  # JSON string
    priority: int = 3              # 1 = most urgent
    context: Optional[str] = None
    tags: Optional[str] = None     # comma-separated
    category: Optional[str] = None
    status: str = "active"
    snoozed_until: Optional[str] = None
    decay_at: Optional[str] = None
    fire_count: int = 0
    last_fired: Optional[str] = None
    max_fires: Optional[int] = None
    recur_rule: Optional[str] = None  # JSON string {"interval": n, "unit": "d"}
    recur_parent_id: Optional[str] = None
    depends_on: Optional[str] = None
    source: str = "agent"
    agent: str = "main"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    notes: Optional[str] = None

    def config(self) -> Dict[str, Any]:
        """Parsed trigger_config. Raises ValueError on malformed JSON."""
        if not self.trigger_config:
            return {}
        data = json.loads(self.trigger_config)
        if not isinstance(data, dict):
            raise ValueError(f"trigger_config is not an object: {self.trigger_config!r}")
        return data

    @property
    def tag_list(self) -> List[str]:
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]


@dataclass
class RecurRule:
    interval: int = 1
    unit: str = "d"  # d | w | m

    def to_json(self) -> str:
        return json.dumps({"interval": self.interval, "unit": self.unit})

    @classmethod
    def from_json(cls, text: Optional[str]) -> Optional[RecurRule]:
        if not text:
            return None
        data = json.loads(text)
        return cls(interval=int(data.get("interval") or 1), unit=data.get("unit") or "d")


@dataclass
class HistoryEntry:
    reminder_id: str
    action: str  # created | completed | snoozed | reactivated | expired | escalated | deleted
    old_data: Optional[str] = None  # JSON snapshot
    new_data: Optional[str] = None  # JSON snapshot
    source: Optional[str] = None    # agent | user | system
    timestamp: Optional[str] = None
    id: Optional[int] = None
