"""
agentrem API — importable functions for all operations.

Every function returns JSON-serializable dicts/lists. Validation and lookup
failures come back as {"error": message} instead of raising.
Designed to be called from scripts, agent skills, or the CLI.
"""

from __future__ import annotations

import functools
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from .core.errors import AgentremError


def _serialize(obj: Any) -> Any:
    """Convert dataclass to dict."""
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    return obj


def _db(read_only: bool = False):
    from .core.db import get_db
    return get_db(read_only=read_only)


def _config():
    from .core.config import Config
    return Config.load()


def _errors_as_dict(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except AgentremError as e:
            return {"error": str(e)}
    return wrapper


# ── Setup ─────────────────────────────────────────────────────────────────────


def init() -> Dict[str, Any]:
    """Initialize agentrem: create config dir, default config, and database."""
    from .core.config import Config

    cfg = Config.load()
    config_path = Config.config_path()
    results: Dict[str, Any] = {"created": [], "existing": []}

    config_dir = config_path.parent
    if config_dir.exists():
        results["existing"].append(str(config_dir))
    else:
        config_dir.mkdir(parents=True)
        results["created"].append(str(config_dir))

    if config_path.exists():
        results["existing"].append(str(config_path))
    else:
        config_path.write_text(_DEFAULT_CONFIG_TEMPLATE)
        results["created"].append(str(config_path))

    db_path = cfg.resolved_db_path
    if db_path.exists():
        results["existing"].append(str(db_path))
    else:
        _db()
        results["created"].append(str(db_path))

    return results


@_errors_as_dict
def setup_config(key: str, value: str) -> Dict[str, str]:
    """Set a config key-value pair."""
    from .core.config import Config
    Config.set_config(key, value)
    return {"key": key, "value": value, "status": "ok"}


_DEFAULT_CONFIG_TEMPLATE = """\
# agentrem configuration

# ── Storage ──────────────────────────────────────────────
# db_path: "~/.agentrem/reminders.db"
# agent: "main"

# ── Evaluation ───────────────────────────────────────────
# Budget in units of ~4 characters for `agentrem check`.
# budget: 800
# Seconds a condition trigger's check command may run.
# condition_timeout: 10

# ── Watch ────────────────────────────────────────────────
# watch_interval: 30          # seconds between polls
# cooldown: 300               # seconds before the same reminder notifies again
# gc_interval_hours: 24
# gc_older_than_days: 30

# Shell command run when a reminder fires. Reminder data is passed as
# AGENTREM_ID, AGENTREM_CONTENT, AGENTREM_PRIORITY, AGENTREM_TAGS,
# AGENTREM_CONTEXT, AGENTREM_DUE, AGENTREM_FIRE_COUNT.
# on_fire: "my-script.sh"
# on_fire_timeout: 5

# log_dir: "~/.agentrem/logs"
"""


# ── Reminders ─────────────────────────────────────────────────────────────────


@_errors_as_dict
def add(content: str, **kwargs) -> Dict[str, Any]:
    """
    Create a reminder.

    Keyword args mirror agentrem.reminders.add_reminder: trigger, due,
    priority, keywords, match, check, expect, context, tags, category,
    decay, max_fires, recur, depends_on, agent, source, dry_run.
    """
    from .reminders import add_reminder
    kwargs.setdefault("agent", _config().agent)
    rem = add_reminder(_db(), content, **kwargs)
    return {"reminder": _serialize(rem), "dry_run": bool(kwargs.get("dry_run"))}


@_errors_as_dict
def check(
    *,
    kinds: Optional[str] = None,
    text: Optional[str] = None,
    agent: Optional[str] = None,
    budget: Optional[int] = None,
    escalate: bool = False,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Evaluate due reminders once.

    Returns:
        {included, overflow_counts, overflow_total, total_triggered, dry_run}
    """
    from .engine.pipeline import evaluate

    cfg = _config()
    result = evaluate(
        _db(),
        kinds=kinds,
        agent=agent or cfg.agent,
        text=text,
        budget=budget or cfg.budget,
        escalate_overdue=escalate,
        preview=dry_run,
        condition_timeout=cfg.condition_timeout,
    )
    return {
        "included": [_serialize(r) for r in result.included],
        "overflow_counts": result.overflow_counts,
        "overflow_total": sum(result.overflow_counts.values()),
        "total_triggered": result.total_triggered,
        "dry_run": dry_run,
    }


@_errors_as_dict
def list_reminders(
    *,
    status: str = "active",
    priority: Optional[str] = None,
    tag: Optional[str] = None,
    trigger: Optional[str] = None,
    agent: Optional[str] = None,
    overdue: bool = False,
    limit: int = 50,
) -> Dict[str, Any]:
    """List reminders. `status` and `priority` take comma-separated values; status "all" lists every status."""
    from .core.dates import now_iso
    from .core.errors import ValidationError
    from .engine.pipeline import parse_kinds

    statuses = None if status == "all" else [s.strip() for s in status.split(",") if s.strip()]
    try:
        priorities = [int(p) for p in priority.split(",")] if priority else None
    except ValueError:
        raise ValidationError(f"Invalid priority list: '{priority}'")

    items = _db().query_reminders(
        statuses=statuses,
        kinds=parse_kinds(trigger) if trigger else None,
        agent=agent or _config().agent,
        due_before=now_iso() if overdue else None,
        priorities=priorities,
        tag=tag,
        limit=limit,
    )
    return {"total": len(items), "reminders": [_serialize(r) for r in items]}


@_errors_as_dict
def show(reminder_id: str) -> Dict[str, Any]:
    """Reminder details with recent history."""
    from .reminders import require_reminder
    db = _db()
    rem = require_reminder(db, reminder_id)
    return {
        "reminder": _serialize(rem),
        "history": [_serialize(h) for h in db.list_history(rem.id, limit=20)],
    }


@_errors_as_dict
def complete(
    reminder_id: str, *, notes: Optional[str] = None, source: str = "agent"
) -> Dict[str, Any]:
    """Complete a reminder; recurring reminders get their next occurrence."""
    from .reminders import complete_reminder
    done, successor = complete_reminder(_db(), reminder_id, notes=notes, source=source)
    return {"completed": _serialize(done), "next": _serialize(successor)}


@_errors_as_dict
def snooze(
    reminder_id: str,
    *,
    until: Optional[str] = None,
    duration: Optional[str] = None,
    source: str = "agent",
) -> Dict[str, Any]:
    from .reminders import snooze_reminder
    rem = snooze_reminder(_db(), reminder_id, until=until, duration=duration, source=source)
    return {"reminder": _serialize(rem)}


@_errors_as_dict
def edit(reminder_id: str, **changes) -> Dict[str, Any]:
    """Edit fields in place (content, priority, due, tags, add_tags, ...)."""
    from .reminders import edit_reminder
    rem = edit_reminder(_db(), reminder_id, **changes)
    return {"reminder": _serialize(rem)}


@_errors_as_dict
def delete(
    reminder_id: str, *, permanent: bool = False, source: str = "agent"
) -> Dict[str, Any]:
    from .reminders import delete_reminder
    rem = delete_reminder(_db(), reminder_id, permanent=permanent, source=source)
    return {"deleted": rem.id, "permanent": permanent}


@_errors_as_dict
def history(reminder_id: Optional[str] = None, *, limit: int = 20) -> List[Dict[str, Any]]:
    return [_serialize(h) for h in _db().list_history(reminder_id, limit=limit)]


@_errors_as_dict
def search(
    query: str,
    *,
    status: str = "active",
    limit: int = 10,
    regex: bool = True,
    ignore_case: bool = True,
) -> Dict[str, Any]:
    """Search reminder content, context, tags and notes."""
    from .core.models import STATUSES
    statuses = STATUSES if status == "all" else [s.strip() for s in status.split(",")]
    found = _db().search_reminders(
        query, statuses=statuses, limit=limit, regex=regex, ignore_case=ignore_case
    )
    return {"query": query, "total": len(found), "reminders": [_serialize(r) for r in found]}


# ── Maintenance ───────────────────────────────────────────────────────────────


@_errors_as_dict
def gc(*, older_than_days: Optional[int] = None, dry_run: bool = False) -> Dict[str, Any]:
    """Purge old completed/expired/deleted reminders."""
    from .reminders import collect_garbage
    days = older_than_days if older_than_days is not None else _config().gc_older_than_days
    return collect_garbage(_db(), older_than_days=days, dry_run=dry_run)


def stats() -> Dict[str, Any]:
    """Database stats and config diagnostics."""
    cfg = _config()
    result: Dict[str, Any] = {"config": cfg.to_dict()}
    try:
        result.update(_db().stats())
    except AgentremError as e:
        result["db_path"] = str(cfg.resolved_db_path)
        result["db_error"] = f"{e}. Run: agentrem init"
    return result


# ── Watch ─────────────────────────────────────────────────────────────────────


def watch(
    *,
    once: bool = False,
    interval: Optional[float] = None,
    agent: Optional[str] = None,
    cooldown: Optional[float] = None,
    on_fire: Optional[str] = None,
    on_fire_timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run the watch loop in this thread until interrupted (or one tick with once=True)."""
    from .watch import WatchOptions, start_watch
    options = WatchOptions.from_config(
        once=once,
        interval=interval,
        agent=agent,
        cooldown=cooldown,
        on_fire=on_fire,
        on_fire_timeout=on_fire_timeout,
    )
    started = datetime.now().isoformat(timespec="seconds")
    start_watch(options)
    return {"started": started, "stopped": datetime.now().isoformat(timespec="seconds")}


@_errors_as_dict
def wait(
    *,
    kinds: str = "time",
    agent: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Block until the next reminder is due; nothing is marked fired."""
    from .watch import wait_for_due
    cfg = _config()
    result = wait_for_due(
        cfg.resolved_db_path, agent=agent or cfg.agent, kinds=kinds, timeout=timeout
    )
    return {"reminder": _serialize(result.reminder), "timed_out": result.timed_out}
