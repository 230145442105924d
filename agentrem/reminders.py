"""
Reminder operations — add, complete, snooze, edit, delete, gc.

Every status change appends a history entry. Validation problems raise
ValidationError, unknown ids raise NotFoundError.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from .core.dates import dt_to_iso, parse_date, parse_duration, parse_recur
from .core.db import Database
from .core.errors import NotFoundError, ValidationError
from .core.models import MATCH_MODES, SOURCES, TRIGGER_KINDS, Reminder
from .engine.recurrence import schedule_next

logger = logging.getLogger(__name__)

DateLike = Union[str, datetime]


def _split(value: Union[None, str, List[str]]) -> List[str]:
    if not value:
        return []
    items = value.split(",") if isinstance(value, str) else value
    return [v.strip() for v in items if v and v.strip()]


def build_trigger_config(
    trigger: str,
    *,
    keywords: Union[None, str, List[str]] = None,
    match: Optional[str] = None,
    check: Optional[str] = None,
    expect: Optional[str] = None,
) -> Optional[str]:
    if trigger == "keyword":
        kws = _split(keywords)
        if not kws:
            raise ValidationError("Keyword trigger requires at least one keyword")
        mode = match or "any"
        if mode not in MATCH_MODES:
            raise ValidationError(
                f"Invalid match mode: '{mode}'. Must be one of: {', '.join(MATCH_MODES)}"
            )
        return json.dumps({"keywords": kws, "match": mode})

    if trigger == "condition":
        if not check or expect is None:
            raise ValidationError("Condition trigger requires both a check command and expect")
        return json.dumps({"check": check, "expect": expect})

    return None


def require_reminder(db: Database, reminder_id: str) -> Reminder:
    rem = db.find_reminder(reminder_id)
    if not rem:
        raise NotFoundError(f"Reminder not found: {reminder_id}")
    return rem


# ── Add ───────────────────────────────────────────────────────────────────────


def add_reminder(
    db: Database,
    content: str,
    *,
    trigger: str = "time",
    due: Optional[DateLike] = None,
    priority: int = 3,
    keywords: Union[None, str, List[str]] = None,
    match: Optional[str] = None,
    check: Optional[str] = None,
    expect: Optional[str] = None,
    context: Optional[str] = None,
    tags: Optional[str] = None,
    category: Optional[str] = None,
    decay: Optional[DateLike] = None,
    max_fires: Optional[int] = None,
    recur: Optional[str] = None,
    depends_on: Optional[str] = None,
    agent: str = "main",
    source: str = "agent",
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> Reminder:
    """Validate and store a new reminder."""
    if not content or not content.strip():
        raise ValidationError("Reminder content must not be empty")
    if not isinstance(priority, int) or not 1 <= priority <= 5:
        raise ValidationError("Priority must be 1-5")
    if trigger not in TRIGGER_KINDS:
        raise ValidationError(
            f"Invalid trigger type: '{trigger}'. Must be one of: {', '.join(TRIGGER_KINDS)}"
        )
    if source not in SOURCES:
        raise ValidationError(f"Invalid source: '{source}'")
    if max_fires is not None and max_fires < 1:
        raise ValidationError("max_fires must be at least 1")

    trigger_at = dt_to_iso(parse_date(due, now=now)) if due else None
    if trigger == "time" and not trigger_at:
        raise ValidationError("Time trigger requires a due date")

    trigger_config = build_trigger_config(
        trigger, keywords=keywords, match=match, check=check, expect=expect
    )
    decay_at = dt_to_iso(parse_date(decay, now=now)) if decay else None
    recur_rule = parse_recur(recur).to_json() if recur else None

    if depends_on:
        dep = db.find_reminder(depends_on)
        if not dep:
            raise NotFoundError(f"Dependency not found: {depends_on}")
        depends_on = dep.id

    rem = Reminder(
        id="dry-run" if dry_run else "",
        content=content.strip(),
        trigger_type=trigger,
        trigger_at=trigger_at,
        trigger_config=trigger_config,
        priority=priority,
        context=context,
        tags=",".join(_split(tags)) or None,
        category=category,
        decay_at=decay_at,
        max_fires=max_fires,
        recur_rule=recur_rule,
        depends_on=depends_on,
        source=source,
        agent=agent,
    )
    if dry_run:
        return rem

    db.insert_reminder(rem)
    db.record_history(rem.id, "created", None, rem, source)
    return rem


# ── Complete ──────────────────────────────────────────────────────────────────


def complete_reminder(
    db: Database,
    reminder_id: str,
    *,
    notes: Optional[str] = None,
    source: str = "agent",
    now: Optional[datetime] = None,
) -> Tuple[Reminder, Optional[Reminder]]:
    """
    Mark a reminder completed.

    Returns (completed, next_occurrence); next_occurrence is None unless
    the reminder recurs.
    """
    now = (now or datetime.now()).replace(microsecond=0)
    now_s = dt_to_iso(now)
    rem = require_reminder(db, reminder_id)
    if rem.status == "completed":
        raise ValidationError(f"Reminder {rem.id} is already completed")

    successor = schedule_next(db, rem, now)

    if notes and rem.notes:
        final_notes: Optional[str] = f"{rem.notes}\n{notes}"
    else:
        final_notes = notes or rem.notes

    db.update_reminder(
        rem.id,
        {"status": "completed", "completed_at": now_s, "updated_at": now_s, "notes": final_notes},
    )
    done = replace(rem, status="completed", completed_at=now_s, updated_at=now_s, notes=final_notes)
    db.record_history(rem.id, "completed", rem, done, source)
    return done, successor


# ── Snooze ────────────────────────────────────────────────────────────────────


def snooze_reminder(
    db: Database,
    reminder_id: str,
    *,
    until: Optional[DateLike] = None,
    duration: Optional[str] = None,
    source: str = "agent",
    now: Optional[datetime] = None,
) -> Reminder:
    """Snooze until a date, or for a duration like "2h"."""
    if not until and not duration:
        raise ValidationError("Snooze requires an until date or a duration, e.g. 2h")

    now = (now or datetime.now()).replace(microsecond=0)
    rem = require_reminder(db, reminder_id)
    if rem.status not in ("active", "snoozed"):
        raise ValidationError(f"Cannot snooze a {rem.status} reminder")

    wake = parse_date(until, now=now) if until else now + parse_duration(duration or "")
    changes = {"status": "snoozed", "snoozed_until": dt_to_iso(wake), "updated_at": dt_to_iso(now)}
    db.update_reminder(rem.id, changes)
    snoozed = replace(rem, **changes)
    db.record_history(rem.id, "snoozed", rem, snoozed, source)
    return snoozed


# ── Edit ──────────────────────────────────────────────────────────────────────


def edit_reminder(
    db: Database,
    reminder_id: str,
    *,
    content: Optional[str] = None,
    context: Optional[str] = None,
    priority: Optional[int] = None,
    due: Optional[DateLike] = None,
    tags: Optional[str] = None,
    add_tags: Optional[str] = None,
    remove_tags: Optional[str] = None,
    category: Optional[str] = None,
    decay: Optional[DateLike] = None,
    max_fires: Optional[int] = None,
    keywords: Union[None, str, List[str]] = None,
    agent: Optional[str] = None,
    source: str = "agent",
    now: Optional[datetime] = None,
) -> Reminder:
    """
    Change fields of an existing reminder in place.

    Fire count, id and dependency links are kept. `tags` replaces the tag
    list; `add_tags` / `remove_tags` adjust it and leave it sorted.
    """
    now = (now or datetime.now()).replace(microsecond=0)
    rem = require_reminder(db, reminder_id)
    changes: Dict[str, Any] = {}

    if content is not None:
        if not content.strip():
            raise ValidationError("Reminder content must not be empty")
        changes["content"] = content.strip()
    if context is not None:
        changes["context"] = context
    if priority is not None:
        if not isinstance(priority, int) or not 1 <= priority <= 5:
            raise ValidationError("Priority must be 1-5")
        changes["priority"] = priority
    if due is not None:
        changes["trigger_at"] = dt_to_iso(parse_date(due, now=now))
    if tags is not None:
        changes["tags"] = ",".join(_split(tags)) or None
    if add_tags or remove_tags:
        current = set(_split(changes.get("tags", rem.tags)))
        current |= set(_split(add_tags))
        current -= set(_split(remove_tags))
        changes["tags"] = ",".join(sorted(current)) or None
    if category is not None:
        changes["category"] = category
    if decay is not None:
        changes["decay_at"] = dt_to_iso(parse_date(decay, now=now))
    if max_fires is not None:
        if max_fires < 1:
            raise ValidationError("max_fires must be at least 1")
        changes["max_fires"] = max_fires
    if keywords is not None:
        if rem.trigger_type != "keyword":
            raise ValidationError("Keywords can only be set on a keyword reminder")
        kws = _split(keywords)
        if not kws:
            raise ValidationError("Keyword trigger requires at least one keyword")
        try:
            config = json.loads(rem.trigger_config or "{}")
        except ValueError:
            config = {}
        config["keywords"] = kws
        config.setdefault("match", "any")
        changes["trigger_config"] = json.dumps(config)
    if agent is not None:
        changes["agent"] = agent

    if not changes:
        raise ValidationError("No changes specified. Use --content, --priority, --due, --tags, etc.")

    changes["updated_at"] = dt_to_iso(now)
    db.update_reminder(rem.id, changes)
    edited = replace(rem, **changes)
    db.record_history(rem.id, "updated", rem, edited, source)
    return edited


# ── Delete ────────────────────────────────────────────────────────────────────


def delete_reminder(
    db: Database,
    reminder_id: str,
    *,
    permanent: bool = False,
    source: str = "agent",
) -> Reminder:
    rem = require_reminder(db, reminder_id)
    if permanent:
        db.delete_reminders([rem.id])
        db.record_history(rem.id, "deleted", rem, None, source)
        return rem

    db.update_reminder(rem.id, {"status": "deleted"})
    deleted = replace(rem, status="deleted")
    db.record_history(rem.id, "deleted", rem, deleted, source)
    return deleted


# ── Maintenance ───────────────────────────────────────────────────────────────


def collect_garbage(
    db: Database,
    *,
    older_than_days: int = 30,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Purge completed/expired/deleted reminders idle for `older_than_days`."""
    now = now or datetime.now()
    cutoff = dt_to_iso(now - timedelta(days=older_than_days))
    purged = db.collect_garbage(cutoff, dry_run=dry_run)
    return {"count": len(purged), "reminders": purged, "dry_run": dry_run}
