"""
Trigger evaluation — decide which reminders are currently due.

Before matching, snoozes that have run out are reactivated and reminders
past their decay time are expired. A reminder whose trigger cannot be
evaluated (bad config, bad regex, failing check command) is simply not due.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..core.dates import dt_to_iso
from ..core.db import Database
from ..core.models import Reminder

logger = logging.getLogger(__name__)

DEFAULT_CONDITION_TIMEOUT = 10.0  # seconds

# Kinds that are due whenever they are requested.
_UNCONDITIONAL_KINDS = ("session", "heartbeat")


def refresh_lifecycle(
    db: Database,
    agent: str,
    now: datetime,
    *,
    preview: bool = False,
) -> List[Reminder]:
    """
    Reactivate expired snoozes, expire decayed reminders.

    Returns the agent's reminders that are active after both steps.
    In preview mode the transitions are applied to in-memory copies only.
    """
    now_s = dt_to_iso(now)
    active: List[Reminder] = []

    for rem in db.query_reminders(statuses=["active", "snoozed"], agent=agent):
        if rem.status == "snoozed":
            if not rem.snoozed_until or rem.snoozed_until > now_s:
                continue
            woken = replace(rem, status="active", snoozed_until=None, updated_at=now_s)
            if not preview:
                db.update_reminder(
                    rem.id,
                    {"status": "active", "snoozed_until": None, "updated_at": now_s},
                )
                db.record_history(rem.id, "reactivated", rem, woken, "system")
            rem = woken

        if rem.decay_at and rem.decay_at <= now_s:
            if not preview:
                db.update_reminder(rem.id, {"status": "expired", "updated_at": now_s})
                db.record_history(rem.id, "expired", rem, None, "system")
                logger.info(f"Expired reminder {rem.id[:8]} (decayed at {rem.decay_at})")
            continue

        active.append(rem)

    return active


def match_keywords(config: Dict[str, Any], text: str) -> bool:
    keywords = [k for k in (config.get("keywords") or []) if k]
    if not keywords or not text:
        return False

    mode = config.get("match") or "any"
    text_lower = text.lower()

    if mode == "any":
        return any(kw.lower() in text_lower for kw in keywords)
    if mode == "all":
        return all(kw.lower() in text_lower for kw in keywords)
    if mode == "regex":
        for kw in keywords:
            try:
                if re.search(kw, text, re.IGNORECASE):
                    return True
            except re.error:
                logger.debug(f"Invalid keyword pattern {kw!r}, skipping")
        return False
    return False


def check_condition(config: Dict[str, Any], *, timeout: float = DEFAULT_CONDITION_TIMEOUT) -> bool:
    """Run the configured check command; due when its output equals `expect`."""
    command = config.get("check")
    expect = config.get("expect")
    if not command or expect is None:
        return False

    try:
        result = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"Condition check timed out after {timeout}s: {command}")
        return False
    except (OSError, subprocess.SubprocessError, ValueError) as e:
        logger.debug(f"Condition check failed to start: {command}: {e}")
        return False

    if result.returncode != 0:
        return False
    return result.stdout.strip() == str(expect)


def is_due(
    rem: Reminder,
    kind: str,
    now_s: str,
    text: Optional[str] = None,
    *,
    condition_timeout: float = DEFAULT_CONDITION_TIMEOUT,
) -> bool:
    """Whether an active reminder of the requested kind is due."""
    if rem.trigger_type != kind:
        return False

    if kind == "time":
        return bool(rem.trigger_at) and rem.trigger_at <= now_s
    if kind in _UNCONDITIONAL_KINDS:
        return True
    if kind == "manual":
        return False

    try:
        config = rem.config()
    except ValueError as e:
        logger.warning(f"Reminder {rem.id[:8]} has malformed trigger_config: {e}")
        return False

    if kind == "keyword":
        return text is not None and match_keywords(config, text)
    if kind == "condition":
        return check_condition(config, timeout=condition_timeout)
    return False


def match_triggers(
    reminders: Iterable[Reminder],
    kinds: Iterable[str],
    now: datetime,
    text: Optional[str] = None,
    *,
    condition_timeout: float = DEFAULT_CONDITION_TIMEOUT,
) -> List[Reminder]:
    """Due reminders among `reminders`, de-duplicated by id, in kind order."""
    now_s = dt_to_iso(now)
    reminders = list(reminders)
    seen = set()
    due: List[Reminder] = []

    for kind in kinds:
        for rem in reminders:
            if rem.id in seen or rem.status != "active":
                continue
            if is_due(rem, kind, now_s, text, condition_timeout=condition_timeout):
                seen.add(rem.id)
                due.append(rem)

    return due


def find_due(
    db: Database,
    now: datetime,
    kinds: Iterable[str],
    agent: str = "main",
    text: Optional[str] = None,
    *,
    preview: bool = False,
    condition_timeout: float = DEFAULT_CONDITION_TIMEOUT,
) -> List[Reminder]:
    """Lifecycle refresh followed by trigger matching for one agent."""
    active = refresh_lifecycle(db, agent, now, preview=preview)
    return match_triggers(active, kinds, now, text, condition_timeout=condition_timeout)
