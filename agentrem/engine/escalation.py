"""
Priority escalation for overdue time reminders.

P3 overdue 48h or more becomes P2; P2 overdue 24h or more becomes P1. Both
rules run in one pass, so a P3 that crosses the first threshold is checked
against the second one right away.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, List

from ..core.dates import dt_to_iso
from ..core.db import Database
from ..core.models import Reminder

logger = logging.getLogger(__name__)

# (from_priority, to_priority, overdue threshold)
ESCALATION_RULES = (
    (3, 2, timedelta(hours=48)),
    (2, 1, timedelta(hours=24)),
)


def escalated_priority(rem: Reminder, now: datetime) -> int:
    if rem.trigger_type != "time" or rem.status != "active" or not rem.trigger_at:
        return rem.priority

    priority = rem.priority
    for src, dst, threshold in ESCALATION_RULES:
        if priority == src and rem.trigger_at <= dt_to_iso(now - threshold):
            priority = dst
    return priority


def escalate(
    db: Database,
    reminders: Iterable[Reminder],
    now: datetime,
    *,
    preview: bool = False,
) -> List[Reminder]:
    """Return `reminders` with escalated priorities, persisting unless preview."""
    now_s = dt_to_iso(now)
    result: List[Reminder] = []

    for rem in reminders:
        new_priority = escalated_priority(rem, now)
        if new_priority != rem.priority:
            promoted = replace(rem, priority=new_priority, updated_at=now_s)
            if not preview:
                db.update_reminder(rem.id, {"priority": new_priority, "updated_at": now_s})
                db.record_history(rem.id, "escalated", rem, promoted, "system")
            logger.info(f"Escalated {rem.id[:8]} P{rem.priority} -> P{new_priority}")
            rem = promoted
        result.append(rem)

    return result
