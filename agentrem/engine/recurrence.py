"""
Recurrence — create the next occurrence when a recurring reminder completes.

Successors point at the root of the chain (recur_parent_id is flattened,
never nested). Months are a fixed 30 days.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..core.dates import dt_to_iso, next_recurrence
from ..core.db import Database
from ..core.errors import ValidationError
from ..core.models import RecurRule, Reminder

logger = logging.getLogger(__name__)


def build_successor(rem: Reminder, now: datetime) -> Optional[Reminder]:
    """The next occurrence of `rem`, not yet stored. None if not recurring."""
    try:
        rule = RecurRule.from_json(rem.recur_rule)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Malformed recurrence rule on {rem.id}: {e}") from e
    if rule is None:
        return None

    next_due = next_recurrence(rem.trigger_at, rule, now=now)
    return Reminder(
        id="",
        content=rem.content,
        trigger_type=rem.trigger_type,
        trigger_at=dt_to_iso(next_due),
        trigger_config=rem.trigger_config,
        priority=rem.priority,
        context=rem.context,
        tags=rem.tags,
        category=rem.category,
        status="active",
        fire_count=0,
        max_fires=rem.max_fires,
        recur_rule=rem.recur_rule,
        recur_parent_id=rem.recur_parent_id or rem.id,
        depends_on=rem.depends_on,
        source=rem.source,
        agent=rem.agent,
    )


def schedule_next(db: Database, rem: Reminder, now: datetime) -> Optional[Reminder]:
    """Insert the successor of a just-completed recurring reminder."""
    successor = build_successor(rem, now)
    if successor is None:
        return None

    db.insert_reminder(successor)
    db.record_history(successor.id, "created", None, successor, "system")
    logger.info(
        f"Scheduled next occurrence {successor.id[:8]} of {rem.id[:8]} "
        f"at {successor.trigger_at}"
    )
    return successor
