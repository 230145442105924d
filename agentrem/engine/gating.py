"""Dependency gating: a reminder waits until the one it depends on is completed."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from ..core.db import Database
from ..core.models import Reminder

logger = logging.getLogger(__name__)


def gate_dependencies(db: Database, candidates: Iterable[Reminder]) -> List[Reminder]:
    # No cycle detection: mutually dependent reminders both stay blocked.
    statuses: Dict[str, Optional[str]] = {}
    passed: List[Reminder] = []

    for rem in candidates:
        dep_id = rem.depends_on
        if not dep_id:
            passed.append(rem)
            continue

        if dep_id not in statuses:
            dep = db.get_reminder(dep_id)
            statuses[dep_id] = dep.status if dep else None

        if statuses[dep_id] == "completed":
            passed.append(rem)
        else:
            logger.debug(f"{rem.id[:8]} blocked on {dep_id[:8]} ({statuses[dep_id]})")

    return passed
