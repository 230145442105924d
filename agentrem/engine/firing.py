"""Fire-count bookkeeping and auto-completion at the fire cap."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List

from ..core.dates import dt_to_iso
from ..core.db import Database
from ..core.models import Reminder

logger = logging.getLogger(__name__)


def record_fires(
    db: Database,
    included: Iterable[Reminder],
    now: datetime,
    *,
    preview: bool = False,
) -> List[Reminder]:
    """
    Stamp every included reminder as fired.

    A reminder whose new fire count reaches max_fires is completed.
    Returns the updated copies; preview returns the input unchanged.
    """
    included = list(included)
    if preview:
        return included

    now_s = dt_to_iso(now)
    fired: List[Reminder] = []

    for rem in included:
        count = (rem.fire_count or 0) + 1
        db.update_reminder(
            rem.id, {"fire_count": count, "last_fired": now_s, "updated_at": now_s}
        )
        updated = replace(rem, fire_count=count, last_fired=now_s, updated_at=now_s)

        if rem.max_fires and count >= rem.max_fires:
            db.update_reminder(
                rem.id,
                {"status": "completed", "completed_at": now_s, "updated_at": now_s},
            )
            done = replace(updated, status="completed", completed_at=now_s)
            db.record_history(rem.id, "completed", rem, done, "system")
            logger.info(f"Auto-completed {rem.id[:8]} after {count} fires")
            updated = done

        fired.append(updated)

    return fired
