"""
Evaluation pipeline — triggers → escalation → gating → budget → fire counts.

One synchronous pass against an open Database. Store errors propagate;
per-reminder evaluation problems only make that reminder "not due".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from ..core.db import Database
from ..core.errors import ValidationError
from ..core.models import TRIGGER_KINDS, Reminder
from .budget import DEFAULT_BUDGET, empty_overflow, allocate
from .escalation import escalate
from .firing import record_fires
from .gating import gate_dependencies
from .triggers import DEFAULT_CONDITION_TIMEOUT, match_triggers, refresh_lifecycle

logger = logging.getLogger(__name__)

# Evaluated when no kinds are requested. Manual reminders are never auto-included.
ALL_KINDS = ("time", "keyword", "condition", "session", "heartbeat")
WATCH_KINDS = ("time", "heartbeat", "session", "condition")


@dataclass
class CheckResult:
    included: List[Reminder] = field(default_factory=list)
    overflow_counts: Dict[int, int] = field(default_factory=empty_overflow)
    total_triggered: int = 0


def parse_kinds(kinds: Union[None, str, Iterable[str]]) -> List[str]:
    """Accept "time,keyword", an iterable, or None (all automatic kinds)."""
    if kinds is None:
        return list(ALL_KINDS)
    if isinstance(kinds, str):
        kinds = kinds.split(",")
    result = [k.strip() for k in kinds if k and k.strip()]
    unknown = [k for k in result if k not in TRIGGER_KINDS]
    if unknown:
        raise ValidationError(
            f"Invalid trigger type(s): {', '.join(unknown)}. "
            f"Must be one of: {', '.join(TRIGGER_KINDS)}"
        )
    return result


def evaluate(
    db: Database,
    *,
    now: Optional[datetime] = None,
    kinds: Union[None, str, Iterable[str]] = None,
    agent: str = "main",
    text: Optional[str] = None,
    budget: int = DEFAULT_BUDGET,
    escalate_overdue: bool = False,
    preview: bool = False,
    condition_timeout: float = DEFAULT_CONDITION_TIMEOUT,
) -> CheckResult:
    """
    Run the full evaluation pipeline once.

    Args:
        now: Evaluation time (default: current local time)
        kinds: Trigger kinds to evaluate
        agent: Agent namespace
        text: Message text for keyword triggers
        budget: Size allowance in units (x4 = characters)
        escalate_overdue: Promote overdue time reminders first
        preview: Run everything but write nothing

    Returns:
        CheckResult with included reminders (fire counts updated unless
        preview), per-priority overflow counts and the triggered total.
    """
    now = (now or datetime.now()).replace(microsecond=0)
    requested = parse_kinds(kinds)

    active = refresh_lifecycle(db, agent, now, preview=preview)
    if escalate_overdue:
        active = escalate(db, active, now, preview=preview)

    due = match_triggers(active, requested, now, text, condition_timeout=condition_timeout)
    due = gate_dependencies(db, due)
    if not due:
        return CheckResult()

    allocation = allocate(due, budget)
    included = record_fires(db, allocation.included, now, preview=preview)

    logger.debug(
        f"evaluate agent={agent} kinds={','.join(requested)}: "
        f"{allocation.total_triggered} triggered, {len(included)} included, "
        f"{allocation.overflow_total} overflow"
    )
    return CheckResult(
        included=included,
        overflow_counts=allocation.overflow_counts,
        total_triggered=allocation.total_triggered,
    )
