"""
Budget allocation — choose which due reminders to surface.

The budget is given in abstract units (roughly tokens); one unit is four
characters. Packing is a single greedy pass in priority order:

    P1  always included
    P2  included while the running total stays within 60% of the ceiling
    P3  included while the running total stays within 85% of the ceiling
    P4  never included, always counted as overflow
    P5  dropped silently

Once a tier crosses its threshold every later candidate in that tier
overflows, even one that would fit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..core.dates import truncate
from ..core.models import Reminder

DEFAULT_BUDGET = 800
CHARS_PER_UNIT = 4
ENTRY_OVERHEAD = 30

CONTENT_LIMITS: Dict[int, int] = {1: 200, 2: 100, 3: 60, 4: 0, 5: 0}
TIER_SHARES: Dict[int, float] = {2: 0.60, 3: 0.85}


def empty_overflow() -> Dict[int, int]:
    return {p: 0 for p in range(1, 6)}


@dataclass
class Allocation:
    included: List[Reminder] = field(default_factory=list)
    overflow_counts: Dict[int, int] = field(default_factory=empty_overflow)
    total_triggered: int = 0

    @property
    def overflow_total(self) -> int:
        return sum(self.overflow_counts.values())


def entry_size(rem: Reminder) -> int:
    limit = CONTENT_LIMITS.get(rem.priority, 0)
    return len(truncate(rem.content, limit)) + ENTRY_OVERHEAD


def allocate(candidates: Iterable[Reminder], budget: int = DEFAULT_BUDGET) -> Allocation:
    ceiling = (budget or DEFAULT_BUDGET) * CHARS_PER_UNIT

    # Stable sort keeps evaluation order within a tier.
    ordered = sorted(candidates, key=lambda r: r.priority)
    result = Allocation(total_triggered=len(ordered))
    used = 0
    closed = set()

    for rem in ordered:
        p = rem.priority
        if p >= 5:
            continue
        if p == 4:
            result.overflow_counts[4] += 1
            continue

        size = entry_size(rem)
        if p <= 1:
            result.included.append(rem)
            used += size
        elif p not in closed and used + size <= ceiling * TIER_SHARES[p]:
            result.included.append(rem)
            used += size
        else:
            closed.add(p)
            result.overflow_counts[p] += 1

    return result
