"""
Slot generation: cut free intervals into fixed-length appointment candidates.
"""

import math
from typing import List, Optional

from .exceptions import InvalidRequest
from .models import Interval


class SlotGenerator:
    """
    Walks a free interval in fixed increments and emits candidate slots.

    With the default step (``step_minutes=None``) the cursor advances by the
    requested duration, which yields back-to-back, non-overlapping slots and
    a reproducible candidate list. A smaller explicit step offers more start
    times at the cost of overlapping candidates.
    """

    def __init__(self, step_minutes: Optional[int] = None):
        if step_minutes is not None and step_minutes <= 0:
            raise InvalidRequest(f"step_minutes must be positive, got {step_minutes}")
        self.step_minutes = step_minutes

    def step_for(self, duration_minutes: int) -> int:
        """Return the cursor increment used for a given slot duration."""
        return self.step_minutes or duration_minutes

    def generate(
        self,
        free: Interval,
        duration_minutes: int,
        window: Interval,
        remaining: int,
    ) -> List[Interval]:
        """
        Generate slots fully inside ``free`` and ``window``.

        Args:
            free: A free interval produced by the free-time calculation
            duration_minutes: Length of every slot
            window: The requested search window
            remaining: Capacity left before the overall limit is reached

        Returns:
            Chronologically ordered slots; ``len(result)`` is the capacity used
        """
        if duration_minutes <= 0:
            raise InvalidRequest(f"duration_minutes must be positive, got {duration_minutes}")

        slots: List[Interval] = []
        if remaining <= 0:
            return slots

        step = self.step_for(duration_minutes)
        cursor = free.start

        # Every position before the window start would be skipped anyway,
        # so jump straight to the first one on the step grid inside it.
        if cursor < window.start:
            gap_seconds = (window.start - cursor).total_seconds()
            steps = math.ceil(gap_seconds / (step * 60))
            cursor = cursor.add(minutes=steps * step)

        slot_end = cursor.add(minutes=duration_minutes)

        while slot_end <= free.end:
            if slot_end > window.end:
                # Later positions only end further out.
                break

            slots.append(Interval(start=cursor, end=slot_end))
            if len(slots) >= remaining:
                break

            cursor = cursor.add(minutes=step)
            slot_end = cursor.add(minutes=duration_minutes)

        return slots
