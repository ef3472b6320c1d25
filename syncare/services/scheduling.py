"""
Application services for slot search and conflict checks.

The service loads availability and busy snapshots through an injected store
and delegates the interval work to the domain-level free-time calculation,
``SlotGenerator`` and ``ConflictChecker``. Nothing is remembered between
calls.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..domain.conflicts import ConflictChecker, ProposedBooking
from ..domain.exceptions import InvalidRequest
from ..domain.free_time import free_intervals, merge_intervals
from ..domain.models import Appointment, Availability, Interval, MatchRequest, SlotCandidate
from ..domain.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_WINDOW_DAYS = 14


class SchedulingStore(Protocol):
    """Protocol describing the storage reads needed by the scheduling engine."""

    def list_availability(
        self,
        practitioner_id: int,
        start: DateTime,
        end: DateTime,
    ) -> List[Availability]:
        """Return availability windows overlapping ``[start, end)``."""

    def list_busy(
        self,
        practitioner_id: int,
        start: DateTime,
        end: DateTime,
    ) -> List[Appointment]:
        """Return non-cancelled appointments of the practitioner overlapping ``[start, end)``."""

    def list_resource_busy(
        self,
        resource_id: int,
        start: DateTime,
        end: DateTime,
    ) -> List[Appointment]:
        """Return non-cancelled appointments holding the resource overlapping ``[start, end)``."""


class SchedulingService:
    """
    Orchestrates snapshot retrieval, free-time calculation and slot generation.

    Dependency inversion toward a protocol makes it easy to plug in the JSON
    record store or a stub in tests.
    """

    def __init__(
        self,
        store: SchedulingStore,
        slot_generator: Optional[SlotGenerator] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        default_limit: int = DEFAULT_LIMIT,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        if default_limit <= 0:
            raise InvalidRequest(f"default_limit must be positive, got {default_limit}")
        if default_window_days <= 0:
            raise InvalidRequest(f"default_window_days must be positive, got {default_window_days}")

        self._store = store
        self._slot_generator = slot_generator or SlotGenerator()
        self._conflict_checker = conflict_checker or ConflictChecker()
        self._default_limit = default_limit
        self._default_window_days = default_window_days
        self._clock = clock or (lambda: pendulum.now("UTC"))

    def resolve_window(self, request: MatchRequest) -> Interval:
        """
        Apply the window defaults: start now, end two weeks later.

        Raises:
            InvalidInterval: If the resulting window is empty
        """
        window_start = request.window_start or self._clock()
        window_end = request.window_end or window_start.add(days=self._default_window_days)
        return Interval(start=window_start, end=window_end)

    def compute_free_slots(self, request: MatchRequest) -> List[SlotCandidate]:
        """
        Suggest bookable slots for one practitioner.

        Returns:
            At most ``limit`` candidates, strictly increasing by start time
        """
        window = self.resolve_window(request)
        limit = request.limit or self._default_limit

        availabilities = self._store.list_availability(
            request.practitioner_id, window.start, window.end
        )
        busy = self._store.list_busy(request.practitioner_id, window.start, window.end)

        # Overlapping declarations would otherwise produce duplicate slots.
        availability_ranges = merge_intervals(a.interval for a in availabilities)

        candidates: List[SlotCandidate] = []

        for availability in availability_ranges:
            if availability.end <= window.start or availability.start >= window.end:
                continue

            for free in free_intervals(availability, busy):
                slots = self._slot_generator.generate(
                    free=free,
                    duration_minutes=request.duration_minutes,
                    window=window,
                    remaining=limit - len(candidates),
                )
                candidates.extend(
                    SlotCandidate(interval=slot, practitioner_id=request.practitioner_id)
                    for slot in slots
                )

                if len(candidates) >= limit:
                    logger.debug(
                        "Slot limit %s reached for practitioner %s",
                        limit,
                        request.practitioner_id,
                    )
                    return candidates

        logger.debug(
            "Found %s slot(s) for practitioner %s in %s",
            len(candidates),
            request.practitioner_id,
            window,
        )
        return candidates

    def find_conflicts(
        self,
        proposed: ProposedBooking,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        """Return the existing appointments a proposed booking collides with."""
        start, end = proposed.interval.start, proposed.interval.end

        existing = list(self._store.list_busy(proposed.practitioner_id, start, end))
        if proposed.resource_id is not None:
            existing.extend(self._store.list_resource_busy(proposed.resource_id, start, end))

        return self._conflict_checker.find_conflicts(proposed, existing, exclude_id=exclude_id)

    def check_conflict(self, proposed: ProposedBooking, exclude_id: Optional[int] = None) -> bool:
        """Return True when the proposed booking would double-book its owner."""
        return bool(self.find_conflicts(proposed, exclude_id=exclude_id))
