"""
Conflict detection for booking writes.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import Appointment, Interval


@dataclass(frozen=True)
class ProposedBooking:
    """An interval someone wants to book for a practitioner (and resource)."""
    practitioner_id: int
    interval: Interval
    resource_id: Optional[int] = None


class ConflictChecker:
    """
    Decides whether a proposed booking collides with existing appointments.

    An existing appointment collides when it is not cancelled, belongs to the
    same practitioner or holds the same (non-null) resource, and its interval
    overlaps the proposal. Back-to-back bookings never collide.
    """

    @staticmethod
    def is_same_owner(proposed: ProposedBooking, appointment: Appointment) -> bool:
        if appointment.practitioner_id == proposed.practitioner_id:
            return True
        return proposed.resource_id is not None and appointment.resource_id == proposed.resource_id

    def find_conflicts(
        self,
        proposed: ProposedBooking,
        existing: Iterable[Appointment],
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        """
        Return the existing appointments the proposal collides with.

        Args:
            proposed: The booking to check
            existing: Snapshot of appointments; cancelled ones are ignored
            exclude_id: Appointment id to leave out, used when rescheduling

        Returns:
            Colliding appointments ordered by start time, without duplicates
        """
        conflicts: List[Appointment] = []
        seen: set[int] = set()

        for appointment in existing:
            if appointment.id == exclude_id or appointment.id in seen:
                continue
            if not appointment.is_active:
                continue
            if not self.is_same_owner(proposed, appointment):
                continue
            if appointment.interval.overlaps(proposed.interval):
                conflicts.append(appointment)
                seen.add(appointment.id)

        return sorted(conflicts, key=lambda a: a.interval.start)

    def has_conflict(
        self,
        proposed: ProposedBooking,
        existing: Iterable[Appointment],
        exclude_id: Optional[int] = None,
    ) -> bool:
        return bool(self.find_conflicts(proposed, existing, exclude_id=exclude_id))
