"""
Tests for the conflict checker.
"""

from typing import Optional

import pendulum

from syncare.domain.conflicts import ConflictChecker, ProposedBooking
from syncare.domain.models import Appointment, AppointmentStatus, Interval


def span(start: str, end: str) -> Interval:
    return Interval(
        start=pendulum.parse(f"2024-11-25 {start}", tz="UTC"),
        end=pendulum.parse(f"2024-11-25 {end}", tz="UTC"),
    )


def _appointment(
    appointment_id: int,
    practitioner_id: int,
    interval: Interval,
    resource_id: Optional[int] = None,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
) -> Appointment:
    return Appointment(
        id=appointment_id,
        patient_id=100 + appointment_id,
        practitioner_id=practitioner_id,
        interval=interval,
        resource_id=resource_id,
        status=status,
    )


class TestConflictChecker:
    """Tests for ConflictChecker."""

    def test_overlap_with_same_practitioner_conflicts(self):
        """Proposed 14:00-14:30 against confirmed 14:15-14:45."""
        existing = [_appointment(1, practitioner_id=1, interval=span("14:15", "14:45"))]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"))

        assert ConflictChecker().has_conflict(proposed, existing)

    def test_cancelled_appointment_does_not_conflict(self):
        existing = [
            _appointment(
                1,
                practitioner_id=1,
                interval=span("14:15", "14:45"),
                status=AppointmentStatus.CANCELLED,
            )
        ]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"))

        assert not ConflictChecker().has_conflict(proposed, existing)

    def test_touching_endpoints_do_not_conflict(self):
        existing = [
            _appointment(1, practitioner_id=1, interval=span("13:30", "14:00")),
            _appointment(2, practitioner_id=1, interval=span("14:30", "15:00")),
        ]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"))

        assert not ConflictChecker().has_conflict(proposed, existing)

    def test_other_practitioner_without_resource_does_not_conflict(self):
        existing = [_appointment(1, practitioner_id=2, interval=span("14:00", "14:30"))]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"))

        assert not ConflictChecker().has_conflict(proposed, existing)

    def test_shared_resource_conflicts_across_practitioners(self):
        existing = [_appointment(1, practitioner_id=2, interval=span("14:00", "15:00"), resource_id=7)]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:30", "15:30"), resource_id=7)

        assert ConflictChecker().has_conflict(proposed, existing)

    def test_resource_rule_needs_a_resource_on_the_proposal(self):
        """An existing resource booking only blocks proposals for that resource."""
        existing = [_appointment(1, practitioner_id=2, interval=span("14:00", "15:00"), resource_id=7)]

        without_resource = ProposedBooking(practitioner_id=1, interval=span("14:30", "15:30"))
        other_resource = ProposedBooking(practitioner_id=1, interval=span("14:30", "15:30"), resource_id=8)

        assert not ConflictChecker().has_conflict(without_resource, existing)
        assert not ConflictChecker().has_conflict(other_resource, existing)

    def test_missing_resource_never_matches_missing_resource(self):
        existing = [_appointment(1, practitioner_id=2, interval=span("14:00", "15:00"))]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "15:00"), resource_id=None)

        assert not ConflictChecker().has_conflict(proposed, existing)

    def test_find_conflicts_sorted_and_deduplicated(self):
        late = _appointment(2, practitioner_id=1, interval=span("15:00", "16:00"), resource_id=7)
        early = _appointment(1, practitioner_id=1, interval=span("14:00", "15:00"))
        existing = [late, early, late]
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:30", "15:30"), resource_id=7)

        assert ConflictChecker().find_conflicts(proposed, existing) == [early, late]

    def test_exclude_id_skips_the_moved_appointment(self):
        current = _appointment(1, practitioner_id=1, interval=span("14:00", "14:30"))
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:15", "14:45"))

        assert ConflictChecker().has_conflict(proposed, [current])
        assert not ConflictChecker().has_conflict(proposed, [current], exclude_id=1)

    def test_empty_snapshot(self):
        proposed = ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"))

        assert not ConflictChecker().has_conflict(proposed, [])
