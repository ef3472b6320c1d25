"""
Tests for the SchedulingService orchestration layer.
"""

from typing import Dict, List, Optional

import pendulum
import pytest

from syncare.domain.conflicts import ProposedBooking
from syncare.domain.exceptions import InvalidInterval, InvalidRequest
from syncare.domain.models import Appointment, Availability, Interval, MatchRequest
from syncare.domain.slot_generator import SlotGenerator
from syncare.services.scheduling import SchedulingService


def at(hhmm: str, day: str = "2024-11-25") -> pendulum.DateTime:
    return pendulum.parse(f"{day} {hhmm}", tz="UTC")


def span(start: str, end: str, day: str = "2024-11-25") -> Interval:
    return Interval(start=at(start, day), end=at(end, day))


class StubStore:
    """Minimal stub matching SchedulingStore, filtering like a real store."""

    def __init__(
        self,
        availability: Optional[List[Interval]] = None,
        busy: Optional[List[Appointment]] = None,
    ):
        self._availability = [
            Availability(id=i, practitioner_id=1, interval=interval)
            for i, interval in enumerate(availability or [], start=1)
        ]
        self._busy = busy or []
        self.calls: List[Dict[str, object]] = []

    def list_availability(self, practitioner_id, start, end):
        self.calls.append({"method": "list_availability", "start": start, "end": end})
        return [
            a for a in self._availability
            if a.practitioner_id == practitioner_id and a.interval.start < end and start < a.interval.end
        ]

    def list_busy(self, practitioner_id, start, end):
        self.calls.append({"method": "list_busy", "start": start, "end": end})
        return [
            a for a in self._busy
            if a.practitioner_id == practitioner_id and a.is_active
            and a.interval.start < end and start < a.interval.end
        ]

    def list_resource_busy(self, resource_id, start, end):
        self.calls.append({"method": "list_resource_busy", "resource_id": resource_id})
        return [
            a for a in self._busy
            if a.resource_id == resource_id and a.is_active
            and a.interval.start < end and start < a.interval.end
        ]


def _appointment(appointment_id: int, interval: Interval, practitioner_id: int = 1, resource_id=None) -> Appointment:
    return Appointment(
        id=appointment_id,
        patient_id=1,
        practitioner_id=practitioner_id,
        interval=interval,
        resource_id=resource_id,
    )


def _build_service(store: StubStore, **kwargs) -> SchedulingService:
    return SchedulingService(store=store, clock=lambda: at("08:00"), **kwargs)


class TestComputeFreeSlots:
    """Tests for compute_free_slots."""

    def test_morning_with_one_booking(self):
        """Availability 09-12, busy 10:00-10:30, 30 minute slots."""
        store = StubStore(
            availability=[span("09:00", "12:00")],
            busy=[_appointment(1, span("10:00", "10:30"))],
        )
        service = _build_service(store)

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=30,
                window_start=at("00:00"),
                window_end=at("23:59"),
                limit=10,
            )
        )

        assert [s.interval for s in slots] == [
            span("09:00", "09:30"),
            span("09:30", "10:00"),
            span("10:30", "11:00"),
            span("11:00", "11:30"),
            span("11:30", "12:00"),
        ]
        assert all(s.practitioner_id == 1 for s in slots)

    def test_limit_is_respected_across_availabilities(self):
        store = StubStore(
            availability=[span("09:00", "10:00", day="2024-11-26"), span("09:00", "10:00")],
        )
        service = _build_service(store)

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=20,
                window_start=at("00:00"),
                window_end=at("23:00", day="2024-11-27"),
                limit=4,
            )
        )

        assert [s.interval for s in slots] == [
            span("09:00", "09:20"),
            span("09:20", "09:40"),
            span("09:40", "10:00"),
            span("09:00", "09:20", day="2024-11-26"),
        ]

    def test_default_window_starts_now_and_spans_two_weeks(self):
        store = StubStore(
            availability=[
                span("06:00", "07:00"),                    # before "now"
                span("09:00", "09:30", day="2024-12-02"),  # inside two weeks
                span("09:00", "09:30", day="2024-12-20"),  # beyond two weeks
            ],
        )
        service = _build_service(store)

        slots = service.compute_free_slots(MatchRequest(practitioner_id=1, duration_minutes=30))

        assert [s.interval for s in slots] == [span("09:00", "09:30", day="2024-12-02")]
        assert store.calls[0]["start"] == at("08:00")
        assert store.calls[0]["end"] == at("08:00", day="2024-12-09")

    def test_default_limit(self):
        store = StubStore(availability=[span("09:00", "17:00")])
        service = _build_service(store, default_limit=3)

        slots = service.compute_free_slots(
            MatchRequest(practitioner_id=1, duration_minutes=30, window_start=at("00:00"))
        )

        assert len(slots) == 3

    def test_overlapping_availability_yields_no_duplicates(self):
        store = StubStore(availability=[span("09:00", "10:00"), span("09:30", "11:00")])
        service = _build_service(store)

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=30,
                window_start=at("00:00"),
                window_end=at("23:00"),
                limit=10,
            )
        )

        starts = [s.interval.start for s in slots]
        assert starts == sorted(set(starts))
        assert [s.interval for s in slots] == [
            span("09:00", "09:30"),
            span("09:30", "10:00"),
            span("10:00", "10:30"),
            span("10:30", "11:00"),
        ]

    def test_window_clips_availability(self):
        store = StubStore(availability=[span("09:00", "12:00")])
        service = _build_service(store)

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=60,
                window_start=at("09:30"),
                window_end=at("11:30"),
                limit=10,
            )
        )

        assert [s.interval for s in slots] == [span("10:00", "11:00")]

    def test_no_availability(self):
        service = _build_service(StubStore())

        slots = service.compute_free_slots(
            MatchRequest(practitioner_id=1, duration_minutes=30, window_start=at("00:00"))
        )

        assert slots == []

    def test_slots_stay_inside_free_time_and_window(self):
        busy = [
            _appointment(1, span("09:40", "10:10")),
            _appointment(2, span("12:00", "13:00")),
            _appointment(3, span("12:30", "13:30")),
        ]
        store = StubStore(availability=[span("08:00", "16:00")], busy=busy)
        service = _build_service(store)
        window = span("08:30", "15:00")

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=40,
                window_start=window.start,
                window_end=window.end,
                limit=50,
            )
        )

        assert slots
        for slot in slots:
            assert slot.interval.duration_minutes() == 40
            assert window.contains(slot.interval)
            assert not any(slot.interval.overlaps(b.interval) for b in busy)
        for earlier, later in zip(slots, slots[1:]):
            assert earlier.interval.start < later.interval.start

    def test_inverted_window_rejected(self):
        service = _build_service(StubStore())

        with pytest.raises(InvalidInterval):
            service.compute_free_slots(
                MatchRequest(
                    practitioner_id=1,
                    duration_minutes=30,
                    window_start=at("12:00"),
                    window_end=at("09:00"),
                )
            )

    def test_custom_step_generator(self):
        store = StubStore(availability=[span("09:00", "10:00")])
        service = _build_service(store, slot_generator=SlotGenerator(step_minutes=15))

        slots = service.compute_free_slots(
            MatchRequest(
                practitioner_id=1,
                duration_minutes=30,
                window_start=at("00:00"),
                window_end=at("23:00"),
                limit=10,
            )
        )

        assert [s.interval.start for s in slots] == [at("09:00"), at("09:15"), at("09:30")]

    def test_invalid_defaults_rejected(self):
        with pytest.raises(InvalidRequest):
            SchedulingService(store=StubStore(), default_limit=0)


class TestCheckConflict:
    """Tests for check_conflict."""

    def test_overlapping_booking_conflicts(self):
        store = StubStore(busy=[_appointment(1, span("14:15", "14:45"))])
        service = _build_service(store)

        assert service.check_conflict(ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30")))

    def test_back_to_back_booking_is_free(self):
        store = StubStore(busy=[_appointment(1, span("14:30", "15:00"))])
        service = _build_service(store)

        assert not service.check_conflict(ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30")))

    def test_resource_snapshot_only_loaded_for_resource_bookings(self):
        store = StubStore(busy=[_appointment(1, span("14:00", "15:00"), practitioner_id=2, resource_id=5)])
        service = _build_service(store)

        assert not service.check_conflict(ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30")))
        assert [c["method"] for c in store.calls] == ["list_busy"]

        assert service.check_conflict(
            ProposedBooking(practitioner_id=1, interval=span("14:00", "14:30"), resource_id=5)
        )
        assert store.calls[-1] == {"method": "list_resource_busy", "resource_id": 5}
