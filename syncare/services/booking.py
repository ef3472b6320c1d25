"""
Booking writes guarded by the conflict check.

The check and the insert run inside the store's per-owner lock so two
concurrent requests for the same practitioner or resource cannot both pass
the check and both insert.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ..domain.conflicts import ProposedBooking
from ..domain.exceptions import InvalidRequest
from ..domain.models import Appointment, AppointmentStatus, Interval
from .scheduling import SchedulingService, SchedulingStore

logger = logging.getLogger(__name__)


class BookingStore(SchedulingStore, Protocol):
    """Protocol describing the storage writes needed for booking."""

    def owner_lock(
        self,
        practitioner_id: int,
        resource_id: Optional[int] = None,
    ) -> AbstractContextManager[None]:
        """Serialize check-and-write sequences per practitioner and resource."""

    def get_appointment(self, appointment_id: int) -> Appointment:
        """Return an appointment or raise ``RecordNotFound``."""

    def insert_appointment(
        self,
        *,
        patient_id: int,
        practitioner_id: int,
        interval: Interval,
        resource_id: Optional[int] = None,
        pathology: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Persist a new confirmed appointment."""

    def set_appointment_status(
        self,
        appointment_id: int,
        status: AppointmentStatus,
    ) -> Appointment:
        """Persist a status transition."""

    def add_notification(self, message: str, kind: str = "info") -> object:
        """Record a notification for staff."""

    def transaction(self) -> AbstractContextManager[None]:
        """Persist the enclosed writes together or not at all."""


@dataclass
class BookingResult:
    """Outcome of a booking attempt. A conflict is a result, not an error."""
    accepted: bool
    appointment: Optional[Appointment] = None
    conflicts: List[Appointment] = field(default_factory=list)


class BookingService:
    """Books, cancels and reschedules appointments without double-booking."""

    def __init__(
        self,
        store: BookingStore,
        scheduling: Optional[SchedulingService] = None,
        notify: bool = True,
    ) -> None:
        self._store = store
        self._scheduling = scheduling or SchedulingService(store)
        self._notify = notify

    def book(
        self,
        *,
        patient_id: int,
        practitioner_id: int,
        interval: Interval,
        resource_id: Optional[int] = None,
        pathology: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        """
        Book an appointment unless it collides with an existing one.

        Returns:
            BookingResult with the new appointment, or the conflicting ones
        """
        proposed = ProposedBooking(
            practitioner_id=practitioner_id,
            interval=interval,
            resource_id=resource_id,
        )

        with self._store.owner_lock(practitioner_id, resource_id):
            conflicts = self._scheduling.find_conflicts(proposed)
            if conflicts:
                logger.info(
                    "Booking rejected for practitioner %s at %s: %s conflict(s)",
                    practitioner_id,
                    interval,
                    len(conflicts),
                )
                return BookingResult(accepted=False, conflicts=conflicts)

            appointment = self._store.insert_appointment(
                patient_id=patient_id,
                practitioner_id=practitioner_id,
                interval=interval,
                resource_id=resource_id,
                pathology=pathology,
                notes=notes,
            )

        logger.info("Booked appointment %s for practitioner %s", appointment.id, practitioner_id)
        if self._notify:
            self._store.add_notification(
                f"Appointment confirmed: patient #{patient_id} with practitioner #{practitioner_id}",
                "booking",
            )
        return BookingResult(accepted=True, appointment=appointment)

    def cancel(self, appointment_id: int) -> Appointment:
        """
        Cancel an appointment. Cancelling twice is a no-op.

        Raises:
            RecordNotFound: If the appointment does not exist
        """
        # Owners never change, so an unlocked read is enough to pick the locks.
        appointment = self._store.get_appointment(appointment_id)

        with self._store.owner_lock(appointment.practitioner_id, appointment.resource_id):
            current = self._store.get_appointment(appointment_id)
            if not current.is_active:
                return current
            cancelled = self._store.set_appointment_status(appointment_id, AppointmentStatus.CANCELLED)

        logger.info("Cancelled appointment %s", appointment_id)
        if self._notify:
            self._store.add_notification(
                f"Appointment #{appointment_id} cancelled",
                "cancellation",
            )
        return cancelled

    def reschedule(self, appointment_id: int, interval: Interval) -> BookingResult:
        """
        Move an appointment by cancelling it and booking a replacement.

        The original keeps its confirmed status when the new interval
        collides with another appointment.

        Raises:
            RecordNotFound: If the appointment does not exist
            InvalidRequest: If the appointment is already cancelled
        """
        appointment = self._store.get_appointment(appointment_id)

        with self._store.owner_lock(appointment.practitioner_id, appointment.resource_id):
            original = self._store.get_appointment(appointment_id)
            if not original.is_active:
                raise InvalidRequest(f"Appointment {appointment_id} is cancelled and cannot be rescheduled")

            proposed = ProposedBooking(
                practitioner_id=original.practitioner_id,
                interval=interval,
                resource_id=original.resource_id,
            )
            conflicts = self._scheduling.find_conflicts(proposed, exclude_id=original.id)
            if conflicts:
                logger.info(
                    "Reschedule of appointment %s rejected: %s conflict(s)",
                    appointment_id,
                    len(conflicts),
                )
                return BookingResult(accepted=False, appointment=original, conflicts=conflicts)

            with self._store.transaction():
                self._store.set_appointment_status(original.id, AppointmentStatus.CANCELLED)
                replacement = self._store.insert_appointment(
                    patient_id=original.patient_id,
                    practitioner_id=original.practitioner_id,
                    interval=interval,
                    resource_id=original.resource_id,
                    pathology=original.pathology,
                    notes=original.notes,
                )

        logger.info("Rescheduled appointment %s as %s", original.id, replacement.id)
        if self._notify:
            self._store.add_notification(
                f"Appointment #{original.id} moved to #{replacement.id}",
                "booking",
            )
        return BookingResult(accepted=True, appointment=replacement)
