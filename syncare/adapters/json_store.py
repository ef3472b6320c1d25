"""
Record store for patients, practitioners, availability and appointments.

Records live in memory and, when a path is given, are mirrored to a JSON
document after every write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import InvalidRequest, RecordNotFound, StorageError
from ..domain.models import Appointment, AppointmentStatus, Availability, Interval, format_instant
from ..domain.records import Notification, Patient, Practitioner, Resource, record_to_dict

logger = logging.getLogger(__name__)

_TABLES = ("patients", "practitioners", "resources", "availabilities", "appointments", "notifications")


def _overlaps_window(interval: Interval, start: DateTime, end: DateTime) -> bool:
    """
    Strict overlap with the window ``[start, end)``.

    A record that only touches the window, such as a booking ending exactly at
    the window start, is left out. The slot grid is then anchored on the
    availability and the bookings inside the window only.
    """
    return interval.start < end and start < interval.end


class JsonRecordStore:
    """
    Simple record store exposing create/list/filter-by-owner operations.

    Implements the ``SchedulingStore`` and ``BookingStore`` protocols. The
    ``owner_lock`` context manager serializes check-and-insert sequences per
    practitioner and per resource.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None

        self._lock = threading.RLock()
        self._registry_lock = threading.Lock()
        self._owner_locks: Dict[Tuple[str, int], threading.Lock] = {}

        self._patients: Dict[int, Patient] = {}
        self._practitioners: Dict[int, Practitioner] = {}
        self._resources: Dict[int, Resource] = {}
        self._availabilities: Dict[int, Availability] = {}
        self._appointments: Dict[int, Appointment] = {}
        self._notifications: Dict[int, Notification] = {}
        self._next_ids: Dict[str, int] = {table: 1 for table in _TABLES}
        self._in_transaction = False

        if self.path is not None and self.path.exists():
            self._load()

    # Persistence

    def _load(self) -> None:
        """Load records from the JSON document."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Could not read store file {self.path}: {exc}") from exc

        if not isinstance(data, dict):
            raise StorageError(f"Store file {self.path} must contain a JSON object")

        try:
            for row in data.get("patients", []):
                self._patients[row["id"]] = Patient(**row)
            for row in data.get("practitioners", []):
                self._practitioners[row["id"]] = Practitioner(**row)
            for row in data.get("resources", []):
                self._resources[row["id"]] = Resource(**row)
            for row in data.get("availabilities", []):
                availability = Availability.from_dict(row)
                self._availabilities[availability.id] = availability
            for row in data.get("appointments", []):
                appointment = Appointment.from_dict(row)
                self._appointments[appointment.id] = appointment
            for row in data.get("notifications", []):
                self._notifications[row["id"]] = Notification(**row)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Corrupt record in store file {self.path}: {exc}") from exc

        for table in _TABLES:
            rows = getattr(self, f"_{table}")
            self._next_ids[table] = max(rows, default=0) + 1

        logger.debug("Loaded store from %s", self.path)

    def _save(self) -> None:
        """Write all records to the JSON document, replacing it atomically."""
        if self.path is None:
            return

        data: Dict[str, Any] = {
            "patients": [record_to_dict(r) for r in self._patients.values()],
            "practitioners": [record_to_dict(r) for r in self._practitioners.values()],
            "resources": [record_to_dict(r) for r in self._resources.values()],
            "availabilities": [a.to_dict() for a in self._availabilities.values()],
            "appointments": [a.to_dict() for a in self._appointments.values()],
            "notifications": [record_to_dict(r) for r in self._notifications.values()],
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".syncare-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("Could not write store file %s: %s", self.path, exc)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Could not write store file {self.path}: {exc}") from exc

    def _next_id(self, table: str) -> int:
        next_id = self._next_ids[table]
        self._next_ids[table] = next_id + 1
        return next_id

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group writes so they are persisted together.

        The document is written once, when the outermost block exits. If the
        block or the write fails, the in-memory records and id counters are
        restored so a failed write leaves no trace.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            snapshot = {table: dict(getattr(self, f"_{table}")) for table in _TABLES}
            next_ids = dict(self._next_ids)
            self._in_transaction = True
            try:
                yield
                self._save()
            except Exception:
                for table, rows in snapshot.items():
                    setattr(self, f"_{table}", rows)
                self._next_ids = next_ids
                raise
            finally:
                self._in_transaction = False

    # Owner serialization

    def _owner_lock_for(self, key: Tuple[str, int]) -> threading.Lock:
        with self._registry_lock:
            lock = self._owner_locks.get(key)
            if lock is None:
                lock = self._owner_locks[key] = threading.Lock()
            return lock

    @contextmanager
    def owner_lock(self, practitioner_id: int, resource_id: Optional[int] = None) -> Iterator[None]:
        """
        Hold the locks of a practitioner and, if given, a resource.

        Locks are always taken in the same order so two bookings that share
        an owner cannot deadlock.
        """
        keys = [("practitioner", practitioner_id)]
        if resource_id is not None:
            keys.append(("resource", resource_id))
        locks = [self._owner_lock_for(key) for key in sorted(keys)]

        acquired: List[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    # Directory records

    def create_patient(
        self,
        first_name: str,
        last_name: str,
        pathology: Optional[str] = None,
        notes: Optional[str] = None,
        date_of_birth: Optional[str] = None,
    ) -> Patient:
        with self.transaction():
            patient = Patient(
                id=self._next_id("patients"),
                first_name=first_name,
                last_name=last_name,
                pathology=pathology,
                notes=notes,
                date_of_birth=date_of_birth,
            )
            self._patients[patient.id] = patient
        return patient

    def list_patients(self) -> List[Patient]:
        with self._lock:
            return sorted(self._patients.values(), key=lambda p: (p.last_name.lower(), p.first_name.lower()))

    def search_patients(self, query: str) -> List[Patient]:
        """Find patients whose first or last name contains ``query``."""
        if not query.strip():
            return []
        return [p for p in self.list_patients() if p.matches(query)]

    def create_practitioner(self, full_name: str, specialty: Optional[str] = None) -> Practitioner:
        with self.transaction():
            practitioner = Practitioner(
                id=self._next_id("practitioners"),
                full_name=full_name,
                specialty=specialty,
            )
            self._practitioners[practitioner.id] = practitioner
        return practitioner

    def list_practitioners(self) -> List[Practitioner]:
        with self._lock:
            return sorted(self._practitioners.values(), key=lambda p: p.id)

    def create_resource(self, name: str, type: Optional[str] = None) -> Resource:
        with self.transaction():
            resource = Resource(id=self._next_id("resources"), name=name, type=type)
            self._resources[resource.id] = resource
        return resource

    def list_resources(self) -> List[Resource]:
        with self._lock:
            return sorted(self._resources.values(), key=lambda r: r.id)

    def _require(self, table: Dict[int, Any], record_id: int, label: str) -> Any:
        record = table.get(record_id)
        if record is None:
            raise RecordNotFound(f"Unknown {label} id {record_id}")
        return record

    # Availability

    def create_availability(self, practitioner_id: int, interval: Interval) -> Availability:
        with self.transaction():
            self._require(self._practitioners, practitioner_id, "practitioner")
            availability = Availability(
                id=self._next_id("availabilities"),
                practitioner_id=practitioner_id,
                interval=interval,
                created_at=pendulum.now("UTC"),
            )
            self._availabilities[availability.id] = availability
        return availability

    def delete_availability(self, availability_id: int) -> None:
        with self.transaction():
            self._require(self._availabilities, availability_id, "availability")
            del self._availabilities[availability_id]

    def list_availabilities(self, practitioner_id: Optional[int] = None) -> List[Availability]:
        with self._lock:
            rows = [
                a for a in self._availabilities.values()
                if practitioner_id is None or a.practitioner_id == practitioner_id
            ]
        return sorted(rows, key=lambda a: (a.interval.start, a.id))

    def list_availability(self, practitioner_id: int, start: DateTime, end: DateTime) -> List[Availability]:
        return [
            a for a in self.list_availabilities(practitioner_id)
            if _overlaps_window(a.interval, start, end)
        ]

    # Appointments

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
        with self.transaction():
            self._require(self._patients, patient_id, "patient")
            self._require(self._practitioners, practitioner_id, "practitioner")
            if resource_id is not None:
                self._require(self._resources, resource_id, "resource")

            appointment = Appointment(
                id=self._next_id("appointments"),
                patient_id=patient_id,
                practitioner_id=practitioner_id,
                interval=interval,
                resource_id=resource_id,
                pathology=pathology,
                notes=notes,
                created_at=pendulum.now("UTC"),
            )
            self._appointments[appointment.id] = appointment
        return appointment

    def get_appointment(self, appointment_id: int) -> Appointment:
        with self._lock:
            return self._require(self._appointments, appointment_id, "appointment")

    def set_appointment_status(self, appointment_id: int, status: AppointmentStatus) -> Appointment:
        """Apply a status transition. Cancelled appointments cannot be confirmed again."""
        with self.transaction():
            appointment = self._require(self._appointments, appointment_id, "appointment")
            if appointment.status is AppointmentStatus.CANCELLED and status is not AppointmentStatus.CANCELLED:
                raise InvalidRequest(f"Appointment {appointment_id} is cancelled")

            updated = replace(appointment, status=status)
            self._appointments[appointment_id] = updated
        return updated

    def list_appointments(
        self,
        practitioner_id: Optional[int] = None,
        patient_id: Optional[int] = None,
    ) -> List[Appointment]:
        with self._lock:
            rows = [
                a for a in self._appointments.values()
                if (practitioner_id is None or a.practitioner_id == practitioner_id)
                and (patient_id is None or a.patient_id == patient_id)
            ]
        return sorted(rows, key=lambda a: (a.interval.start, a.id))

    def list_busy(self, practitioner_id: int, start: DateTime, end: DateTime) -> List[Appointment]:
        return [
            a for a in self.list_appointments(practitioner_id=practitioner_id)
            if a.is_active and _overlaps_window(a.interval, start, end)
        ]

    def list_resource_busy(self, resource_id: int, start: DateTime, end: DateTime) -> List[Appointment]:
        return [
            a for a in self.list_appointments()
            if a.resource_id == resource_id and a.is_active and _overlaps_window(a.interval, start, end)
        ]

    # Notifications

    def add_notification(self, message: str, kind: str = "info") -> Notification:
        with self.transaction():
            notification = Notification(
                id=self._next_id("notifications"),
                message=message,
                kind=kind,
                created_at=format_instant(pendulum.now("UTC")),
            )
            self._notifications[notification.id] = notification
        return notification

    def list_notifications(self, limit: int = 50) -> List[Notification]:
        """Return the newest notifications first."""
        with self._lock:
            rows = sorted(self._notifications.values(), key=lambda n: n.id, reverse=True)
        return rows[:limit]

    def mark_notification_read(self, notification_id: int) -> Notification:
        with self.transaction():
            notification = self._require(self._notifications, notification_id, "notification")
            updated = replace(notification, read=True)
            self._notifications[notification_id] = updated
        return updated
