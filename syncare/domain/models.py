"""
Domain models for intervals, bookings and slot candidates.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import pendulum
from pendulum import DateTime

from .exceptions import InvalidInterval, InvalidRequest


def parse_instant(value: Any, tz: str = "UTC") -> DateTime:
    """
    Parse an absolute instant.

    Accepts ISO-8601 text, ``datetime`` and pendulum ``DateTime`` values.
    Text without an offset and naive datetimes are read in ``tz``.

    Raises:
        InvalidInterval: If the value is empty or cannot be parsed
    """
    if isinstance(value, DateTime):
        if value.tzinfo is None:
            return value.replace(tzinfo=pendulum.timezone(tz))
        return value

    if isinstance(value, datetime):
        return pendulum.instance(value, tz=tz)

    if not isinstance(value, str) or not value.strip():
        raise InvalidInterval(f"Expected an ISO-8601 timestamp, got {value!r}")

    # pendulum reads the literal "now" as the current time
    if value.strip().lower() == "now":
        raise InvalidInterval(f"Expected an absolute timestamp, got {value!r}")

    try:
        parsed = pendulum.parse(value.strip(), tz=tz)
    except (ValueError, TypeError, OverflowError) as exc:
        raise InvalidInterval(f"Unparsable timestamp {value!r}: {exc}") from exc

    if not isinstance(parsed, DateTime):
        raise InvalidInterval(f"Timestamp {value!r} does not denote an instant")

    return parsed


def format_instant(value: DateTime) -> str:
    """Serialize an instant as UTC ISO-8601 text."""
    return value.in_timezone("UTC").to_iso8601_string()


@dataclass(frozen=True)
class Interval:
    """
    Half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if not isinstance(self.start, DateTime):
            object.__setattr__(self, "start", parse_instant(self.start))
        if not isinstance(self.end, DateTime):
            object.__setattr__(self, "end", parse_instant(self.end))

        if self.start >= self.end:
            raise InvalidInterval(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_strings(cls, start: str, end: str, tz: str = "UTC") -> "Interval":
        """Build an interval from two boundary timestamps."""
        return cls(start=parse_instant(start, tz=tz), end=parse_instant(end, tz=tz))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "Interval") -> bool:
        """Check if this range overlaps with another. Touching ranges do not."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        """Check if another range lies fully inside this one."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "Interval") -> "Interval | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return Interval(start=start, end=end)

    def to_dict(self) -> Dict[str, str]:
        return {"start": format_instant(self.start), "end": format_instant(self.end)}

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


class AppointmentStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Availability:
    """A window in which a practitioner could be booked."""
    id: int
    practitioner_id: int
    interval: Interval
    created_at: Optional[DateTime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "practitionerId": self.practitioner_id,
            **self.interval.to_dict(),
            "createdAt": format_instant(self.created_at) if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Availability":
        return cls(
            id=int(data["id"]),
            practitioner_id=int(data["practitionerId"]),
            interval=Interval.from_strings(data["start"], data["end"]),
            created_at=parse_instant(data["createdAt"]) if data.get("createdAt") else None,
        )


@dataclass(frozen=True)
class Appointment:
    """
    A booked interval owned by a practitioner and optionally a resource.

    Appointments are never edited in place. A reschedule cancels the old
    record and creates a new one, so cancelled rows stay around for history.
    """
    id: int
    patient_id: int
    practitioner_id: int
    interval: Interval
    resource_id: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    pathology: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[DateTime] = None

    @property
    def is_active(self) -> bool:
        """Cancelled appointments are inert to scheduling."""
        return self.status is not AppointmentStatus.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "practitionerId": self.practitioner_id,
            "resourceId": self.resource_id,
            **self.interval.to_dict(),
            "status": self.status.value,
            "pathology": self.pathology,
            "notes": self.notes,
            "createdAt": format_instant(self.created_at) if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        resource_id = data.get("resourceId")
        return cls(
            id=int(data["id"]),
            patient_id=int(data["patientId"]),
            practitioner_id=int(data["practitionerId"]),
            interval=Interval.from_strings(data["start"], data["end"]),
            resource_id=int(resource_id) if resource_id is not None else None,
            status=AppointmentStatus(data.get("status", AppointmentStatus.CONFIRMED.value)),
            pathology=data.get("pathology"),
            notes=data.get("notes"),
            created_at=parse_instant(data["createdAt"]) if data.get("createdAt") else None,
        )


@dataclass(frozen=True)
class SlotCandidate:
    """
    A suggested bookable slot.

    Advisory only: no hold is taken, the slot has to go through the booking
    path (and its conflict check) to become an appointment.
    """
    interval: Interval
    practitioner_id: int
    resource_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {**self.interval.to_dict(), "practitionerId": self.practitioner_id}
        if self.resource_id is not None:
            data["resourceId"] = self.resource_id
        return data

    def format_display(self, tz: str = "UTC") -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm – HH:mm (N min)
        """
        start = self.interval.start.in_timezone(tz)
        end = self.interval.end.in_timezone(tz)

        date_str = start.format("dddd, DD.MM.YYYY")
        time_str = f"{start.format('HH:mm')} – {end.format('HH:mm')}"
        duration = self.interval.duration_minutes()

        return f"{date_str} | {time_str} ({duration} min)"


@dataclass
class MatchRequest:
    """Parameters of a slot search for one practitioner."""
    practitioner_id: int
    duration_minutes: int
    window_start: Optional[DateTime] = None
    window_end: Optional[DateTime] = None
    limit: Optional[int] = None
    patient_id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise InvalidRequest(f"duration_minutes must be positive, got {self.duration_minutes}")
        if self.limit is not None and self.limit <= 0:
            raise InvalidRequest(f"limit must be positive, got {self.limit}")
