"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .conflicts import ConflictChecker, ProposedBooking
from .exceptions import InvalidInterval, InvalidRequest, RecordNotFound, StorageError, SyncareError
from .free_time import free_intervals, merge_intervals
from .models import (
    Appointment,
    AppointmentStatus,
    Availability,
    Interval,
    MatchRequest,
    SlotCandidate,
    format_instant,
    parse_instant,
)
from .slot_generator import SlotGenerator

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Availability",
    "ConflictChecker",
    "Interval",
    "InvalidInterval",
    "InvalidRequest",
    "MatchRequest",
    "ProposedBooking",
    "RecordNotFound",
    "SlotCandidate",
    "SlotGenerator",
    "StorageError",
    "SyncareError",
    "format_instant",
    "free_intervals",
    "merge_intervals",
    "parse_instant",
]
