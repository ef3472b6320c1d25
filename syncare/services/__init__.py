"""
Service layer helpers that orchestrate the store and domain logic.
"""

from .booking import BookingResult, BookingService, BookingStore
from .scheduling import SchedulingService, SchedulingStore

__all__ = ["BookingResult", "BookingService", "BookingStore", "SchedulingService", "SchedulingStore"]
