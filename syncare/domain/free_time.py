"""
Free-time calculation: availability minus busy intervals.

Pure domain logic without any external dependencies (no storage, no I/O).
"""

from typing import Iterable, List, Union

from .models import Appointment, Interval

BusyLike = Union[Interval, Appointment]


def _as_interval(busy: BusyLike) -> Interval:
    return busy if isinstance(busy, Interval) else busy.interval


def free_intervals(availability: Interval, busy: Iterable[BusyLike]) -> List[Interval]:
    """
    Subtract busy times from one availability interval.

    Busy entries may be unsorted, overlapping, or lie partly or fully outside
    the availability. The result is ordered, disjoint and non-empty.

    Example:
    Availability: 09:00 - 17:00
    Busy: [14:00-15:00, 10:00-11:00, 10:30-11:30]
    Result: [09:00-10:00, 11:30-14:00, 15:00-17:00]
    """
    # sorted() is stable, so equal starts keep their input order
    sorted_busy = sorted((_as_interval(b) for b in busy), key=lambda r: r.start)

    free: List[Interval] = []
    cursor = availability.start

    for busy_range in sorted_busy:
        if busy_range.end <= cursor:
            continue

        overlap = availability.intersect(busy_range)
        if overlap is None:
            continue

        if cursor < overlap.start:
            free.append(Interval(start=cursor, end=overlap.start))

        # The monotonic cursor merges overlapping and contiguous busy ranges.
        cursor = max(cursor, overlap.end)
        if cursor >= availability.end:
            break

    if cursor < availability.end:
        free.append(Interval(start=cursor, end=availability.end))

    return free


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Merge overlapping or adjacent intervals.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    sorted_ranges = sorted(intervals, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[Interval] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        if current.start <= last.end:
            merged[-1] = Interval(start=last.start, end=max(last.end, current.end))
        else:
            merged.append(current)

    return merged
