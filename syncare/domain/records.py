"""
Directory records kept next to the scheduling data.

These carry no scheduling logic; the engine only ever sees their ids.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Patient:
    id: int
    first_name: str
    last_name: str
    pathology: Optional[str] = None
    notes: Optional[str] = None
    date_of_birth: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def matches(self, query: str) -> bool:
        """Case-insensitive match on first or last name."""
        needle = query.strip().lower()
        return needle in self.first_name.lower() or needle in self.last_name.lower()


@dataclass(frozen=True)
class Practitioner:
    id: int
    full_name: str
    specialty: Optional[str] = None


@dataclass(frozen=True)
class Resource:
    """A room or piece of equipment an appointment can reserve."""
    id: int
    name: str
    type: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    id: int
    message: str
    kind: str = "info"
    read: bool = False
    created_at: Optional[str] = None


def record_to_dict(record: Any) -> Dict[str, Any]:
    return asdict(record)
