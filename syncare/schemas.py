"""
Request validation boundary.

Payloads are checked here, before anything reaches the scheduling engine.
Offset-less timestamps are read in the timezone passed through the
validation context (``{"timezone": "Europe/Paris"}``), UTC otherwise.
"""

from typing import Annotated, Any, Optional

from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, Field, PlainValidator, ValidationInfo, model_validator
from pydantic.alias_generators import to_camel

from .domain.models import Interval, MatchRequest, parse_instant


def _parse_instant(value: Any, info: ValidationInfo) -> DateTime:
    tz = (info.context or {}).get("timezone", "UTC")
    return parse_instant(value, tz=tz)


Instant = Annotated[DateTime, PlainValidator(_parse_instant)]


class RequestModel(BaseModel):
    """Accepts both camelCase payload keys and snake_case field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
    )


class IntervalRequest(RequestModel):
    start: Instant
    end: Instant

    @model_validator(mode="after")
    def validate_order(self) -> "IntervalRequest":
        """Reject empty and inverted intervals."""
        if self.start >= self.end:
            raise ValueError(f"start {self.start} must be before end {self.end}")
        return self

    @property
    def interval(self) -> Interval:
        return Interval(start=self.start, end=self.end)


class PatientCreate(RequestModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    pathology: Optional[str] = None
    notes: Optional[str] = None
    date_of_birth: Optional[str] = None


class PractitionerCreate(RequestModel):
    full_name: str = Field(min_length=1)
    specialty: Optional[str] = None


class ResourceCreate(RequestModel):
    name: str = Field(min_length=1)
    type: Optional[str] = None


class AvailabilityCreate(IntervalRequest):
    practitioner_id: int


class AppointmentCreate(IntervalRequest):
    patient_id: int
    practitioner_id: int
    resource_id: Optional[int] = None
    pathology: Optional[str] = None
    notes: Optional[str] = None


class MatchRequestSchema(RequestModel):
    practitioner_id: int
    patient_id: Optional[int] = None
    duration_minutes: int = Field(gt=0)
    window_start: Optional[Instant] = None
    window_end: Optional[Instant] = None
    limit: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_window(self) -> "MatchRequestSchema":
        if self.window_start and self.window_end and self.window_start >= self.window_end:
            raise ValueError("window_start must be before window_end")
        return self

    def to_domain(self) -> MatchRequest:
        return MatchRequest(
            practitioner_id=self.practitioner_id,
            duration_minutes=self.duration_minutes,
            window_start=self.window_start,
            window_end=self.window_end,
            limit=self.limit,
            patient_id=self.patient_id,
        )
