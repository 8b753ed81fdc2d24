import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    WithJsonSchema,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from dose_engine.utils.clock_time import hhmm_to_minutes, minutes_to_hhmm

AppointmentKind = Literal["followup", "dialysis"]
AppointmentStatus = Literal["scheduled", "completed", "canceled"]


class RecordValidationError(ValueError):
    """A storage record that cannot be turned into a domain object."""


class RuleValidationError(RecordValidationError):
    """A medication record or recurrence rule that cannot be scheduled."""


@dataclass(frozen=True, order=True)
class TimeOfDay:
    hour: int
    minute: int = 0

    def __post_init__(self):
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(f"time of day out of range: {self.hour}:{self.minute}")

    @classmethod
    def parse(cls, raw: Any) -> "TimeOfDay":
        if isinstance(raw, TimeOfDay):
            return raw
        if isinstance(raw, dt.time):
            return cls(raw.hour, raw.minute)
        return cls.from_minutes(hhmm_to_minutes(str(raw)))

    @classmethod
    def from_minutes(cls, total_minutes: int) -> "TimeOfDay":
        return cls(*divmod(total_minutes, 60))

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    def as_time(self) -> dt.time:
        return dt.time(self.hour, self.minute)

    def __str__(self) -> str:
        return minutes_to_hhmm(self.minutes)


TimeOfDayField = Annotated[
    TimeOfDay,
    PlainValidator(TimeOfDay.parse),
    PlainSerializer(str, return_type=str),
    WithJsonSchema({"type": "string", "description": "HH:MM 24-hour"}),
]


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def parse(cls, raw: Any) -> "Weekday":
        if isinstance(raw, Weekday):
            return raw
        s = str(raw or "").strip().lower()
        for day in cls:
            if s == day.value or (len(s) >= 3 and day.value.startswith(s)):
                return day
        raise ValueError(f"unrecognised weekday: {raw!r}")

    @classmethod
    def of(cls, d: dt.date) -> "Weekday":
        return _WEEKDAYS[d.weekday()]

    @property
    def number(self) -> int:
        """Monday == 0, as in date.weekday()."""
        return _WEEKDAYS.index(self)


_WEEKDAYS = list(Weekday)


class IntakeStatus(str, Enum):
    TAKEN = "taken"
    NOT_TAKEN = "not taken"
    PENDING = "pending"


# ---------------------------------------------------------------------------
# Recurrence rules (closed union, discriminated on `kind`)
# ---------------------------------------------------------------------------

class _Rule(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class DailyRule(_Rule):
    kind: Literal["daily"] = "daily"
    times_per_day: int = Field(default=1, ge=1)
    times: Tuple[TimeOfDayField, ...] = ()


class IntervalHoursRule(_Rule):
    kind: Literal["interval_hours"] = "interval_hours"
    step_hours: int = Field(..., ge=1)
    anchor_time: TimeOfDayField


class IntervalDaysRule(_Rule):
    kind: Literal["interval_days"] = "interval_days"
    step_days: int = Field(..., ge=1)
    times: Tuple[TimeOfDayField, ...] = ()


class SpecificWeekdaysRule(_Rule):
    kind: Literal["specific_weekdays"] = "specific_weekdays"
    weekdays: FrozenSet[Weekday] = Field(..., min_length=1)
    times: Tuple[TimeOfDayField, ...] = ()

    @field_validator("weekdays", mode="before")
    @classmethod
    def parse_weekdays(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(Weekday.parse(x) for x in v)
        return v


class CyclicRule(_Rule):
    kind: Literal["cyclic"] = "cyclic"
    intake_days: int = Field(..., ge=1)
    pause_days: int = Field(..., ge=1)
    times: Tuple[TimeOfDayField, ...] = ()

    @property
    def cycle_length(self) -> int:
        return self.intake_days + self.pause_days


class OnDemandRule(_Rule):
    kind: Literal["on_demand"] = "on_demand"


RecurrenceRule = Annotated[
    Union[DailyRule, IntervalHoursRule, IntervalDaysRule, SpecificWeekdaysRule, CyclicRule, OnDemandRule],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Domain objects
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _date_only(v: Any) -> Any:
    # storage hands out ISO datetimes ("2024-12-24T00:00:00.000+00:00") for date fields
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, str) and "T" in v:
        return v.split("T", 1)[0]
    return v


class Medication(_CamelModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    dosage: str = ""
    description: str = ""
    start_date: dt.date
    end_date: dt.date
    rule: RecurrenceRule

    @model_validator(mode="after")
    def check_dates(self) -> "Medication":
        if self.end_date < self.start_date:
            raise ValueError(f"endDate {self.end_date} is before startDate {self.start_date}")
        return self


class Occurrence(_CamelModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    medication_id: str
    date: dt.date
    time: TimeOfDayField
    medication_name: str = ""
    dosage: str = ""

    @property
    def at(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.time.as_time())

    def sort_key(self) -> Tuple[dt.date, TimeOfDay]:
        return (self.date, self.time)


class MedicationRecord(_CamelModel):
    """Medication document as handed out by the persistence collaborator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "$id"))
    medicine_name: str
    dosage: str = ""
    description: Optional[str] = None
    start_date: dt.date
    end_date: dt.date
    frequency: str = ""
    daily_times: Optional[int] = None
    interval_type: Optional[str] = None
    interval_value: Optional[int] = None
    specific_days: Optional[List[str]] = None
    cyclic_intake_days: Optional[int] = None
    cyclic_pause_days: Optional[int] = None
    times: Optional[List[str]] = None
    on_demand: Optional[bool] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def strip_time(cls, v: Any) -> Any:
        return _date_only(v)


class IntakeRecord(_CamelModel):
    medication_id: str = Field(..., validation_alias=AliasChoices("medicationId", "medication_id", "medications"))
    status: str = ""
    logged_at: Optional[dt.datetime] = None

    @field_validator("medication_id", mode="before")
    @classmethod
    def unwrap_relationship(cls, v: Any) -> Any:
        # storage expands the `medications` relationship into a document, or a list of one
        if isinstance(v, list) and len(v) == 1:
            v = v[0]
        if isinstance(v, dict):
            return v.get("$id") or v.get("id")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def none_status(cls, v: Any) -> Any:
        return "" if v is None else v


class AdherenceStats(_CamelModel):
    taken: int = Field(default=0, ge=0)
    not_taken: int = Field(default=0, ge=0)
    remaining: Optional[int] = Field(default=None, ge=0)
    total_expected: Optional[int] = Field(default=None, ge=0)
    adherence_rate: Optional[float] = None


class AppointmentEvent(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "$id"))
    patient_id: Optional[str] = None
    kind: AppointmentKind = Field(..., alias="type")
    scheduled_at: dt.datetime = Field(..., alias="scheduledDate")
    status: AppointmentStatus = "scheduled"
    notes: str = ""

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            s = v.strip().lower()
            return "canceled" if s == "cancelled" else s
        return v

    @field_validator("notes", mode="before")
    @classmethod
    def none_notes(cls, v: Any) -> Any:
        return "" if v is None else v


class ReminderTrigger(_CamelModel):
    subject_id: str
    fire_at: dt.datetime
    title: str
    body: str
    lead_minutes: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)


class SkippedRecord(_CamelModel):
    id: Optional[str] = None
    reason: str


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class _WindowRequest(_CamelModel):
    window_start: dt.date
    window_end: dt.date


class AgendaRequest(_WindowRequest):
    medications: List[Dict[str, Any]] = Field(default_factory=list)


class AgendaResponse(_CamelModel):
    agenda: Dict[dt.date, List[Occurrence]]
    skipped: List[SkippedRecord] = []


class ExpectedCountRequest(_CamelModel):
    medications: List[Dict[str, Any]] = Field(default_factory=list)


class ExpectedCountResponse(_CamelModel):
    counts: Dict[str, Optional[int]]
    skipped: List[SkippedRecord] = []


class AppointmentAgendaRequest(_WindowRequest):
    appointments: List[Dict[str, Any]] = Field(default_factory=list)


class AppointmentAgendaResponse(_CamelModel):
    agenda: Dict[dt.date, List[AppointmentEvent]]
    skipped: List[SkippedRecord] = []


class AdherenceRequest(_CamelModel):
    medications: List[Dict[str, Any]] = Field(default_factory=list)
    intake_records: List[Dict[str, Any]] = Field(default_factory=list)


class AdherenceResponse(_CamelModel):
    per_medication: Dict[str, AdherenceStats]
    overall: AdherenceStats
    skipped: List[SkippedRecord] = []


class ReplanRequest(_WindowRequest):
    patient_id: str
    medications: List[Dict[str, Any]] = Field(default_factory=list)
    appointments: List[Dict[str, Any]] = Field(default_factory=list)
    now: Optional[dt.datetime] = None


class ReplanResponse(_CamelModel):
    patient_id: str
    cancelled: int
    armed: int
    triggers: List[ReminderTrigger]
    skipped: List[SkippedRecord] = []
