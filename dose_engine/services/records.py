# dose_engine/services/records.py
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from dose_engine.core.engine_config import DEFAULT_DOSE_TIME, TIMEZONE
from dose_engine.schemas.models import (
    AppointmentEvent,
    CyclicRule,
    DailyRule,
    IntakeRecord,
    IntervalDaysRule,
    IntervalHoursRule,
    Medication,
    MedicationRecord,
    OnDemandRule,
    RecordValidationError,
    RuleValidationError,
    SpecificWeekdaysRule,
    TimeOfDay,
)
from dose_engine.utils.clock_time import as_local_naive

FREQ_MAP = {
    "daily": "daily",
    "interval": "interval",
    "specificdays": "specific_days",
    "cyclic": "cyclic",
    "ondemand": "on_demand",
    "asneeded": "on_demand",
    "prn": "on_demand",
}


def normalize_frequency(freq_raw: Optional[str]) -> Optional[str]:
    f = (freq_raw or "").strip().lower()
    for sep in ("_", "-", " "):
        f = f.replace(sep, "")
    return FREQ_MAP.get(f)


def _first_error(e: ValidationError) -> str:
    errs = e.errors()
    if not errs:
        return str(e)
    err = errs[0]
    loc = ".".join(str(x) for x in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def _parse_times(rid: str, raw_times: Optional[List[str]]) -> List[TimeOfDay]:
    out: List[TimeOfDay] = []
    for t in raw_times or []:
        try:
            out.append(TimeOfDay.parse(t))
        except ValueError as e:
            raise RuleValidationError(f"medication {rid}: invalid time {t!r}") from e
    return out


def _build_rule(rec: MedicationRecord):
    if rec.on_demand:
        return OnDemandRule()

    freq = normalize_frequency(rec.frequency)
    times = _parse_times(rec.id, rec.times)

    if freq == "daily":
        return DailyRule(times_per_day=rec.daily_times or len(times) or 1, times=tuple(times))

    if freq == "interval":
        itype = (rec.interval_type or "").strip().lower()
        step = rec.interval_value or 1
        if itype == "hours":
            anchor = times[0] if times else TimeOfDay.parse(DEFAULT_DOSE_TIME)
            return IntervalHoursRule(step_hours=step, anchor_time=anchor)
        if itype == "days":
            return IntervalDaysRule(step_days=step, times=tuple(times))
        raise RuleValidationError(
            f"medication {rec.id}: interval needs intervalType 'hours' or 'days', got {rec.interval_type!r}"
        )

    if freq == "specific_days":
        return SpecificWeekdaysRule(weekdays=list(rec.specific_days or []), times=tuple(times))

    if freq == "cyclic":
        intake = rec.cyclic_intake_days or 0
        pause = rec.cyclic_pause_days or 0
        if intake + pause <= 0:
            raise RuleValidationError(f"medication {rec.id}: cyclic pattern has no valid cycle length")
        return CyclicRule(intake_days=intake, pause_days=pause, times=tuple(times))

    if freq == "on_demand":
        return OnDemandRule()

    raise RuleValidationError(f"medication {rec.id}: unknown frequency {rec.frequency!r}")


def medication_from_record(raw: Union[Dict[str, Any], MedicationRecord]) -> Medication:
    """
    Turn a stored medication document into a schedulable Medication.
    Any malformed field raises RuleValidationError naming the record.
    """
    rid = str(raw.get("id") or raw.get("$id") or "?") if isinstance(raw, dict) else raw.id
    try:
        rec = raw if isinstance(raw, MedicationRecord) else MedicationRecord.model_validate(raw)
        rule = _build_rule(rec)
        return Medication(
            id=rec.id,
            name=rec.medicine_name,
            dosage=rec.dosage or "",
            description=rec.description or "",
            start_date=rec.start_date,
            end_date=rec.end_date,
            rule=rule,
        )
    except ValidationError as e:
        raise RuleValidationError(f"medication {rid}: {_first_error(e)}") from e
    except ValueError as e:
        if isinstance(e, RuleValidationError):
            raise
        raise RuleValidationError(f"medication {rid}: {e}") from e


def appointment_from_record(raw: Dict[str, Any], tz_name: str = TIMEZONE) -> AppointmentEvent:
    rid = str(raw.get("id") or raw.get("$id") or "?")
    try:
        ev = AppointmentEvent.model_validate(raw)
    except ValidationError as e:
        raise RecordValidationError(f"appointment {rid}: {_first_error(e)}") from e
    return ev.model_copy(update={"scheduled_at": as_local_naive(ev.scheduled_at, tz_name)})


def intake_from_record(raw: Union[Dict[str, Any], IntakeRecord]) -> IntakeRecord:
    if isinstance(raw, IntakeRecord):
        return raw
    rid = str(raw.get("id") or raw.get("$id") or "?") if isinstance(raw, dict) else "?"
    try:
        return IntakeRecord.model_validate(raw)
    except ValidationError as e:
        raise RecordValidationError(f"intake {rid}: {_first_error(e)}") from e
