import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from dose_engine.core.logging_utils import kv
from dose_engine.schemas.models import (
    AdherenceStats,
    AppointmentEvent,
    IntakeRecord,
    Medication,
    Occurrence,
    RecordValidationError,
    ReminderTrigger,
    SkippedRecord,
)
from dose_engine.services.adherence import aggregate, aggregate_fleet
from dose_engine.services.agenda import build_agenda
from dose_engine.services.dose_counter import count_for_medication
from dose_engine.services.expansion import expand_medication
from dose_engine.services.records import appointment_from_record, intake_from_record, medication_from_record
from dose_engine.services.reminders import plan_appointment_reminders, plan_dose_reminders

log = logging.getLogger("dose_engine.planning")


@dataclass
class PatientSchedule:
    medications: List[Medication]
    agenda: Dict[date, List[Occurrence]]
    skipped: List[SkippedRecord] = field(default_factory=list)


def _record_id(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        rid = raw.get("id") or raw.get("$id")
        return str(rid) if rid is not None else None
    return None


def _skip(kind: str, raw: Any, err: Exception) -> SkippedRecord:
    rid = _record_id(raw)
    log.warning(f"{kind}.skip " + kv(id=rid, reason=str(err)))
    return SkippedRecord(id=rid, reason=str(err))


def parse_medications(records: Iterable[Dict[str, Any]]) -> Tuple[List[Medication], List[SkippedRecord]]:
    """A malformed record is skipped and reported; the rest of the batch still parses."""
    meds: List[Medication] = []
    skipped: List[SkippedRecord] = []
    for raw in records:
        try:
            meds.append(medication_from_record(raw))
        except RecordValidationError as e:
            skipped.append(_skip("medication", raw, e))
    return meds, skipped


def parse_appointments(records: Iterable[Dict[str, Any]]) -> Tuple[List[AppointmentEvent], List[SkippedRecord]]:
    events: List[AppointmentEvent] = []
    skipped: List[SkippedRecord] = []
    for raw in records:
        try:
            events.append(appointment_from_record(raw))
        except RecordValidationError as e:
            skipped.append(_skip("appointment", raw, e))
    return events, skipped


def parse_intake_records(records: Iterable[Any]) -> Tuple[List[IntakeRecord], List[SkippedRecord]]:
    intakes: List[IntakeRecord] = []
    skipped: List[SkippedRecord] = []
    for raw in records:
        try:
            intakes.append(intake_from_record(raw))
        except RecordValidationError as e:
            skipped.append(_skip("intake", raw, e))
    return intakes, skipped


def occurrences_for(meds: Iterable[Medication], window_start: date, window_end: date) -> List[Occurrence]:
    out: List[Occurrence] = []
    for m in meds:
        out.extend(expand_medication(m, window_start, window_end))
    out.sort(key=lambda o: o.sort_key())
    return out


def build_patient_schedule(
    records: Iterable[Dict[str, Any]],
    window_start: date,
    window_end: date,
) -> PatientSchedule:
    meds, skipped = parse_medications(records)
    agenda = build_agenda(occurrences_for(meds, window_start, window_end), window_start, window_end)
    return PatientSchedule(medications=meds, agenda=agenda, skipped=skipped)


def expected_counts(records: Iterable[Dict[str, Any]]) -> Tuple[Dict[str, Optional[int]], List[SkippedRecord]]:
    meds, skipped = parse_medications(records)
    return {m.id: count_for_medication(m) for m in meds}, skipped


def build_patient_adherence(
    records: Iterable[Dict[str, Any]],
    intake_records: Iterable[Any],
) -> Tuple[Dict[str, AdherenceStats], AdherenceStats, List[SkippedRecord]]:
    """Bad intake records are reported in `skipped` and left out of every count."""
    meds, skipped = parse_medications(records)
    intakes, skipped_intakes = parse_intake_records(intake_records)
    per_med = {m.id: aggregate(m, count_for_medication(m), intakes) for m in meds}
    return per_med, aggregate_fleet(per_med.values()), skipped + skipped_intakes


def plan_patient_reminders(
    medication_records: Iterable[Dict[str, Any]],
    appointment_records: Iterable[Dict[str, Any]],
    window_start: date,
    window_end: date,
    now: datetime,
    dose_leads: Optional[Sequence[timedelta]] = None,
    appointment_leads: Optional[Sequence[timedelta]] = None,
) -> Tuple[List[ReminderTrigger], List[SkippedRecord]]:
    """
    Full trigger set for one patient over the window: dose reminders for every
    occurrence plus reminders for scheduled appointments inside the window.
    """
    meds, skipped = parse_medications(medication_records)
    events, skipped_events = parse_appointments(appointment_records)

    triggers = plan_dose_reminders(occurrences_for(meds, window_start, window_end), now, dose_leads)
    for ev in events:
        if window_start <= ev.scheduled_at.date() <= window_end:
            triggers.extend(plan_appointment_reminders(ev, now, appointment_leads))

    triggers.sort(key=lambda t: t.fire_at)
    return triggers, skipped + skipped_events
