# dose_engine/services/agenda.py
from datetime import date
from typing import Dict, Iterable, List

from dose_engine.schemas.models import AppointmentEvent, Occurrence
from dose_engine.utils.clock_time import iter_dates


def _empty_calendar(window_start: date, window_end: date) -> Dict[date, list]:
    if window_end < window_start:
        raise ValueError(f"window end {window_end} is before window start {window_start}")
    return {d: [] for d in iter_dates(window_start, window_end)}


def build_agenda(
    occurrences: Iterable[Occurrence],
    window_start: date,
    window_end: date,
) -> Dict[date, List[Occurrence]]:
    """
    Every date in the window maps to its occurrences ordered by time;
    dates without doses map to [] so calendars can render empty cells.
    """
    agenda: Dict[date, List[Occurrence]] = _empty_calendar(window_start, window_end)
    for occ in occurrences:
        day = agenda.get(occ.date)
        if day is not None:
            day.append(occ)
    for day in agenda.values():
        day.sort(key=lambda o: o.time)
    return agenda


def build_appointment_agenda(
    events: Iterable[AppointmentEvent],
    window_start: date,
    window_end: date,
) -> Dict[date, List[AppointmentEvent]]:
    agenda: Dict[date, List[AppointmentEvent]] = _empty_calendar(window_start, window_end)
    for ev in events:
        day = agenda.get(ev.scheduled_at.date())
        if day is not None:
            day.append(ev)
    for day in agenda.values():
        day.sort(key=lambda e: e.scheduled_at)
    return agenda
