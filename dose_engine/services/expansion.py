# dose_engine/services/expansion.py
import functools
from datetime import date, datetime, time, timedelta
from typing import List, Tuple, assert_never

from dateutil.rrule import DAILY, HOURLY, WEEKLY, rrule, rruleset

from dose_engine.core.engine_config import DEFAULT_DOSE_TIME, EXPANSION_CACHE_SIZE
from dose_engine.schemas.models import (
    CyclicRule,
    DailyRule,
    IntervalDaysRule,
    IntervalHoursRule,
    Medication,
    Occurrence,
    OnDemandRule,
    RecurrenceRule,
    SpecificWeekdaysRule,
    TimeOfDay,
)
from dose_engine.utils.clock_time import intersect

Slot = Tuple[date, TimeOfDay]
Recurrence = rrule | rruleset

DEFAULT_TIME = TimeOfDay.parse(DEFAULT_DOSE_TIME)


def day_slots(rule: RecurrenceRule) -> Tuple[TimeOfDay, ...]:
    """Times of day at which one active day produces a dose, in order."""
    if isinstance(rule, DailyRule):
        return tuple(sorted(rule.times)) or (DEFAULT_TIME,) * rule.times_per_day
    if isinstance(rule, (IntervalDaysRule, SpecificWeekdaysRule, CyclicRule)):
        return tuple(sorted(rule.times)) or (DEFAULT_TIME,)
    if isinstance(rule, (IntervalHoursRule, OnDemandRule)):
        return ()
    assert_never(rule)


def recurrences(rule: RecurrenceRule, med_start: date, med_end: date) -> List[Recurrence]:
    """
    One dateutil recurrence per dose slot of `rule`, from med_start through
    the end of med_end. Slots stay separate: an rruleset collapses equal
    instants, and a daily rule without times repeats the default time.
    """
    until = datetime.combine(med_end, time.max)

    def start(t: TimeOfDay, offset: int = 0) -> datetime:
        return datetime.combine(med_start + timedelta(days=offset), t.as_time())

    if isinstance(rule, OnDemandRule):
        return []
    if isinstance(rule, IntervalHoursRule):
        return [rrule(HOURLY, interval=rule.step_hours, dtstart=start(rule.anchor_time), until=until)]
    if isinstance(rule, DailyRule):
        return [rrule(DAILY, dtstart=start(t), until=until) for t in day_slots(rule)]
    if isinstance(rule, IntervalDaysRule):
        return [rrule(DAILY, interval=rule.step_days, dtstart=start(t), until=until) for t in day_slots(rule)]
    if isinstance(rule, SpecificWeekdaysRule):
        byweekday = sorted(w.number for w in rule.weekdays)
        return [rrule(WEEKLY, byweekday=byweekday, dtstart=start(t), until=until) for t in day_slots(rule)]
    if isinstance(rule, CyclicRule):
        out: List[Recurrence] = []
        for t in day_slots(rule):
            cycle = rruleset()
            for offset in range(rule.intake_days):
                cycle.rrule(rrule(DAILY, interval=rule.cycle_length, dtstart=start(t, offset), until=until))
            out.append(cycle)
        return out
    assert_never(rule)


@functools.lru_cache(maxsize=EXPANSION_CACHE_SIZE)
def expand_slots(
    rule: RecurrenceRule,
    med_start: date,
    med_end: date,
    window_start: date,
    window_end: date,
) -> Tuple[Slot, ...]:
    """
    (date, time) pairs of every dose `rule` produces between med_start and
    med_end, restricted to [window_start, window_end]. Sorted by date then time.
    Cached: rules are immutable and the result is a tuple.
    """
    span = intersect(med_start, med_end, window_start, window_end)
    if span is None:
        return ()
    lo, hi = span
    window_open = datetime.combine(lo, time.min)
    window_close = datetime.combine(hi, time.max)

    instants: List[datetime] = []
    for rec in recurrences(rule, med_start, med_end):
        instants.extend(rec.between(window_open, window_close, inc=True))
    instants.sort()
    return tuple((i.date(), TimeOfDay(i.hour, i.minute)) for i in instants)


def expand(
    rule: RecurrenceRule,
    med_start: date,
    med_end: date,
    window_start: date,
    window_end: date,
    medication_id: str = "",
    medication_name: str = "",
    dosage: str = "",
) -> List[Occurrence]:
    return [
        Occurrence(
            medication_id=medication_id,
            date=d,
            time=t,
            medication_name=medication_name,
            dosage=dosage,
        )
        for d, t in expand_slots(rule, med_start, med_end, window_start, window_end)
    ]


def expand_medication(med: Medication, window_start: date, window_end: date) -> List[Occurrence]:
    return expand(
        med.rule,
        med.start_date,
        med.end_date,
        window_start,
        window_end,
        medication_id=med.id,
        medication_name=med.name,
        dosage=med.dosage,
    )


def clear_expansion_cache() -> None:
    expand_slots.cache_clear()
