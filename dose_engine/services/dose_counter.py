# dose_engine/services/dose_counter.py
from datetime import date, datetime, timedelta
from typing import Optional, assert_never

from dose_engine.schemas.models import (
    CyclicRule,
    DailyRule,
    IntervalDaysRule,
    IntervalHoursRule,
    Medication,
    OnDemandRule,
    RecurrenceRule,
    SpecificWeekdaysRule,
)
from dose_engine.services.expansion import day_slots
from dose_engine.utils.clock_time import days_between, end_of_day_exclusive


def count_expected(rule: RecurrenceRule, med_start: date, med_end: date) -> Optional[int]:
    """
    Number of doses `rule` produces over [med_start, med_end] (inclusive).

    Closed forms; each one equals len(expand(rule, s, e, s, e)):
      daily            n * k
      interval days    ceil(n / step) * k
      weekdays         (full weeks * |weekdays| + matches in the partial week) * k
      cyclic           (full cycles * intake + min(rest, intake)) * k
      interval hours   ceil((end of last day - first instant) / step)
    with n days in the course and k dose times per active day.
    None for on-demand medications.
    """
    if isinstance(rule, OnDemandRule):
        return None

    n = days_between(med_start, med_end)
    if n == 0:
        return 0

    if isinstance(rule, IntervalHoursRule):
        first = datetime.combine(med_start, rule.anchor_time.as_time())
        span = end_of_day_exclusive(med_end) - first
        return -((-span) // timedelta(hours=rule.step_hours))

    k = len(day_slots(rule))

    if isinstance(rule, DailyRule):
        return n * k

    if isinstance(rule, IntervalDaysRule):
        return ((n - 1) // rule.step_days + 1) * k

    if isinstance(rule, SpecificWeekdaysRule):
        full_weeks, rest = divmod(n, 7)
        wanted = {w.number for w in rule.weekdays}
        first_wd = med_start.weekday()
        extra = sum(1 for i in range(rest) if (first_wd + i) % 7 in wanted)
        return (full_weeks * len(wanted) + extra) * k

    if isinstance(rule, CyclicRule):
        full_cycles, rest = divmod(n, rule.cycle_length)
        return (full_cycles * rule.intake_days + min(rest, rule.intake_days)) * k

    assert_never(rule)


def count_for_medication(med: Medication) -> Optional[int]:
    return count_expected(med.rule, med.start_date, med.end_date)
