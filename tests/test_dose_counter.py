import random
from datetime import date, timedelta

import pytest

from dose_engine.schemas.models import (
    CyclicRule,
    DailyRule,
    IntervalDaysRule,
    IntervalHoursRule,
    Medication,
    OnDemandRule,
    SpecificWeekdaysRule,
    TimeOfDay,
    Weekday,
)
from dose_engine.services.dose_counter import count_expected, count_for_medication
from dose_engine.services.expansion import expand


def _random_times(rng, max_n=3):
    return tuple(TimeOfDay(rng.randrange(24), rng.choice([0, 15, 30, 45])) for _ in range(rng.randint(0, max_n)))


def _random_rule(rng):
    kind = rng.choice(["daily", "interval_days", "weekdays", "cyclic", "interval_hours", "on_demand"])
    if kind == "daily":
        return DailyRule(times_per_day=rng.randint(1, 4), times=_random_times(rng))
    if kind == "interval_days":
        return IntervalDaysRule(step_days=rng.randint(1, 12), times=_random_times(rng))
    if kind == "weekdays":
        days = rng.sample(list(Weekday), rng.randint(1, 7))
        return SpecificWeekdaysRule(weekdays=days, times=_random_times(rng))
    if kind == "cyclic":
        return CyclicRule(intake_days=rng.randint(1, 25), pause_days=rng.randint(1, 10), times=_random_times(rng))
    if kind == "interval_hours":
        return IntervalHoursRule(step_hours=rng.randint(1, 36), anchor_time=TimeOfDay(rng.randrange(24), rng.randrange(60)))
    return OnDemandRule()


def test_count_matches_expansion_for_generated_rules():
    rng = random.Random(20240101)
    for _ in range(400):
        rule = _random_rule(rng)
        start = date(2024, 1, 1) + timedelta(days=rng.randint(0, 400))
        end = start + timedelta(days=rng.randint(0, 120))
        expected = count_expected(rule, start, end)
        actual = len(expand(rule, start, end, start, end))
        if isinstance(rule, OnDemandRule):
            assert expected is None and actual == 0
        else:
            assert expected == actual, (rule, start, end)


@pytest.mark.parametrize("rule,days,expected", [
    (DailyRule(times_per_day=2), 5, 10),
    (CyclicRule(intake_days=21, pause_days=7), 28, 21),
    (CyclicRule(intake_days=21, pause_days=7), 35, 28),
    (CyclicRule(intake_days=21, pause_days=7, times=(TimeOfDay(8, 0), TimeOfDay(20, 0))), 35, 56),
    (SpecificWeekdaysRule(weekdays=["mon", "wed"]), 14, 4),
    (IntervalDaysRule(step_days=3), 10, 4),
    (IntervalHoursRule(step_hours=8, anchor_time=TimeOfDay(8, 0)), 2, 5),
])
def test_known_counts(monday, rule, days, expected):
    assert count_expected(rule, monday, monday + timedelta(days=days - 1)) == expected


def test_weekdays_partial_week_starts_midweek():
    # Thu 2024-01-04 .. Tue 2024-01-09: Mon once, Wed never
    rule = SpecificWeekdaysRule(weekdays=["monday", "wednesday"])
    assert count_expected(rule, date(2024, 1, 4), date(2024, 1, 9)) == 1


def test_reversed_range_counts_zero(monday):
    assert count_expected(DailyRule(), monday, monday - timedelta(days=1)) == 0


def test_count_for_medication(monday):
    med = Medication(
        id="m", name="x", start_date=monday, end_date=monday + timedelta(days=9),
        rule=IntervalDaysRule(step_days=2, times=(TimeOfDay(9, 0), TimeOfDay(21, 0))),
    )
    assert count_for_medication(med) == 10
