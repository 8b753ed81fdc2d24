import logging
from datetime import date, datetime

import pytest

from dose_engine.schemas.models import (
    AdherenceStats,
    DailyRule,
    IntakeRecord,
    IntakeStatus,
    Medication,
    OnDemandRule,
)
from dose_engine.services.adherence import aggregate, aggregate_fleet, normalize_status


def _med(mid="m1", rule=None):
    return Medication(
        id=mid, name="Aspirin", start_date=date(2024, 1, 1), end_date=date(2024, 1, 20),
        rule=rule or DailyRule(),
    )


def _records(mid, status, n):
    return [IntakeRecord(medication_id=mid, status=status, logged_at=datetime(2024, 1, 1, 8)) for _ in range(n)]


@pytest.mark.parametrize("raw", ["not_taken", "NOT TAKEN", "Not Taken", "not-taken", "  not   taken ", "missed"])
def test_not_taken_spellings(raw):
    assert normalize_status(raw) is IntakeStatus.NOT_TAKEN


def test_other_statuses():
    assert normalize_status("Taken") is IntakeStatus.TAKEN
    assert normalize_status("PENDING") is IntakeStatus.PENDING
    assert normalize_status("skipped?") is None
    assert normalize_status(None) is None


def test_remaining_is_expected_minus_logged():
    recs = _records("m1", "taken", 12) + _records("m1", "not_taken", 3)
    stats = aggregate(_med(), 20, recs)
    assert (stats.taken, stats.not_taken, stats.remaining, stats.total_expected) == (12, 3, 5, 20)
    assert stats.adherence_rate == 0.8


def test_remaining_never_negative():
    recs = _records("m1", "Taken", 15) + _records("m1", "NOT TAKEN", 10)
    stats = aggregate(_med(), 20, recs)
    assert stats.remaining == 0


def test_other_medications_and_unknown_statuses_are_ignored(caplog):
    recs = (
        _records("m1", "taken", 2)
        + _records("m2", "taken", 5)
        + _records("m1", "pending", 1)
        + _records("m1", "snoozed", 4)
    )
    with caplog.at_level(logging.DEBUG, logger="dose_engine.adherence"):
        stats = aggregate(_med(), 20, recs)
    assert (stats.taken, stats.not_taken, stats.remaining) == (2, 0, 18)
    assert "intake.status.unknown" in caplog.text


def test_on_demand_has_no_remaining():
    stats = aggregate(_med(rule=OnDemandRule()), None, _records("m1", "taken", 3))
    assert stats.taken == 3
    assert stats.remaining is None
    assert stats.total_expected is None


def test_no_records_gives_no_rate():
    assert aggregate(_med(), 20, []).adherence_rate is None


def test_fleet_totals():
    per_med = [
        AdherenceStats(taken=12, not_taken=3, remaining=5, total_expected=20),
        AdherenceStats(taken=4, not_taken=0, remaining=None, total_expected=None),
        AdherenceStats(taken=1, not_taken=1, remaining=8, total_expected=10),
    ]
    fleet = aggregate_fleet(per_med)
    assert (fleet.taken, fleet.not_taken, fleet.remaining, fleet.total_expected) == (17, 4, 13, 30)


def test_fleet_of_on_demand_only():
    fleet = aggregate_fleet([AdherenceStats(taken=2, not_taken=0, remaining=None, total_expected=None)])
    assert fleet.remaining == 0
    assert fleet.total_expected is None
    assert aggregate_fleet([]).total_expected is None
