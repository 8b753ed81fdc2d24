from datetime import date, datetime

import pytest

from dose_engine.schemas.models import (
    CyclicRule,
    DailyRule,
    IntervalDaysRule,
    IntervalHoursRule,
    OnDemandRule,
    RecordValidationError,
    RuleValidationError,
    SpecificWeekdaysRule,
    TimeOfDay,
    Weekday,
)
from dose_engine.services.records import (
    appointment_from_record,
    intake_from_record,
    medication_from_record,
    normalize_frequency,
)


def test_normalize_frequency_variants():
    assert normalize_frequency("daily") == "daily"
    assert normalize_frequency("Specific Days") == "specific_days"
    assert normalize_frequency("specific_days") == "specific_days"
    assert normalize_frequency("onDemand") == "on_demand"
    assert normalize_frequency("weekly-ish") is None
    assert normalize_frequency(None) is None


def test_daily_record_mixed_time_formats(make_record):
    med = medication_from_record(make_record(times=["8:00 PM", "08:00"], dailyTimes=None))
    assert isinstance(med.rule, DailyRule)
    assert med.rule.times_per_day == 2
    assert set(med.rule.times) == {TimeOfDay(8, 0), TimeOfDay(20, 0)}
    assert med.name == "Aspirin"
    assert med.dosage == "75 mg"


def test_daily_without_times_keeps_count(make_record):
    med = medication_from_record(make_record(times=[], dailyTimes=3))
    assert med.rule == DailyRule(times_per_day=3)


def test_storage_style_id_and_datetime_dates(make_record):
    rec = make_record(startDate="2024-01-01T00:00:00.000+00:00", endDate="2024-01-31T00:00:00.000+00:00")
    rec["$id"] = rec.pop("id")
    med = medication_from_record(rec)
    assert med.id == "med-1"
    assert med.start_date == date(2024, 1, 1)
    assert med.end_date == date(2024, 1, 31)


def test_interval_hours_anchor_is_first_time(make_record):
    med = medication_from_record(make_record(
        frequency="interval", intervalType="hours", intervalValue=6, times=["07:30"],
    ))
    assert med.rule == IntervalHoursRule(step_hours=6, anchor_time=TimeOfDay(7, 30))


def test_interval_days_defaults_step_to_one(make_record):
    med = medication_from_record(make_record(frequency="interval", intervalType="Days", intervalValue=None))
    assert isinstance(med.rule, IntervalDaysRule)
    assert med.rule.step_days == 1


def test_interval_without_type_is_rejected(make_record):
    with pytest.raises(RuleValidationError, match="intervalType"):
        medication_from_record(make_record(frequency="interval", intervalValue=2))


def test_specific_days(make_record):
    med = medication_from_record(make_record(frequency="specificDays", specificDays=["Monday", "wed"]))
    assert isinstance(med.rule, SpecificWeekdaysRule)
    assert med.rule.weekdays == frozenset({Weekday.MONDAY, Weekday.WEDNESDAY})


def test_specific_days_needs_at_least_one_day(make_record):
    with pytest.raises(RuleValidationError):
        medication_from_record(make_record(frequency="specificDays", specificDays=[]))
    with pytest.raises(RuleValidationError):
        medication_from_record(make_record(frequency="specificDays", specificDays=["someday"]))


def test_cyclic(make_record):
    med = medication_from_record(make_record(frequency="cyclic", cyclicIntakeDays=21, cyclicPauseDays=7))
    assert isinstance(med.rule, CyclicRule)
    assert med.rule.cycle_length == 28


def test_cyclic_zero_cycle_is_rejected(make_record):
    with pytest.raises(RuleValidationError, match="cycle length"):
        medication_from_record(make_record(frequency="cyclic", cyclicIntakeDays=0, cyclicPauseDays=0))


def test_cyclic_without_pause_is_rejected(make_record):
    with pytest.raises(RuleValidationError):
        medication_from_record(make_record(frequency="cyclic", cyclicIntakeDays=5, cyclicPauseDays=0))


def test_on_demand_flag_wins_over_frequency(make_record):
    med = medication_from_record(make_record(frequency="daily", onDemand=True))
    assert med.rule == OnDemandRule()


def test_unknown_frequency_is_rejected(make_record):
    with pytest.raises(RuleValidationError, match="unknown frequency"):
        medication_from_record(make_record(frequency="fortnightly"))


def test_bad_time_is_rejected(make_record):
    with pytest.raises(RuleValidationError, match="25:00"):
        medication_from_record(make_record(times=["25:00"]))


def test_end_before_start_is_rejected(make_record):
    with pytest.raises(RuleValidationError):
        medication_from_record(make_record(startDate="2024-02-01", endDate="2024-01-01"))


def test_missing_name_is_rejected(make_record):
    rec = make_record()
    del rec["medicineName"]
    with pytest.raises(RuleValidationError, match="med-1"):
        medication_from_record(rec)


def test_appointment_record_normalized():
    ev = appointment_from_record({
        "$id": "ap-1",
        "patientId": "p-1",
        "type": "Follow-Up",
        "scheduledDate": "2025-03-05T04:30:00Z",
        "status": "Cancelled",
        "notes": None,
    }, tz_name="Asia/Kolkata")
    assert ev.id == "ap-1"
    assert ev.kind == "followup"
    assert ev.status == "canceled"
    assert ev.scheduled_at == datetime(2025, 3, 5, 10, 0)
    assert ev.notes == ""


def test_appointment_record_bad_type():
    with pytest.raises(RecordValidationError, match="ap-2"):
        appointment_from_record({"id": "ap-2", "type": "surgery", "scheduledDate": "2025-03-05T10:00:00"})


def test_intake_relationship_shapes():
    assert intake_from_record({"medications": {"$id": "m1"}, "status": "taken"}).medication_id == "m1"
    assert intake_from_record({"medications": [{"$id": "m2"}]}).medication_id == "m2"
    assert intake_from_record({"medicationId": "m3", "status": None}).status == ""
    with pytest.raises(RecordValidationError, match="intake x1"):
        intake_from_record({"$id": "x1", "status": "taken"})
