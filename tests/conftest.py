# tests/conftest.py
import sys
from datetime import date
from pathlib import Path

import pytest

# Project root is one level up from here.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dose_engine.services.expansion import clear_expansion_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_expansion_cache():
    clear_expansion_cache()
    yield


@pytest.fixture
def monday():
    return date(2024, 1, 1)  # a Monday


def med_record(**overrides):
    rec = {
        "id": "med-1",
        "medicineName": "Aspirin",
        "dosage": "75 mg",
        "startDate": "2024-01-01",
        "endDate": "2024-01-05",
        "frequency": "daily",
        "dailyTimes": 1,
        "times": ["08:00"],
    }
    rec.update(overrides)
    return rec


@pytest.fixture
def make_record():
    return med_record
