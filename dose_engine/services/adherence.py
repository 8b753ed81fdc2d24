# dose_engine/services/adherence.py
import logging
from typing import Iterable, Optional

from dose_engine.core.logging_utils import kv
from dose_engine.schemas.models import AdherenceStats, IntakeRecord, IntakeStatus, Medication

log = logging.getLogger("dose_engine.adherence")

_STATUS_MAP = {
    "taken": IntakeStatus.TAKEN,
    "not taken": IntakeStatus.NOT_TAKEN,
    "missed": IntakeStatus.NOT_TAKEN,
    "pending": IntakeStatus.PENDING,
}


def normalize_status(raw: Optional[str]) -> Optional[IntakeStatus]:
    """
    "not_taken", "NOT TAKEN", "Not-Taken" -> IntakeStatus.NOT_TAKEN.
    Returns None for anything unrecognised.
    """
    s = str(raw or "").lower()
    for sep in ("_", "-"):
        s = s.replace(sep, " ")
    return _STATUS_MAP.get(" ".join(s.split()))


def adherence_rate(taken: int, not_taken: int) -> Optional[float]:
    total = taken + not_taken
    return round(taken / total, 3) if total else None


def aggregate(
    medication: Medication,
    expected_count: Optional[int],
    records: Iterable[IntakeRecord],
) -> AdherenceStats:
    taken = 0
    not_taken = 0
    for r in records:
        if r.medication_id != medication.id:
            continue
        status = normalize_status(r.status)
        if status is IntakeStatus.TAKEN:
            taken += 1
        elif status is IntakeStatus.NOT_TAKEN:
            not_taken += 1
        elif status is None:
            log.debug("intake.status.unknown " + kv(medication_id=medication.id, status=r.status))

    remaining = None
    if expected_count is not None:
        remaining = max(expected_count - taken - not_taken, 0)

    return AdherenceStats(
        taken=taken,
        not_taken=not_taken,
        remaining=remaining,
        total_expected=expected_count,
        adherence_rate=adherence_rate(taken, not_taken),
    )


def aggregate_fleet(stats: Iterable[AdherenceStats]) -> AdherenceStats:
    """Patient-wide totals; on-demand medications add nothing to remaining."""
    taken = 0
    not_taken = 0
    remaining = 0
    expected: Optional[int] = None
    for s in stats:
        taken += s.taken
        not_taken += s.not_taken
        remaining += s.remaining or 0
        if s.total_expected is not None:
            expected = (expected or 0) + s.total_expected

    return AdherenceStats(
        taken=taken,
        not_taken=not_taken,
        remaining=remaining,
        total_expected=expected,
        adherence_rate=adherence_rate(taken, not_taken),
    )
