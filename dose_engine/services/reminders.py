# dose_engine/services/reminders.py
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from dose_engine.core.engine_config import (
    APPOINTMENT_LEAD_MINUTES,
    DOSE_LEAD_MINUTES,
    parse_minutes_list,
)
from dose_engine.core.logging_utils import kv
from dose_engine.schemas.models import AppointmentEvent, Occurrence, ReminderTrigger
from dose_engine.services.notifier import NotificationGateway

log = logging.getLogger("dose_engine.reminders")

DEFAULT_DOSE_LEADS = [timedelta(minutes=m) for m in parse_minutes_list(DOSE_LEAD_MINUTES)]
DEFAULT_APPOINTMENT_LEADS = [timedelta(minutes=m) for m in parse_minutes_list(APPOINTMENT_LEAD_MINUTES)]

_KIND_LABELS = {"followup": "Follow-Up", "dialysis": "Dialysis"}


def describe_lead(lead: timedelta) -> str:
    minutes = int(lead.total_seconds() // 60)
    if minutes <= 0:
        return "now"
    for unit, size in (("day", 1440), ("hour", 60)):
        if minutes % size == 0:
            n = minutes // size
            return f"in {n} {unit}" + ("s" if n != 1 else "")
    return f"in {minutes} minute" + ("s" if minutes != 1 else "")


def plan(
    subject_id: str,
    event_at: datetime,
    lead_times: Iterable[timedelta],
    now: datetime,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> List[ReminderTrigger]:
    """
    One trigger per lead time, firing at event_at - lead.
    Triggers that would fire at or before `now` are dropped.
    `body` may use {when} for the lead description ("now", "in 1 day").
    """
    triggers: List[ReminderTrigger] = []
    for lead in sorted(set(lead_times), reverse=True):
        if lead < timedelta(0):
            raise ValueError(f"lead time must not be negative: {lead}")
        fire_at = event_at - lead
        if fire_at <= now:
            continue
        triggers.append(ReminderTrigger(
            subject_id=subject_id,
            fire_at=fire_at,
            title=title,
            body=body.replace("{when}", describe_lead(lead)),
            lead_minutes=int(lead.total_seconds() // 60),
            data=dict(data or {}),
        ))
    return triggers


def dose_subject_id(occ: Occurrence) -> str:
    return f"{occ.medication_id}:{occ.date.isoformat()}:{occ.time}"


def plan_dose_reminders(
    occurrences: Iterable[Occurrence],
    now: datetime,
    lead_times: Optional[Sequence[timedelta]] = None,
) -> List[ReminderTrigger]:
    leads = DEFAULT_DOSE_LEADS if lead_times is None else lead_times
    out: List[ReminderTrigger] = []
    for occ in occurrences:
        med = occ.medication_name or occ.medication_id
        what = f"{med} ({occ.dosage})" if occ.dosage else med
        out.extend(plan(
            dose_subject_id(occ),
            occ.at,
            leads,
            now,
            title="Medication Reminder",
            body="It's time to take your medicine: " + what,
            data={"medicationId": occ.medication_id, "date": occ.date.isoformat(), "time": str(occ.time)},
        ))
    return sorted(out, key=lambda t: t.fire_at)


def plan_appointment_reminders(
    event: AppointmentEvent,
    now: datetime,
    lead_times: Optional[Sequence[timedelta]] = None,
) -> List[ReminderTrigger]:
    """Only scheduled appointments get reminders; completed/canceled ones get none."""
    if event.status != "scheduled":
        return []
    leads = DEFAULT_APPOINTMENT_LEADS if lead_times is None else lead_times
    label = _KIND_LABELS[event.kind]
    when_txt = event.scheduled_at.strftime("%b %d, %Y %I:%M %p")
    return plan(
        f"appointment:{event.id}",
        event.scheduled_at,
        leads,
        now,
        title=f"{label} reminder",
        body=f"Your {label.lower()} is {{when}} ({when_txt})",
        data={"appointmentId": event.id, "type": event.kind},
    )


class _ScopeLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


# one lock per scope, shared by every scheduler in the process;
# an entry lives only while some thread holds or waits on it
_scope_locks: Dict[str, _ScopeLock] = {}
_scope_locks_guard = threading.Lock()


@contextmanager
def _scope_lock(scope: str) -> Iterator[None]:
    with _scope_locks_guard:
        entry = _scope_locks.get(scope)
        if entry is None:
            entry = _scope_locks[scope] = _ScopeLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _scope_locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _scope_locks[scope]


class ReminderScheduler:
    """
    Cancel-then-replan against a notification gateway.
    Replans of the same scope are serialized inside this process; callers
    running several processes must serialize per scope themselves.
    """

    def __init__(self, gateway: NotificationGateway):
        self.gateway = gateway

    def replan(self, scope: str, triggers: Iterable[ReminderTrigger]) -> Tuple[int, List[str]]:
        with _scope_lock(scope):
            cancelled = self.gateway.cancel_scope(scope)
            ids = [self.gateway.schedule(scope, t) for t in triggers]
        log.info("reminders.replan " + kv(scope=scope, cancelled=cancelled, armed=len(ids)))
        return cancelled, ids
