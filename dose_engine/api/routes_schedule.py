# dose_engine/api/routes_schedule.py
from fastapi import APIRouter, HTTPException
from dose_engine.schemas.models import (
    AgendaRequest, AgendaResponse,
    AppointmentAgendaRequest, AppointmentAgendaResponse,
    ExpectedCountRequest, ExpectedCountResponse,
)
from dose_engine.services.agenda import build_appointment_agenda
from dose_engine.services.planning import build_patient_schedule, expected_counts, parse_appointments

router = APIRouter(prefix="/schedule", tags=["schedule"])

def check_window(window_start, window_end):
    if window_end < window_start:
        raise HTTPException(status_code=400, detail="windowEnd is before windowStart")

@router.post("/agenda", response_model=AgendaResponse)
def agenda(req: AgendaRequest):
    check_window(req.window_start, req.window_end)
    sched = build_patient_schedule(req.medications, req.window_start, req.window_end)
    return AgendaResponse(agenda=sched.agenda, skipped=sched.skipped)

@router.post("/expected", response_model=ExpectedCountResponse)
def expected(req: ExpectedCountRequest):
    counts, skipped = expected_counts(req.medications)
    return ExpectedCountResponse(counts=counts, skipped=skipped)

@router.post("/appointments", response_model=AppointmentAgendaResponse)
def appointments(req: AppointmentAgendaRequest):
    check_window(req.window_start, req.window_end)
    events, skipped = parse_appointments(req.appointments)
    return AppointmentAgendaResponse(
        agenda=build_appointment_agenda(events, req.window_start, req.window_end),
        skipped=skipped,
    )
