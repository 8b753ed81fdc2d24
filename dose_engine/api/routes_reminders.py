# dose_engine/api/routes_reminders.py
from datetime import datetime
from zoneinfo import ZoneInfo
from fastapi import APIRouter, Depends, HTTPException
from dose_engine.api.routes_schedule import check_window
from dose_engine.core.engine_config import TIMEZONE
from dose_engine.schemas.models import ReplanRequest, ReplanResponse
from dose_engine.services.notifier import NotificationGateway, NotificationGatewayError, get_notification_gateway
from dose_engine.services.planning import plan_patient_reminders
from dose_engine.services.reminders import ReminderScheduler
from dose_engine.services.security import verify_internal_service
from dose_engine.utils.clock_time import as_local_naive

router = APIRouter(prefix="/reminders", tags=["reminders"])

def _local_now() -> datetime:
    return datetime.now(ZoneInfo(TIMEZONE)).replace(tzinfo=None)

@router.post("/replan", response_model=ReplanResponse)
def replan(
    req: ReplanRequest,
    gateway: NotificationGateway = Depends(get_notification_gateway),
    _ = Depends(verify_internal_service),
):
    check_window(req.window_start, req.window_end)
    now = as_local_naive(req.now, TIMEZONE) if req.now else _local_now()

    triggers, skipped = plan_patient_reminders(
        req.medications, req.appointments, req.window_start, req.window_end, now
    )

    try:
        cancelled, ids = ReminderScheduler(gateway).replan(req.patient_id, triggers)
    except NotificationGatewayError as e:
        # retry policy belongs to the caller
        raise HTTPException(status_code=503, detail=str(e))

    return ReplanResponse(
        patient_id=req.patient_id,
        cancelled=cancelled,
        armed=len(ids),
        triggers=triggers,
        skipped=skipped,
    )
