from fastapi import APIRouter
from dose_engine.schemas.models import AdherenceRequest, AdherenceResponse
from dose_engine.services.planning import build_patient_adherence

router = APIRouter(prefix="/adherence", tags=["adherence"])

@router.post("/summary", response_model=AdherenceResponse)
def summary(req: AdherenceRequest):
    per_med, overall, skipped = build_patient_adherence(req.medications, req.intake_records)
    return AdherenceResponse(per_medication=per_med, overall=overall, skipped=skipped)
