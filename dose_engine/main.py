from fastapi import FastAPI
from dose_engine.api.routes_schedule import router as schedule_router
from dose_engine.api.routes_adherence import router as adherence_router
from dose_engine.api.routes_reminders import router as reminders_router
from dose_engine.core.logging_utils import setup_logging

setup_logging()

app = FastAPI(title="Medication Dose Engine", version="1.0")

app.include_router(schedule_router)
app.include_router(adherence_router)
app.include_router(reminders_router)

@app.get("/health")
def health():
    return {"ok": True}
@app.get("/")
def root():
    return {"ok": True, "service": "Medication Dose Engine"}
