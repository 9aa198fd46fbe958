"""
IMPCG Companion Backend API
===========================
Local, single-user HTTP surface over the clinical state engine.

POLICY: the deterministic engine is authoritative. This layer only
parses requests, calls the engine and shapes responses; every audit
event is raised by the engine itself.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from impcg_companion.config import settings
from impcg_companion.modules.audit_trail import AuditAction, AuditTrail
from impcg_companion.modules.banc_risk import assess_banc
from impcg_companion.modules.partogram_tracker import (
    PartogramTracker,
    action_line_hours,
    alert_line_hours,
)
from impcg_companion.modules.patient_repository import PatientRepository
from impcg_companion.modules.pph_session import (
    AsyncioTickScheduler,
    EmergencySessionEngine,
    SessionStateError,
    format_elapsed,
)
from impcg_companion.modules.reference_library import ReferenceLibrary
from impcg_companion.modules.referral_composer import generate_referral
from impcg_companion.modules.schemas import VitalsSnapshot
from impcg_companion.modules.storage import JsonFileStore
from impcg_companion.modules.triage_classifier import assess_triage

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ── Engine components (built in lifespan) ─────────────────────────────────────
COMPONENTS: Dict[str, Any] = {}


# ════════════════════════════════════════════════════════════════════════════
# DATA MODELS
# ════════════════════════════════════════════════════════════════════════════

class EncounterRequest(BaseModel):
    vitals: VitalsSnapshot
    notes: str = Field(default='')
    gestational_age_weeks: Optional[float] = Field(default=None, ge=0, le=45)


class BancRequest(BaseModel):
    systolic: Union[int, str]
    diastolic: Union[int, str]
    protein_dipstick: int = Field(default=0, ge=0, le=3, description="0=Neg, 1=1+, 2=2+, 3=3+")
    gestational_age_weeks: Optional[int] = None

    model_config = {"json_schema_extra": {"example": {
        "systolic": 145, "diastolic": 95, "protein_dipstick": 2, "gestational_age_weeks": 32
    }}}


class ObservationRequest(BaseModel):
    dilation_cm: float = Field(..., ge=0, le=10)
    observed_at: str = Field(..., description="Time of day, HH:MM")


# ════════════════════════════════════════════════════════════════════════════
# FASTAPI APP + LIFESPAN
# ════════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=" * 60)
    logger.info("IMPCG Companion Backend API — Starting")
    logger.info(f"  Store     : {settings.DATA_DIR}")
    logger.info(f"  Audit log : {settings.AUDIT_LOG_PATH}")
    logger.info("=" * 60)

    store = JsonFileStore(settings.DATA_DIR)
    audit = AuditTrail(settings.AUDIT_LOG_PATH, settings.AUDIT_HMAC_KEY, settings.DEVICE_USER_ID)

    partogram = PartogramTracker(store, audit=audit)
    partogram.load()

    pph = EmergencySessionEngine(store, audit=audit, scheduler=AsyncioTickScheduler())
    resume_state = pph.initialize()
    logger.info(f"PPH resume protocol: {resume_state.value}")

    COMPONENTS.update({
        'store': store,
        'audit': audit,
        'records': PatientRepository(store, audit=audit),
        'partogram': partogram,
        'pph': pph,
        'library': ReferenceLibrary(),
    })

    yield

    logger.info("Shutting down IMPCG Companion Backend API")
    if pph.scheduler is not None:
        pph.scheduler.cancel()
    COMPONENTS.clear()


app = FastAPI(
    title="IMPCG Companion Backend API",
    version="2.0.0",
    description="Offline maternal clinical decision support engine",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _pph_view(engine: EmergencySessionEngine) -> dict:
    session = engine.session
    return {
        'resume_state':     engine.resume_state.value,
        'is_initialized':   engine.is_initialized,
        'pending_resume':   engine.pending_session is not None,
        'pending_minutes_ago': engine.pending_minutes_ago(),
        'is_active':        session.is_active,
        'start_time':       session.start_time.isoformat() if session.start_time else None,
        'actions_taken':    sorted(session.actions_taken),
        'is_refractory':    session.is_refractory,
        'elapsed_seconds':  engine.elapsed_seconds,
        'elapsed':          format_elapsed(engine.elapsed_seconds),
        'checklist':        engine.checklist(),
    }


def _partogram_view(tracker: PartogramTracker) -> dict:
    return {
        'active_phase_start': tracker.active_phase_start.isoformat() if tracker.active_phase_start else None,
        'points': [
            {
                'dilation_cm':      p.dilation_cm,
                'observed_at':      p.observed_at.isoformat(),
                'hours_from_start': round(p.hours_from_start, 2),
                'alert_line_hours':  alert_line_hours(p.dilation_cm),
                'action_line_hours': action_line_hours(p.dilation_cm),
            }
            for p in tracker.points
        ],
        'breach_action_line': tracker.breach_action_line,
    }


# ════════════════════════════════════════════════════════════════════════════
# ROUTES
# ════════════════════════════════════════════════════════════════════════════

@app.get("/")
async def root():
    return {
        "service": "IMPCG Companion Backend API",
        "version": "2.0.0",
        "status":  "running",
    }


@app.get("/api/v1/health")
def health():
    return {
        "service":      "IMPCG Companion Backend",
        "status":       "ok",
        "engine_ready": bool(COMPONENTS),
    }


# ── Triage and records ────────────────────────────────────────────────────────

@app.post("/api/v1/triage/classify")
def triage_classify(vitals: VitalsSnapshot):
    result = assess_triage(vitals)
    return {
        'triage_result': result.color.value if result.color else None,
        'warning':       result.warning,
    }


@app.post("/api/v1/triage/save")
def triage_save(body: EncounterRequest):
    record = COMPONENTS['records'].save_encounter(
        body.vitals, notes=body.notes, gestational_age_weeks=body.gestational_age_weeks
    )
    if record is None:
        raise HTTPException(status_code=422, detail="Vitals have no triage classification; nothing saved")
    return record.model_dump(mode='json')


@app.get("/api/v1/records")
def list_records():
    return [r.model_dump(mode='json') for r in COMPONENTS['records'].all_records()]


@app.get("/api/v1/records/stats")
def record_stats():
    stats = COMPONENTS['records'].stats()
    return {'high_risk': stats.high_risk, 'low_risk': stats.low_risk, 'total': stats.total}


@app.get("/api/v1/records/{record_id}/referral")
def record_referral(record_id: str):
    record = COMPONENTS['records'].get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {'record_id': record_id, 'text': generate_referral(record, COMPONENTS['audit'])}


# ── BANC ──────────────────────────────────────────────────────────────────────

@app.post("/api/v1/banc/assess")
def banc_assess(body: BancRequest):
    result = assess_banc(
        body.systolic, body.diastolic, body.protein_dipstick,
        gestational_age_weeks=body.gestational_age_weeks,
        audit=COMPONENTS['audit'],
    )
    if result is None:
        raise HTTPException(status_code=422, detail="Systolic and diastolic BP must be whole numbers")
    return {
        'risk_level':  result.risk_level.value,
        'title':       result.title,
        'action':      result.action,
        'inputs': {
            'systolic':  result.systolic,
            'diastolic': result.diastolic,
            'protein_dipstick': result.protein_dipstick,
            'gestational_age_weeks': result.gestational_age_weeks,
        },
    }


# ── Partogram ─────────────────────────────────────────────────────────────────

@app.get("/api/v1/partogram")
def partogram_state():
    return _partogram_view(COMPONENTS['partogram'])


@app.post("/api/v1/partogram/observations")
def partogram_add(body: ObservationRequest):
    tracker = COMPONENTS['partogram']
    try:
        tracker.add_observation(body.dilation_cm, body.observed_at)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _partogram_view(tracker)


@app.delete("/api/v1/partogram")
def partogram_clear(confirm: bool = False):
    if not COMPONENTS['partogram'].reset(confirmed=confirm):
        raise HTTPException(status_code=400, detail="Clearing the partogram requires confirm=true")
    return _partogram_view(COMPONENTS['partogram'])


# ── PPH ───────────────────────────────────────────────────────────────────────
# async so the tick scheduler runs on the app's event loop

@app.get("/api/v1/pph")
async def pph_state():
    engine = COMPONENTS['pph']
    engine.tick()
    return _pph_view(engine)


@app.post("/api/v1/pph/start")
async def pph_start():
    return _run_pph(lambda engine: engine.start())


@app.post("/api/v1/pph/resume")
async def pph_resume():
    return _run_pph(lambda engine: engine.resume())


@app.post("/api/v1/pph/discard")
async def pph_discard():
    return _run_pph(lambda engine: engine.discard())


@app.post("/api/v1/pph/actions/{tag}")
async def pph_toggle_action(tag: str):
    return _run_pph(lambda engine: engine.toggle_action(tag))


@app.post("/api/v1/pph/end")
async def pph_end(confirm: bool = False):
    if not confirm:
        raise HTTPException(status_code=400, detail="Ending the PPH session requires confirm=true")
    return _run_pph(lambda engine: engine.end(confirmed=True))


def _run_pph(operation) -> dict:
    engine = COMPONENTS['pph']
    try:
        operation(engine)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _pph_view(engine)


# ── Reference content ─────────────────────────────────────────────────────────

@app.get("/api/v1/guidelines/search")
def guidelines_search(q: str = ''):
    return [c.model_dump() for c in COMPONENTS['library'].search(q)]


@app.get("/api/v1/drugs")
def drugs(q: str = ''):
    return [d.model_dump() for d in COMPONENTS['library'].emergency_drugs(q)]


@app.get("/api/v1/protocols")
def protocols(q: str = ''):
    return [p.model_dump() for p in COMPONENTS['library'].protocols(q)]


@app.get("/api/v1/protocols/{item_id}")
def protocol_detail(item_id: str):
    item = COMPONENTS['library'].get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Protocol not found")
    action = AuditAction.CALCULATE_DOSE if item.category == 'Emergency Drug' else AuditAction.VIEW_PROTOCOL
    COMPONENTS['audit'].record(action, f"Viewed {item.title} ({item.pdf_ref})")
    return item.model_dump()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        workers=1,
        log_level="info",
    )
