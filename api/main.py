"""
FastAPI backend: submit geo-tagged reports, cluster them into incidents, let
responders see and act on incidents inside their geofence.

Caller identity comes from the upstream auth layer in X-Caller-Id / X-Caller-Role.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.config import Settings
from core.engine import IncidentService
from core.errors import IncidentServiceError
from core.models import Caller, GeoPoint, ResponderProfile, Role

load_dotenv(override=True)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("incident_api")

# -----------------------------------------------------------------------------
# Service (in-process store; swapped out by tests)
# -----------------------------------------------------------------------------
service = IncidentService(Settings.from_env())


def get_service() -> IncidentService:
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("incident api starting settings=%s", service.settings.to_dict())
    yield


app = FastAPI(title="Incident Cluster API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# No-cache for dynamic API responses (avoid 304 for stale data)
# -----------------------------------------------------------------------------
NO_CACHE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache"}


@app.exception_handler(IncidentServiceError)
async def service_error_handler(request: Request, exc: IncidentServiceError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected %s: %s", request.method, request.url.path, exc.kind, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=NO_CACHE_HEADERS)


class MissingIdentity(IncidentServiceError):
    status_code = 401

    def __init__(self):
        super().__init__("X-Caller-Id and X-Caller-Role headers are required")


def get_caller(
    x_caller_id: Optional[str] = Header(None),
    x_caller_role: Optional[str] = Header(None),
) -> Caller:
    """Identity set by the upstream auth layer. Missing headers → 401."""
    if not x_caller_id or not x_caller_role:
        raise MissingIdentity()
    return Caller(caller_id=x_caller_id.strip(), role=Role.parse(x_caller_role))


# -----------------------------------------------------------------------------
# Request/response models
# -----------------------------------------------------------------------------
class ReportRequest(BaseModel):
    lat: float
    lng: float
    category: str = "accident"
    media_ref: Optional[str] = None  # reference to media uploaded elsewhere
    is_witness: bool = False


class ReportResponse(BaseModel):
    report_id: str
    incident_id: str
    cluster_new: bool  # True if this report opened a new incident


class ProfileRequest(BaseModel):
    lat: float
    lng: float
    full_name: Optional[str] = None
    phone: Optional[str] = None
    radius_m: Optional[float] = None


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
@app.post("/reports", response_model=ReportResponse)
def submit_report(
    body: ReportRequest,
    caller: Caller = Depends(get_caller),
    svc: IncidentService = Depends(get_service),
):
    """Cluster and store a report; the response names the incident it joined or opened."""
    logger.info("report received reporter=%s lat=%s lng=%s category=%s", caller.caller_id, body.lat, body.lng, body.category)
    result = svc.submit_report(
        caller,
        GeoPoint(body.lat, body.lng),
        category=body.category,
        media_ref=body.media_ref,
        is_witness=body.is_witness,
    )
    return JSONResponse(content=ReportResponse(**result.to_dict()).model_dump(), headers=NO_CACHE_HEADERS)


@app.get("/reports")
def list_my_reports(caller: Caller = Depends(get_caller), svc: IncidentService = Depends(get_service)):
    """Reports submitted by the caller."""
    reports = svc.list_reports(caller)
    return JSONResponse(content={"reports": [r.to_dict() for r in reports]}, headers=NO_CACHE_HEADERS)


@app.get("/reports/{report_id}")
def get_report(report_id: str, caller: Caller = Depends(get_caller), svc: IncidentService = Depends(get_service)):
    return JSONResponse(content=svc.get_report(caller, report_id).to_dict(), headers=NO_CACHE_HEADERS)


@app.get("/incidents/nearby")
def nearby_incidents(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    svc: IncidentService = Depends(get_service),
):
    """Open incidents inside the responder's geofence, nearest first."""
    rows = svc.nearby_incidents(caller, limit=limit, offset=offset)
    out = []
    for inc, dist in rows:
        d = inc.to_dict()
        d["distance_m"] = round(dist, 1)
        out.append(d)
    return JSONResponse(content={"offset": offset, "count": len(out), "incidents": out}, headers=NO_CACHE_HEADERS)


@app.get("/incidents/{incident_id}")
def get_incident(incident_id: str, svc: IncidentService = Depends(get_service)):
    """Public incident summary."""
    return JSONResponse(content=svc.get_incident_summary(incident_id).to_public_dict(), headers=NO_CACHE_HEADERS)


@app.post("/incidents/{incident_id}/accept")
def accept_incident(incident_id: str, caller: Caller = Depends(get_caller), svc: IncidentService = Depends(get_service)):
    return JSONResponse(content=svc.accept(caller, incident_id).to_dict(), headers=NO_CACHE_HEADERS)


@app.post("/incidents/{incident_id}/resolve")
def resolve_incident(incident_id: str, caller: Caller = Depends(get_caller), svc: IncidentService = Depends(get_service)):
    return JSONResponse(content=svc.resolve(caller, incident_id).to_dict(), headers=NO_CACHE_HEADERS)


@app.post("/incidents/{incident_id}/false-alarm")
def false_alarm_incident(incident_id: str, caller: Caller = Depends(get_caller), svc: IncidentService = Depends(get_service)):
    return JSONResponse(content=svc.mark_false_alarm(caller, incident_id).to_dict(), headers=NO_CACHE_HEADERS)


@app.put("/profiles/{responder_id}")
def register_profile(
    responder_id: str,
    body: ProfileRequest,
    caller: Caller = Depends(get_caller),
    svc: IncidentService = Depends(get_service),
):
    """Register or move the caller's own responder profile. Stand-in for the external account system."""
    profile = svc.register_profile(caller, ResponderProfile(
        responder_id=responder_id,
        location=GeoPoint(body.lat, body.lng),
        full_name=body.full_name,
        phone=body.phone,
        radius_m=body.radius_m,
    ))
    return JSONResponse(content=profile.to_dict(), headers=NO_CACHE_HEADERS)


@app.get("/profiles/{responder_id}")
def get_profile(responder_id: str, svc: IncidentService = Depends(get_service)):
    return JSONResponse(content=svc.get_profile(responder_id).to_dict(), headers=NO_CACHE_HEADERS)


@app.get("/health")
def health(svc: IncidentService = Depends(get_service)):
    return JSONResponse(
        content={"status": "ok", "incidents": len(svc.store.snapshot()), "settings": svc.settings.to_dict()},
        headers=NO_CACHE_HEADERS,
    )
