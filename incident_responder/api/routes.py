"""
Incident Responder - API Routes
===============================

Read access to the incident log and management of learned fixes.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from incident_responder.api.schemas import (
    Incident,
    IncidentListResponse,
    Resolution,
    StoreStats,
)
from incident_responder.constants import IncidentClass, IncidentStatus
from incident_responder.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# INCIDENTS
# =============================================================================

@router.get("/incidents", response_model=IncidentListResponse, tags=["incidents"])
async def list_incidents(
    request: Request,
    status: Optional[IncidentStatus] = None,
    incident_class: Optional[IncidentClass] = None,
    limit: int = Query(default=100, ge=1, le=1000)
):
    """List incidents, newest first, with optional filtering."""
    store = request.app.state.incident_store

    incidents = store.list_incidents(status=status, incident_class=incident_class)

    return IncidentListResponse(
        incidents=incidents[:limit],
        total=len(incidents)
    )


@router.get("/incidents/{incident_id}", response_model=Incident, tags=["incidents"])
async def get_incident(incident_id: str, request: Request):
    """Get a specific incident by ID."""
    store = request.app.state.incident_store
    incident = store.get_incident(incident_id)

    if not incident:
        raise HTTPException(status_code=404, detail="Incident not found")

    return incident


# =============================================================================
# LEARNED FIXES
# =============================================================================

@router.get("/fixes", response_model=dict[IncidentClass, Resolution], tags=["fixes"])
async def list_fixes(request: Request):
    """Learned fix per incident class."""
    return request.app.state.fix_cache.snapshot()


@router.delete("/fixes", tags=["fixes"])
async def clear_fixes(request: Request):
    """Forget every learned fix; the next incident of each class is diagnosed again."""
    fix_cache = request.app.state.fix_cache
    cleared = len(fix_cache)
    fix_cache.clear()

    logger.info(f"Cleared {cleared} learned fixes", extra={"cleared": cleared})

    return {"status": "cleared", "cleared": cleared}


# =============================================================================
# STATISTICS
# =============================================================================

@router.get("/stats", response_model=StoreStats, tags=["stats"])
async def get_stats(request: Request):
    """Aggregate incident statistics."""
    return request.app.state.incident_store.get_stats()
