"""
Sovereign Credit Intelligence - Profiles API Router

Read a subject's profile and trigger a lifecycle run for it.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_loop
from ..models.intelligence import UserCreditProfile
from ..services.intelligence import IntelligenceLoop, LifecycleStatus
from ..services.store import PersistenceError


router = APIRouter(prefix="/profiles", tags=["profiles"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ProcessRequest(BaseModel):
    """Request model for a lifecycle run. Omit target ids for a full scan."""
    target_entity_ids: Optional[List[str]] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

async def _load_or_404(loop: IntelligenceLoop, user_id: str) -> UserCreditProfile:
    try:
        profile = await loop.store.load(user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=f"Profile store unavailable: {e}")
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Profile {user_id} not found")
    return profile


@router.get("/{user_id}")
async def get_profile(user_id: str, loop: IntelligenceLoop = Depends(get_loop)):
    """Return the stored profile aggregate."""
    profile = await _load_or_404(loop, user_id)
    return profile.to_dict()


@router.post("/{user_id}/process")
async def process_profile(
    user_id: str,
    request: Optional[ProcessRequest] = None,
    loop: IntelligenceLoop = Depends(get_loop),
):
    """
    Run the violation -> strategy -> orchestration lifecycle for a stored
    profile and return its result. The profile is read inside the subject's
    queue.
    """
    targets = request.target_entity_ids if request else None
    result = await loop.rescan(user_id, targets)
    if result.status is LifecycleStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"Profile {user_id} not found")
    return result.to_dict()


@router.get("/{user_id}/plan")
async def get_latest_plan(user_id: str, loop: IntelligenceLoop = Depends(get_loop)):
    """Most recently seeded orchestration plan for the subject."""
    plan = loop.plans.get(user_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"No plan seeded for {user_id}")
    return plan.to_dict()
