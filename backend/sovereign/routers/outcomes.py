"""
Sovereign Credit Intelligence - Execution Outcomes API Router

Records outcomes of enforcement actions executed outside the orchestration
engine (mailed letters, manual portal filings). Outcomes feed the Strategy
Engine's cooldown and drift model.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_loop
from ..models.intelligence import ExecutionOutcome, StrategyType
from ..services.intelligence import IntelligenceLoop


router = APIRouter(prefix="/outcomes", tags=["outcomes"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class OutcomeRequest(BaseModel):
    """Request model for recording an execution outcome."""
    entity_id: str
    rule_id: str
    action_type: str  # DISPUTE, CFPB_COMPLAINT, ESCALATION
    outcome: str      # SUCCESS, LEGAL_REJECTION, SYSTEM_ERROR
    user_id: Optional[str] = None
    trigger_feedback: bool = False


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("")
async def record_outcome(request: OutcomeRequest, loop: IntelligenceLoop = Depends(get_loop)):
    """
    Record one outcome. With trigger_feedback and a user_id the subject is
    re-scanned for the entity once the outcome is stored.
    """
    try:
        outcome = ExecutionOutcome(request.outcome)
    except ValueError:
        valid = [o.value for o in ExecutionOutcome]
        raise HTTPException(status_code=400, detail=f"Invalid outcome. Must be one of: {valid}")

    try:
        action_type = StrategyType(request.action_type)
    except ValueError:
        valid = [t.value for t in StrategyType]
        raise HTTPException(status_code=400, detail=f"Invalid action_type. Must be one of: {valid}")

    if request.trigger_feedback and not request.user_id:
        raise HTTPException(status_code=400, detail="user_id is required when trigger_feedback is set")

    entry = loop.strategy_engine.record_outcome(
        request.entity_id,
        request.rule_id,
        action_type,
        outcome,
    )

    response = {"entity_id": request.entity_id, "entry": entry.to_dict(), "lifecycle": None}
    if request.trigger_feedback:
        result = await loop.handle_plan_completion(request.user_id, [request.entity_id])
        response["lifecycle"] = result.to_dict()
    return response
