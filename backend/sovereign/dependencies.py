"""
Sovereign Credit Intelligence - FastAPI dependencies
"""
from fastapi import HTTPException, Request

from .services.intelligence import IntelligenceLoop


def get_loop(request: Request) -> IntelligenceLoop:
    """Dependency for FastAPI - the running IntelligenceLoop for this app."""
    loop = getattr(request.app.state, "loop", None)
    if loop is None:
        raise HTTPException(status_code=503, detail="Intelligence loop is not running")
    return loop
