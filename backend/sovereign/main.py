"""
Sovereign Credit Intelligence - FastAPI Application

Main entry point for the closed-loop credit intelligence backend.

Architecture:
- Extraction -> Normalization -> Entity Resolution -> UserCreditProfile
- UserCreditProfile -> ViolationEngine -> active_violations
- active_violations -> StrategyEngine -> active_strategies
- active_strategies -> OrchestrationEngine -> outcomes -> StrategyEngine history
- Plan completion -> IntelligenceLoop re-scan of affected entities
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import LOG_LEVEL
from .database import SessionLocal, init_db
from .routers import events_router, outcomes_router, profiles_router
from .services.intelligence import IntelligenceLoop
from .services.store import SqlProfileStore
from .services.strategy import SqlExecutionHistory, StrategyEngine

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_loop() -> IntelligenceLoop:
    """Intelligence Loop backed by the SQL profile and history stores."""
    return IntelligenceLoop(
        store=SqlProfileStore(SessionLocal),
        strategy_engine=StrategyEngine(history=SqlExecutionHistory(SessionLocal)),
    )


def create_app(loop: Optional[IntelligenceLoop] = None) -> FastAPI:
    """
    Build the application. A pre-built loop skips database initialization,
    which lets tests run against in-memory stores.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize database and start the intelligence loop."""
        active_loop = loop
        if active_loop is None:
            init_db()
            active_loop = build_loop()
        await active_loop.start()
        app.state.loop = active_loop
        try:
            yield
        finally:
            await active_loop.stop()
            app.state.loop = None

    app = FastAPI(
        lifespan=lifespan,
        title="Sovereign Credit Intelligence",
        description="""
        Sovereign Credit Intelligence - Closed-Loop Enforcement Engine

        Detects Metro 2 reporting violations, derives enforcement strategies
        and learns from execution outcomes.

        ## Pipeline
        1. **Violation Engine**: deterministic tradeline rules
        2. **Strategy Engine**: confidence gate, conflict freeze, cooldown, drift
        3. **Intelligence Loop**: per-subject sequencing, idempotent plan seeding
        4. **Orchestration**: skill execution and outcome feedback
        """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(profiles_router)
    app.include_router(outcomes_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": "1.0.0"}

    return app


app = create_app()


# For running with: python -m sovereign.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
