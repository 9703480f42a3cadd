"""
Docket Deadline Engine - FastAPI Application

Main entry point for the deadline automation backend.

Architecture:
- Trigger event → TemplateRegistry → matching DeadlineTemplates
- Template + HolidayCalendar → Date Engine → due date + trace
- Generator → AutomatedDeadline + Deadline + DeadlineCalculation (one unit per template)
- Override → correction + new DeadlineCalculation (original never lost)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import ENABLE_RECONCILE_RUNNER, LOG_LEVEL, RECONCILE_INTERVAL_SECONDS
from .database import SessionLocal, init_db
from .routers import (
    automated_deadlines_router,
    deadline_calculator_router,
    reference_router,
    scheduler_router,
)
from .services.deadlines import DeadlineReconciliationRunner

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup; own the reconciliation runner when enabled."""
    init_db()

    runner = None
    if ENABLE_RECONCILE_RUNNER:
        runner = DeadlineReconciliationRunner(SessionLocal, interval_seconds=RECONCILE_INTERVAL_SECONDS)
        runner.start()
    app.state.reconcile_runner = runner

    yield

    if runner is not None:
        runner.stop()

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Docket Deadline Engine",
    description="""
    Docket Deadline Engine - Legal Deadline Automation

    Generates court deadlines from case events using jurisdiction-specific
    rules and holiday calendars, with an immutable calculation audit trail.

    ## Pipeline
    1. **Trigger**: case event (e.g. COMPLAINT_SERVED) with a trigger date
    2. **Templates**: every matching jurisdiction-specific and universal rule
    3. **Date Engine**: calendar/business/court-day arithmetic with trace
    4. **Persistence**: deadline + calculation snapshot, per template

    ## Key Principles
    - Calculation snapshots are append-only
    - One failing template never blocks the others
    - Re-delivered triggers are processed once
    - Overrides require a reason and keep the original calculation
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(automated_deadlines_router)
app.include_router(deadline_calculator_router)
app.include_router(reference_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Docket Deadline Engine",
        "version": "1.0.0",
        "description": "Legal Deadline Automation",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
