"""
Convivencia Escolar - FastAPI Application

Main entry point for the school-discipline case engine.

Architecture:
- Intake → Case (folio, severity, fatal deadline, milestone template)
- Case → CaseStateMachine → stage change + audit-log entry (one write)
- Cases → ComplianceAuditor → AuditResult / KPIs
- Cases → DeadlineEngine → DeadlineAlert
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .database import init_db
from .routers import cases_router, compliance_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Convivencia Escolar",
    description="""
    Convivencia Escolar - Disciplinary Case Engine

    Tracks student disciplinary cases from intake to closure under the
    school's due-process rules.

    ## Lifecycle
    1. **Intake**: folio, severity and fatal deadline (business days)
    2. **Transitions**: every stage change requires its checklist
    3. **Audit log**: append-only, written together with each stage change
    4. **Compliance**: per-case procedural checks and nullity risk

    ## Key Principles
    - Closed cases are read-only
    - Expulsion without documented prior measures is a nullity risk
    - Deadlines never land on a weekend
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(cases_router)
app.include_router(compliance_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Convivencia Escolar",
        "version": __version__,
        "description": "Disciplinary Case Engine",
        "docs": "/docs",
        "resources": {
            "cases": "/cases",
            "compliance": "/compliance",
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m convivencia.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
