# ============================================================================
# ENSEMBLE ORCHESTRATOR - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application wiring registry, ensembles and executor
# CREATED: 18 OCT 2026
# ============================================================================
"""
Ensemble Orchestrator Main Application

FastAPI application that:
1. Loads ensemble definitions from ENSEMBLE_DIR
2. Registers the example agents
3. Exposes ensemble runs over HTTP

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, EPOCH, CODENAME
from fastapi.middleware.cors import CORSMiddleware

from agents import AgentRegistry
from agents.examples import register_example_agents
from api.routes import router, set_services
from core.config import get_defaults
from core.models.context import env_from_os
from orchestrator import FlowExecutor, InMemoryCache
from services import EnsembleService

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup.
    """
    logger.info(f"Starting {CODENAME} v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    defaults = get_defaults()

    # Load ensemble definitions
    ensemble_service = EnsembleService(defaults.api.ensembles_dir)
    count = ensemble_service.load_all()
    logger.info(f"Loaded {count} ensembles")

    # Register agents
    registry = AgentRegistry()
    register_example_agents(registry)
    logger.info(f"Registered {len(registry)} agents")

    executor = FlowExecutor(
        registry,
        cache=InMemoryCache() if defaults.cache.enabled else None,
        defaults=defaults,
    )

    # Set services for API routes
    set_services(
        ensemble_service=ensemble_service,
        executor=executor,
        env=env_from_os(defaults.api.env_prefix),
    )

    yield

    logger.info(f"{CODENAME} stopped")


# Create FastAPI app
app = FastAPI(
    title=CODENAME,
    description=f"Epoch {EPOCH} ensemble orchestration",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": CODENAME,
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
