# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for running ensembles
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the ensemble orchestrator.
"""

from .routes import router, set_services
from .schemas import (
    ExecuteRequest,
    EnsembleSummary,
    EnsembleListResponse,
    ErrorResponse,
)

__all__ = [
    "router",
    "set_services",
    "ExecuteRequest",
    "EnsembleSummary",
    "EnsembleListResponse",
    "ErrorResponse",
]
