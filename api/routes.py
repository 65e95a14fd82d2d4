# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP trigger for ensemble runs
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the ensemble orchestrator.

Runs are synchronous: POST /ensembles/{name}/execute waits for the run to
finish and returns the EnsembleResult. A failed run still returns the full
result body; the status code reflects the failure kind.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from .schemas import (
    EnsembleListResponse,
    EnsembleSummary,
    ErrorResponse,
    ExecuteRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Failure kind -> HTTP status for failed runs
STATUS_BY_ERROR_KIND: Dict[str, int] = {
    "ValidationError": 422,
    "TimeoutError": 504,
}


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_ensemble_service = None
_executor = None
_env: Dict[str, Any] = {}


def set_services(ensemble_service, executor, env: Optional[Dict[str, Any]] = None):
    """Set service instances for dependency injection."""
    global _ensemble_service, _executor, _env
    _ensemble_service = ensemble_service
    _executor = executor
    _env = dict(env or {})


def get_ensemble_service():
    if _ensemble_service is None:
        raise HTTPException(503, "Ensemble service not initialized")
    return _ensemble_service


def get_executor():
    if _executor is None:
        raise HTTPException(503, "Executor not initialized")
    return _executor


def status_code_for(result) -> int:
    """HTTP status for a run result."""
    if result.succeeded:
        return 200
    return STATUS_BY_ERROR_KIND.get(result.error_kind, 500)


# ============================================================================
# ENSEMBLES
# ============================================================================

@router.get("/ensembles", response_model=EnsembleListResponse, tags=["Ensembles"])
async def list_ensembles():
    """
    List loaded ensemble definitions.
    """
    service = get_ensemble_service()

    return EnsembleListResponse(
        ensembles=[
            EnsembleSummary(
                name=e.name,
                version=e.version,
                description=e.description,
                steps=len(e.flow),
                agents=sorted(set(e.agent_ids())),
            )
            for e in service.list_all()
        ]
    )


@router.get(
    "/ensembles/{name}",
    tags=["Ensembles"],
    responses={404: {"model": ErrorResponse, "description": "Ensemble not found"}},
)
async def get_ensemble(name: str):
    """
    Get an ensemble descriptor.
    """
    service = get_ensemble_service()
    ensemble = service.get(name)

    if ensemble is None:
        raise HTTPException(404, f"Ensemble not found: {name}")

    return ensemble.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post(
    "/ensembles/{name}/execute",
    tags=["Ensembles"],
    responses={
        200: {"description": "Run succeeded"},
        404: {"model": ErrorResponse, "description": "Ensemble not found"},
        422: {"description": "Ensemble or input failed validation"},
        500: {"description": "Run failed"},
        504: {"description": "A step timed out"},
    },
)
async def execute_ensemble(name: str, request: Optional[ExecuteRequest] = None):
    """
    Run an ensemble and return its result.

    The request env is merged over the server env (request wins).
    """
    service = get_ensemble_service()
    executor = get_executor()
    request = request or ExecuteRequest()

    ensemble = service.get(name)
    if ensemble is None:
        raise HTTPException(404, f"Ensemble not found: {name}")

    result = await executor.execute(
        ensemble,
        input=request.input,
        env={**_env, **request.env},
        run_id=request.run_id,
    )

    if not result.succeeded:
        logger.warning(f"Run {result.run_id} of {name} failed: {result.error}")

    return JSONResponse(status_code=status_code_for(result), content=result.to_dict())


# ============================================================================
# AGENTS
# ============================================================================

@router.get("/agents", tags=["Agents"])
async def list_agents():
    """
    List agents registered with the executor.
    """
    executor = get_executor()
    return {"agents": executor.registry.list_agents()}


__all__ = [
    "router",
    "set_services",
    "status_code_for",
]
