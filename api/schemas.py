# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class ExecuteRequest(BaseModel):
    """Request to run an ensemble."""
    input: Dict[str, Any] = Field(
        default_factory=dict,
        description="Run input, visible to steps as input.*"
    )
    env: Dict[str, Any] = Field(
        default_factory=dict,
        description="Configuration merged over the server env, visible as env.*"
    )
    run_id: Optional[str] = Field(
        None,
        max_length=64,
        description="Optional run id (generated if omitted)"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "input": {"value": 10},
                }
            ]
        }
    }


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class EnsembleSummary(BaseModel):
    """Ensemble listing entry."""
    name: str
    version: Optional[str] = None
    description: Optional[str] = None
    steps: int = Field(0, description="Number of top-level steps")
    agents: List[str] = Field(default_factory=list)


class EnsembleListResponse(BaseModel):
    """List of ensembles response."""
    ensembles: List[EnsembleSummary]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None


__all__ = [
    "ExecuteRequest",
    "EnsembleSummary",
    "EnsembleListResponse",
    "ErrorResponse",
]
