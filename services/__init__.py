# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Service layer
# PURPOSE: Ensemble definition loading
# CREATED: 18 OCT 2026
# ============================================================================
"""
Services Module

Service layer between the HTTP routes and the flow executor.
"""

from .ensemble_service import EnsembleNotFoundError, EnsembleService, parse_ensemble

__all__ = [
    "EnsembleNotFoundError",
    "EnsembleService",
    "parse_ensemble",
]
