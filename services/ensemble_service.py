# ============================================================================
# ENSEMBLE SERVICE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Ensemble definition management
# PURPOSE: Load and cache ensemble definitions
# CREATED: 18 OCT 2026
# ============================================================================
"""
Ensemble Service

Loads ensemble definitions from YAML files and provides lookup
capabilities. Caches loaded ensembles by name.

Ensemble files are stored in the ensembles/ directory (*.yaml, *.yml).
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pydantic
import yaml

from core.errors import ValidationError
from core.models import EnsembleDefinition

logger = logging.getLogger(__name__)


class EnsembleNotFoundError(KeyError):
    """Raised when an ensemble name is not loaded."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Ensemble not found: {name}")


def parse_ensemble(data: Union[Dict[str, Any], str], source: str = "<dict>") -> EnsembleDefinition:
    """
    Build an EnsembleDefinition from a dict or YAML text.

    Raises:
        ValidationError: malformed descriptor or invalid structure
    """
    if isinstance(data, str):
        try:
            data = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {source}: {e}")

    if not isinstance(data, dict):
        raise ValidationError(f"Ensemble in {source} must be a mapping, got {type(data).__name__}")

    try:
        ensemble = EnsembleDefinition.model_validate(data)
    except pydantic.ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid ensemble in {source}: {'; '.join(errors)}", errors=errors)

    errors = ensemble.validate_structure()
    if errors:
        raise ValidationError(f"Invalid ensemble in {source}: {'; '.join(errors)}", errors=errors)

    return ensemble


class EnsembleService:
    """Service for loading and managing ensemble definitions."""

    def __init__(self, ensembles_dir: Optional[str] = None):
        """
        Initialize ensemble service.

        Args:
            ensembles_dir: Directory containing ensemble YAML files.
                          Defaults to ./ensembles/ next to the package root
        """
        if ensembles_dir:
            self.ensembles_dir = Path(ensembles_dir)
        else:
            self.ensembles_dir = Path(__file__).parent.parent / "ensembles"

        self._cache: Dict[str, EnsembleDefinition] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load all ensemble definitions from the ensembles directory.

        Files that fail to load are logged and skipped.

        Returns:
            Number of ensembles loaded
        """
        if not self.ensembles_dir.exists():
            logger.warning(f"Ensembles directory not found: {self.ensembles_dir}")
            self._loaded = True
            return 0

        count = 0
        paths = sorted(self.ensembles_dir.glob("*.yaml")) + sorted(self.ensembles_dir.glob("*.yml"))
        for yaml_file in paths:
            try:
                ensemble = self.load_file(yaml_file)
            except (OSError, ValidationError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._cache[ensemble.name] = ensemble
            count += 1
            logger.info(f"Loaded ensemble: {ensemble.name} ({len(ensemble.flow)} top-level steps)")

        self._loaded = True
        logger.info(f"Loaded {count} ensembles from {self.ensembles_dir}")
        return count

    def load_file(self, path: Union[str, Path]) -> EnsembleDefinition:
        """
        Load an ensemble from a YAML file.

        Args:
            path: Path to YAML file

        Returns:
            EnsembleDefinition instance
        """
        path = Path(path)
        with open(path) as f:
            text = f.read()
        return parse_ensemble(text, source=str(path))

    def get(self, name: str) -> Optional[EnsembleDefinition]:
        """
        Get an ensemble definition by name.

        Returns:
            EnsembleDefinition or None if not found
        """
        if not self._loaded:
            self.load_all()

        return self._cache.get(name)

    def get_or_raise(self, name: str) -> EnsembleDefinition:
        """
        Get an ensemble definition, raising if not found.

        Raises:
            EnsembleNotFoundError if ensemble not found
        """
        ensemble = self.get(name)
        if ensemble is None:
            raise EnsembleNotFoundError(name)
        return ensemble

    def list_all(self) -> List[EnsembleDefinition]:
        """List all loaded ensembles."""
        if not self._loaded:
            self.load_all()

        return list(self._cache.values())

    def register(self, ensemble: Union[EnsembleDefinition, Dict[str, Any], str]) -> EnsembleDefinition:
        """
        Register an ensemble definition (for testing or programmatic use).

        Args:
            ensemble: EnsembleDefinition, dict or YAML text

        Raises:
            ValidationError: invalid structure
        """
        if not isinstance(ensemble, EnsembleDefinition):
            ensemble = parse_ensemble(ensemble)
        else:
            errors = ensemble.validate_structure()
            if errors:
                raise ValidationError(f"Invalid ensemble: {'; '.join(errors)}", errors=errors)

        self._cache[ensemble.name] = ensemble
        logger.info(f"Registered ensemble: {ensemble.name}")
        return ensemble

    def reload(self) -> int:
        """
        Reload all ensembles from disk.

        Returns:
            Number of ensembles loaded
        """
        self._cache.clear()
        self._loaded = False
        return self.load_all()


__all__ = [
    "EnsembleNotFoundError",
    "EnsembleService",
    "parse_ensemble",
]
