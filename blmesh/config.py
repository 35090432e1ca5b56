"""
Run Configuration

Settings shared by the command-line passes, loaded from a JSON file and
overridden by command-line flags. Validation is done by Pydantic; any
validation failure surfaces as ConfigurationError.

Example file:
    {
        "num_divisions": 3,
        "facegroup_tag": "gmsh:physical",
        "boundary_layers": {"wall": 1, "floor": 1},
        "output_path": "output.msh"
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError, field_validator

from blmesh.core.boundary_subdivider import DEFAULT_NUM_DIVISIONS
from blmesh.core.errors import ConfigurationError, MissingInputError
from blmesh.core.mesh_analysis import DEFAULT_COINCIDENT_TOLERANCE
from blmesh.core.mesh_io import DEFAULT_FACEGROUP_TAG
from blmesh.core.sharp_edge_classifier import DEFAULT_COS_THRESHOLD

logger = logging.getLogger(__name__)

LogLevel = Literal['DEBUG', 'INFO', 'WARNING', 'ERROR']


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    )


class BoundaryLayerConfig(BaseModel):
    """Settings for one boundary-layer run."""
    model_config = ConfigDict(extra='forbid')

    num_divisions: int = Field(default=DEFAULT_NUM_DIVISIONS, ge=2, description="Sub-prisms per prism")
    facegroup_tag: str = Field(default=DEFAULT_FACEGROUP_TAG, description="Cell-data array holding facegroup tags")
    # Facegroup name (or tag) -> number of boundary layers
    boundary_layers: Dict[str, NonNegativeInt] = Field(default_factory=dict)
    sharp_edge_cos_threshold: float = Field(default=DEFAULT_COS_THRESHOLD, gt=0.0, le=1.0)
    coincident_tolerance: float = Field(default=DEFAULT_COINCIDENT_TOLERANCE, ge=0.0)
    output_path: str = "output.msh"
    log_level: LogLevel = "INFO"

    @field_validator('boundary_layers', mode='before')
    @classmethod
    def _stringify_facegroup_keys(cls, value: Any) -> Any:
        # Python callers may key layers by integer tag
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value

    @field_validator('log_level', mode='before')
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_dict(cls, data: Any) -> 'BoundaryLayerConfig':
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {_describe(e)}") from e

    @classmethod
    def from_json(cls, file_path: str) -> 'BoundaryLayerConfig':
        path = Path(file_path)
        if not path.is_file():
            raise MissingInputError(f"Configuration file not found: {file_path}")

        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{file_path} must contain a JSON object")

        logger.debug(f"Loaded configuration from {path.name}")
        return cls.from_dict(data)

    def revalidate(self) -> None:
        """Re-check settings changed after loading; raises ConfigurationError."""
        checked = self.from_dict(self.model_dump())
        for name in type(self).model_fields:
            setattr(self, name, getattr(checked, name))

    def with_layers(self, assignments) -> 'BoundaryLayerConfig':
        """
        Merge NAME=N layer assignments (e.g. from the command line).

        Args:
            assignments: Iterable of 'NAME=N' strings

        Returns:
            self, for chaining
        """
        for assignment in assignments or ():
            name, sep, value = assignment.partition('=')
            if not sep or not name:
                raise ConfigurationError(f"Layer assignment must look like NAME=N, got '{assignment}'")
            try:
                n_layer = int(value)
            except ValueError:
                raise ConfigurationError(f"Layer count in '{assignment}' is not an integer") from None
            self.boundary_layers[name] = n_layer
        self.revalidate()
        return self


def load_config(file_path: Optional[str] = None) -> BoundaryLayerConfig:
    """Load configuration from a JSON file, or defaults when no file is given."""
    if file_path is None:
        return BoundaryLayerConfig()
    return BoundaryLayerConfig.from_json(file_path)
