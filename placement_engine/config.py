"""Engine configuration."""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from .constants import (
    GRID_SIZE, TILE_SIZE, HEIGHT_SCALE, MAX_ELEVATION, SCENE_MARGIN, EDGE_BAND,
    PLACEMENT_OVERREQUEST, DEFAULT_MAX_ATTEMPTS, DEFAULT_CLUSTER_RETRIES, STRUCTURE_NUDGE_ATTEMPTS,
)
from .schema import WorldGrid
from .spacing import AcceptanceOrder


class ConfigError(Exception):
    """Raised when configuration values are invalid."""
    pass


@dataclass
class EngineConfig:
    """
    Placement engine configuration.

    Sampling bounds:
        max_attempts: Bridson candidates per active sample
        cluster_retries: Re-samples per cluster point before dropping it
        overrequest: Candidate multiplier for lossy patterns (poisson, cluster, edge, random)
        structure_nudge_attempts: Spiral offsets tried around a colliding structure
    """
    seed: int = 42
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cluster_retries: int = DEFAULT_CLUSTER_RETRIES
    overrequest: float = PLACEMENT_OVERREQUEST
    acceptance_order: str = AcceptanceOrder.INSERTION.value
    grid_size: int = GRID_SIZE
    tile_size: float = TILE_SIZE
    height_scale: float = HEIGHT_SCALE
    max_elevation: int = MAX_ELEVATION
    edge_band: float = EDGE_BAND
    scene_margin: float = SCENE_MARGIN
    structure_nudge_attempts: int = STRUCTURE_NUDGE_ATTEMPTS
    cache_size: int = 128

    def __post_init__(self):
        try:
            AcceptanceOrder(self.acceptance_order)
        except ValueError:
            valid = [o.value for o in AcceptanceOrder]
            raise ConfigError(f"Invalid acceptance_order '{self.acceptance_order}'. Must be one of {valid}")

        for name in ("max_attempts", "cluster_retries", "grid_size", "max_elevation", "structure_nudge_attempts"):
            if getattr(self, name) < 1:
                raise ConfigError(f"'{name}' must be >= 1, got {getattr(self, name)}")
        for name in ("tile_size", "height_scale"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"'{name}' must be positive, got {getattr(self, name)}")
        for name in ("edge_band", "scene_margin", "cache_size"):
            if getattr(self, name) < 0:
                raise ConfigError(f"'{name}' must be >= 0, got {getattr(self, name)}")
        if self.overrequest < 1.0:
            raise ConfigError(f"'overrequest' must be >= 1.0, got {self.overrequest}")

    @property
    def order(self) -> AcceptanceOrder:
        return AcceptanceOrder(self.acceptance_order)

    def make_world(self, heightmap: Optional[np.ndarray] = None,
                   texture: Optional[np.ndarray] = None) -> WorldGrid:
        """World grid with this config's dimensions; flat when no heightmap is given."""
        if heightmap is None:
            heightmap = np.zeros((self.grid_size, self.grid_size), dtype=np.int32)
        return WorldGrid(self.grid_size, self.tile_size, heightmap, texture,
                         height_scale=self.height_scale, max_elevation=self.max_elevation)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Union[str, Path, None] = None, **overrides) -> EngineConfig:
    """
    Load EngineConfig from a YAML file.

    Keys may sit at the top level or under an `engine:` section. Keyword
    overrides win over file values.
    """
    data: Dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping: {path}")
        data = dict(data.get("engine", data))

    data.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {unknown}")
    return EngineConfig(**data)
