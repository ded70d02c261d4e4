"""
Placement engine: one entry point for pattern and relationship requests.

Each call runs a fresh PassContext over the engine's world. Results are
memoized by a hash of the request, the seed, the heightmap and the existing
instances, so repeating an identical request on an unchanged world is free.
"""

import copy
import hashlib
import json
import logging
from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

from .composition import LayerSpec, execute_layered_placement
from .config import EngineConfig
from .locations import execute_asset_placement, parse_semantic_location
from .registry import PassContext
from .resolver import resolve_relationship_placements
from .schema import (
    AssetFootprint, PlacedInstance, PlacementRequest, PlacementResult, Point, Region,
    RelationshipRequest, WorldGrid,
)
from .terrain import (
    RebalanceReport, TerrainChange, TerrainOp, apply_terrain_modification, apply_zone_modification,
    rebalance_placements, revert_terrain_changes,
)
from .validator import parse_request

logger = logging.getLogger(__name__)


class PlacementEngine:
    """
    Resolve placement requests against one world.

    Usage:
        engine = PlacementEngine(load_config("configs/engine.yaml"))
        result = engine.resolve(parse_request(data))
    """

    def __init__(self, config: Optional[EngineConfig] = None, world: Optional[WorldGrid] = None):
        self.config = config or EngineConfig()
        self.world = world if world is not None else self.config.make_world()
        self._cache: "OrderedDict[str, PlacementResult]" = OrderedDict()
        self.cache_hits = 0
        self.cache_misses = 0

    def request_hash(self, request: PlacementRequest, existing: Sequence[PlacedInstance], seed: int) -> str:
        payload = json.dumps({
            "request": request.to_dict(),
            "seed": seed,
            "existing": [i.to_dict() for i in existing],
            "config": self.config.to_dict(),
        }, sort_keys=True, default=str)
        digest = hashlib.sha256(payload.encode("utf-8"))
        digest.update(np.ascontiguousarray(self.world.heightmap).tobytes())
        digest.update(f"{self.world.size}:{self.world.tile_size}:{self.world.height_scale}".encode("utf-8"))
        return digest.hexdigest()

    def _new_context(self, existing: Sequence[PlacedInstance], seed: int) -> PassContext:
        return PassContext(self.world, self.config, existing=list(existing), rng=np.random.RandomState(seed))

    def resolve(self, request: PlacementRequest, existing: Iterable[PlacedInstance] = (),
                seed: Optional[int] = None) -> PlacementResult:
        """
        Place one request. Never raises for a parsed request; anything that
        cannot be satisfied comes back as diagnostics.
        """
        existing = list(existing)
        seed = self.config.seed if seed is None else seed
        key = self.request_hash(request, existing, seed)

        if self.config.cache_size and key in self._cache:
            self._cache.move_to_end(key)
            self.cache_hits += 1
            logger.debug(f"Cache hit for request '{getattr(request, 'request_id', None)}'")
            return copy.deepcopy(self._cache[key])
        self.cache_misses += 1

        context = self._new_context(existing, seed)
        if isinstance(request, RelationshipRequest):
            resolve_relationship_placements(request, self.world, context=context)
        else:
            execute_asset_placement(request, self.world, context=context)
        result = context.result()

        if self.config.cache_size:
            self._cache[key] = copy.deepcopy(result)
            while len(self._cache) > self.config.cache_size:
                self._cache.popitem(last=False)

        summary = result.summary()
        logger.info(f"Request {request.kind} '{request.request_id or '-'}': {summary['instances']} instances, "
                    f"deficit {summary['deficit']}, {summary['diagnostics']} diagnostics")
        return result

    def resolve_dict(self, data: Union[str, dict], existing: Iterable[PlacedInstance] = (),
                     seed: Optional[int] = None) -> PlacementResult:
        """Parse then resolve. Raises RequestValidationError for malformed input."""
        return self.resolve(parse_request(data), existing, seed)

    def resolve_many(self, requests: Sequence[PlacementRequest], existing: Iterable[PlacedInstance] = (),
                     seed: Optional[int] = None) -> List[PlacementResult]:
        """Resolve requests in order; each one sees the instances placed by the ones before it."""
        seed = self.config.seed if seed is None else seed
        placed = list(existing)
        results = []
        for i, request in enumerate(requests):
            result = self.resolve(request, placed, seed + i)
            placed.extend(result.instances)
            results.append(result)
        return results

    def place_layers(self, layers: Sequence[LayerSpec], focal: Point, archetype: str = "wide_establishing",
                     view_yaw: float = 0.0, existing: Iterable[PlacedInstance] = (),
                     seed: Optional[int] = None) -> PlacementResult:
        context = self._new_context(list(existing), self.config.seed if seed is None else seed)
        execute_layered_placement(layers, context, focal, archetype, view_yaw)
        return context.result()

    def modify_zone(self, zone: Union[str, Region], op: TerrainOp = TerrainOp.FLATTEN, amount: int = 1,
                    level: Optional[int] = None) -> List[TerrainChange]:
        """Edit the terrain over a zone descriptor or rectangle."""
        if isinstance(zone, str):
            zone = parse_semantic_location(zone, self.world.bounds(), edge_band=self.config.edge_band,
                                           margin=self.config.scene_margin).region
        changes = apply_zone_modification(self.world, zone, op, amount, level)
        logger.info(f"Terrain {TerrainOp(op).value} over zone: {len(changes)} cells changed")
        return changes

    def modify_footprint(self, footprint: AssetFootprint, position: Point, op: TerrainOp = TerrainOp.FLATTEN,
                         amount: int = 1, level: Optional[int] = None, yaw: float = 0.0) -> List[TerrainChange]:
        return apply_terrain_modification(self.world, footprint, position, op, amount, level, yaw)

    def undo(self, changes: Iterable[TerrainChange]) -> None:
        revert_terrain_changes(self.world, changes)

    def rebalance(self, instances: Sequence[PlacedInstance], step_tolerance: int = 1) -> RebalanceReport:
        return rebalance_placements(instances, self.world, step_tolerance)

    def clear_cache(self) -> None:
        self._cache.clear()
