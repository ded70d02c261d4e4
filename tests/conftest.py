"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from placement_engine import (  # noqa: E402
    AssetFootprint, EngineConfig, PassContext, PlacedInstance, RelationNode, SubjectKind, SubjectSpec,
    Relation, WorldGrid,
)
from placement_engine.terrain import apply_terrain_height  # noqa: E402


@pytest.fixture
def config():
    """Default engine configuration with a fixed seed."""
    return EngineConfig(seed=7)


@pytest.fixture
def world():
    """Flat 40 x 40 tile world (400 m per side)."""
    return WorldGrid.flat()


@pytest.fixture
def context(world, config):
    """Fresh placement pass over the flat world."""
    return PassContext(world, config)


@pytest.fixture
def tree_footprint():
    return AssetFootprint(radius=1.5, height=9.0)


@pytest.fixture
def prop_footprint():
    return AssetFootprint(radius=0.5)


@pytest.fixture
def house_footprint():
    return AssetFootprint(half_extents=(6.0, 5.0), height=8.0)


@pytest.fixture
def make_instance():
    """Factory for PlacedInstance at (x, z) on flat ground."""
    def _make(instance_id, x, z, category="props", footprint=None, yaw=0.0, scale=1.0, world=None):
        instance = PlacedInstance(instance_id, category, (x, 0.0, z), yaw,
                                  footprint or AssetFootprint(radius=0.5), scale)
        return apply_terrain_height(instance, world) if world is not None else instance
    return _make


@pytest.fixture
def make_node():
    """Factory for RelationNode with compact arguments."""
    def _make(name, kind, relation, reference=None, category="props", footprint=None, count=1, **params):
        return RelationNode(
            name=name,
            kind=SubjectKind(kind),
            subject=SubjectSpec(category, footprint or AssetFootprint(radius=0.5), count),
            relation=Relation(relation),
            reference=reference,
            params=params,
        )
    return _make


@pytest.fixture
def village_dict():
    """Relationship request covering every subject kind."""
    return {
        "type": "relationship",
        "id": "village",
        "nodes": [
            {"name": "fountain", "kind": "structure", "relation": "at",
             "subject": {"category": "buildings", "footprint": {"radius": 3.0}},
             "params": {"position": [200, 200]}},
            {"name": "tavern", "kind": "structure", "relation": "facing", "reference": "fountain",
             "subject": {"category": "buildings", "footprint": {"half_extents": [6, 5], "height": 8}}},
            {"name": "lanterns", "kind": "decoration", "relation": "flanking", "reference": "tavern",
             "subject": {"category": "props", "footprint": {"radius": 0.4}, "count": 2}},
            {"name": "sign", "kind": "decoration", "relation": "attached_to", "reference": "tavern",
             "subject": {"category": "props", "footprint": {"radius": 0.3}}},
            {"name": "market", "kind": "arrangement", "relation": "row",
             "subject": {"category": "props", "footprint": {"half_extents": [1.5, 1.0]}, "count": 4},
             "params": {"position": [240, 200]}},
            {"name": "guard", "kind": "npc", "relation": "at_entrance", "reference": "tavern",
             "subject": {"category": "characters", "footprint": {"radius": 0.5}}},
            {"name": "shoppers", "kind": "npc", "relation": "near", "reference": "market",
             "subject": {"category": "characters", "footprint": {"radius": 0.5}, "count": 3}},
            {"name": "torches", "kind": "atmosphere", "relation": "along", "reference": "fountain",
             "subject": {"category": "props", "footprint": {"radius": 0.3}, "count": 4},
             "params": {"to": "tavern"}},
        ],
    }
