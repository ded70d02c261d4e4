#!/usr/bin/env python3
"""
Scene Placement Script

Resolve placement requests: request JSON (one request or a list) → engine → placements.json

Usage:
    python place_scene.py --requests scene.json --config configs/engine.yaml --world world.json
"""

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path

import numpy as np
from tqdm import tqdm

from placement_engine import PlacementEngine, load_config, parse_requests


def load_world(path: str, config):
    """World JSON: {"heightmap": [[...]], "texture": [[...]]} sized grid_size x grid_size."""
    with open(path) as f:
        data = json.load(f)
    heightmap = np.asarray(data["heightmap"], dtype=np.int32)
    texture = np.asarray(data["texture"], dtype=np.int32) if "texture" in data else None
    return config.make_world(heightmap, texture)


def main():
    parser = argparse.ArgumentParser(description="Resolve scene placement requests")
    parser.add_argument("--requests", type=str, required=True, help="JSON file with one request or a list")
    parser.add_argument("--config", type=str, default=None, help="YAML engine config")
    parser.add_argument("--world", type=str, default=None, help="JSON file with a heightmap (flat if omitted)")
    parser.add_argument("--output", type=str, default="data/placements", help="Output directory")
    parser.add_argument("--seed", type=int, default=None, help="Override config seed")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = load_config(args.config, seed=args.seed)
    world = load_world(args.world, config) if args.world else None
    engine = PlacementEngine(config, world)

    with open(args.requests) as f:
        requests = parse_requests(json.load(f))

    print(f"Requests: {len(requests)}, world: {engine.world.size}x{engine.world.size} tiles, seed: {config.seed}")

    placed = []
    results = []
    for i, request in enumerate(tqdm(requests, desc="Resolving requests")):
        result = engine.resolve(request, placed, config.seed + i)
        placed.extend(result.instances)
        results.append(result)

    # Save
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "placements.json", 'w') as f:
        json.dump([r.to_dict() for r in results], f, indent=2)

    with open(output_dir / "summary.json", 'w') as f:
        json.dump({
            "generated_at": datetime.now().isoformat(),
            "num_requests": len(requests),
            "num_instances": len(placed),
            "deficit": sum(r.deficit for r in results),
            "diagnostics": sum(len(r.diagnostics) for r in results),
            "config": config.to_dict(),
        }, f, indent=2)

    print(f"Done! {len(placed)} instances -> {output_dir}")


if __name__ == "__main__":
    main()
