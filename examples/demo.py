#!/usr/bin/env python3
"""
Mesh Voxelizer Demo Script

This script demonstrates the voxelization pipeline by:
1. Building a small synthetic scene (no asset files needed)
2. Voxelizing it with live progress output
3. Printing block statistics and a resolution comparison

Run with: python examples/demo.py
"""

import sys
import logging
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mesh_voxelizer import (
    Material, Mesh, ProgressiveScheduler, Texture, VoxelizeConfig,
    box_surface, default_palette,
)


def create_brick_texture(size: int = 16) -> np.ndarray:
    """
    Create a brick-like RGBA texture.

    Returns:
        Array of shape (size, size, 4)
    """
    rgba = np.zeros((size, size, 4), dtype=np.uint8)
    rgba[:, :] = [148, 91, 67, 255]  # Terracotta
    rgba[::4, :] = [164, 164, 164, 255]  # Mortar rows
    for y in range(size):
        offset = 0 if (y // 4) % 2 == 0 else size // 4
        rgba[y, offset::size // 2] = [164, 164, 164, 255]
    return rgba


def create_window_texture(size: int = 8) -> np.ndarray:
    """Create a mostly transparent pane with an opaque frame."""
    rgba = np.zeros((size, size, 4), dtype=np.uint8)
    rgba[:, :] = [200, 230, 255, 60]
    rgba[0, :] = rgba[-1, :] = [66, 42, 18, 255]
    rgba[:, 0] = rgba[:, -1] = [66, 42, 18, 255]
    return rgba


def create_scene() -> Mesh:
    """A brick house body, a stone plinth, a moss roof slab and a window."""
    bricks = Material("bricks", texture=Texture(create_brick_texture(), key="bricks"))
    stone = Material.from_hex("stone_base", "#7a7a7a")
    roof = Material.from_hex("roof_moss", "#597220")
    window = Material("window", texture=Texture(create_window_texture(), key="window"))

    return Mesh([
        box_surface((-2.0, 0.0, -1.5), (2.0, 0.4, 1.5), stone),
        box_surface((-1.8, 0.4, -1.3), (1.8, 2.4, 1.3), bricks),
        box_surface((-2.1, 2.4, -1.6), (2.1, 2.7, 1.6), roof),
        box_surface((-0.6, 1.0, 1.3), (0.6, 1.8, 1.45), window),
    ])


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("Mesh Voxelizer - Demo")
    print("=" * 60)
    print()

    mesh = create_scene()
    palette = default_palette()
    bounds = mesh.bounding_box()
    print(f"Scene: {len(mesh)} surfaces, {mesh.triangle_count} triangles")
    print(f"Bounds: {np.round(bounds.min, 2)} -> {np.round(bounds.max, 2)}")

    # Force the plinth to a specific block regardless of its color
    overrides = {"stone_base": "minecraft:deepslate"}

    config = VoxelizeConfig(resolution=48, solid_fill=True, surface_cadence=200)
    scheduler = ProgressiveScheduler(mesh, palette, config, overrides=overrides)

    batches = []

    def on_progress(percent: float, status: str):
        print(f"\r  [{percent:5.1f}%] {status:<24}", end="", flush=True)

    start = time.time()
    voxels = scheduler.run(on_progress=on_progress, on_voxels=batches.append)
    elapsed = time.time() - start
    print()

    print(f"\nVoxelization: {elapsed*1000:.1f}ms")
    print(f"  Step: {scheduler.step:.4f}")
    print(f"  Voxels: {len(voxels)} in {len(batches)} batches")

    print("\n  Block usage:")
    for block_id, count in scheduler.index.block_counts().most_common():
        print(f"    {block_id:<36} {count:>6}")

    print("\n--- Resolution Comparison ---\n")
    for resolution in (8, 16, 32, 64):
        start = time.time()
        result = ProgressiveScheduler(
            mesh, palette, resolution=resolution, solid_fill=True
        ).run()
        print(f"  {resolution:>3}: {len(result):>7} voxels, {(time.time() - start)*1000:.1f}ms")

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s - %(levelname)s - %(message)s")
    sys.exit(run_demo())
