"""
Color Utilities Module

Handles:
- Hex string parsing for palette entries
- Redmean-weighted color distance (JIT compiled)
- Nearest palette color search

All colors are normalized RGB triples in [0, 1]. Palette hex colors and
texture samples are compared in the same normalized space, so a texture
pixel of #7a7a7a is at distance zero from a palette entry of #7a7a7a.
"""

from typing import Sequence, Tuple
import math
import numpy as np
from numba import njit


RGB = Tuple[float, float, float]


def hex_to_rgb(hex_color: str) -> RGB:
    """
    Parse a hex color string.

    Args:
        hex_color: "#rrggbb" or "rrggbb" (case-insensitive)

    Returns:
        Normalized (r, g, b) triple

    Raises:
        ValueError: If the string is not a 6-digit hex color
    """
    if not isinstance(hex_color, str):
        raise ValueError(f"Hex color must be a string, got {hex_color!r}")
    value = hex_color.strip().lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    try:
        r = int(value[0:2], 16)
        g = int(value[2:4], 16)
        b = int(value[4:6], 16)
    except ValueError:
        raise ValueError(f"Invalid hex color: {hex_color!r}") from None
    return (r / 255.0, g / 255.0, b / 255.0)


def rgb_to_hex(color: Sequence[float]) -> str:
    """Format a normalized RGB triple as "#rrggbb"."""
    channels = []
    for c in color[:3]:
        c = min(1.0, max(0.0, float(c)))
        channels.append(int(math.floor(c * 255.0 + 0.5)))
    return "#{:02x}{:02x}{:02x}".format(*channels)


@njit(cache=True)
def _redmean(r1: float, g1: float, b1: float,
             r2: float, g2: float, b2: float) -> float:
    """
    Redmean-weighted Euclidean distance between two normalized colors.

    d = sqrt((2 + rMean) * dr^2 + 4 * dg^2 + (3 - rMean) * db^2)
    """
    r_mean = (r1 + r2) / 2.0
    dr = r1 - r2
    dg = g1 - g2
    db = b1 - b2
    return math.sqrt((2.0 + r_mean) * dr * dr + 4.0 * dg * dg + (3.0 - r_mean) * db * db)


@njit(cache=True)
def _nearest_redmean(color: np.ndarray, colors: np.ndarray) -> int:
    """
    Index of the closest color under the redmean metric.

    The first entry with a strictly smaller distance wins, so ties
    resolve to the earliest entry.
    """
    best = 0
    best_dist = np.inf
    for i in range(colors.shape[0]):
        d = _redmean(color[0], color[1], color[2],
                     colors[i, 0], colors[i, 1], colors[i, 2])
        if d < best_dist:
            best_dist = d
            best = i
    return best


def redmean_distance(c1: Sequence[float], c2: Sequence[float]) -> float:
    """
    Perceptual distance between two normalized RGB colors.

    Args:
        c1: First (r, g, b) color in [0, 1]
        c2: Second (r, g, b) color in [0, 1]

    Returns:
        Non-negative distance
    """
    return float(_redmean(float(c1[0]), float(c1[1]), float(c1[2]),
                          float(c2[0]), float(c2[1]), float(c2[2])))


def nearest_redmean(color: Sequence[float], colors: np.ndarray) -> int:
    """
    Find the nearest color in an (N, 3) array of normalized colors.

    Args:
        color: Target (r, g, b)
        colors: Candidate colors, shape (N, 3), N >= 1

    Returns:
        Index into colors
    """
    if len(colors) == 0:
        raise ValueError("Cannot match against an empty color set")
    target = np.asarray(color[:3], dtype=np.float64)
    return int(_nearest_redmean(target, np.ascontiguousarray(colors, dtype=np.float64)))
