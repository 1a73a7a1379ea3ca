"""
Block Palette Management
========================

Defines the closed set of block identities a voxel can take and the
matcher that picks one for a sampled color.

Palette entries are split into a transparency class (glass-like blocks,
eligible for low-alpha samples) and a normal class. Matching searches
only the class selected by the sample's alpha.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple, Union
import numpy as np

from .color import RGB, hex_to_rgb, nearest_redmean
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Samples below this alpha are matched against transparency-class entries.
TRANSPARENCY_THRESHOLD = 0.5


@dataclass(frozen=True)
class PaletteEntry:
    """A single selectable block."""
    name: str
    color_hex: str
    block_id: str
    is_transparency_class: bool = False

    @property
    def rgb(self) -> RGB:
        """Normalized (r, g, b) of color_hex."""
        return hex_to_rgb(self.color_hex)


class Palette:
    """
    Ordered, read-only list of palette entries.

    Iteration order is significant: it decides ties in matching.
    """

    def __init__(self, entries: Sequence[PaletteEntry]):
        """
        Initialize the palette.

        Args:
            entries: Palette entries in priority order

        Raises:
            ConfigurationError: If the palette is empty or a color is invalid
        """
        self._entries: Tuple[PaletteEntry, ...] = tuple(entries)
        if not self._entries:
            raise ConfigurationError("Palette must contain at least one entry")

        try:
            colors = np.array([e.rgb for e in self._entries], dtype=np.float64)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid palette color: {exc}") from exc

        transparent = [i for i, e in enumerate(self._entries) if e.is_transparency_class]
        opaque = [i for i, e in enumerate(self._entries) if not e.is_transparency_class]

        self._colors = colors
        self._transparent_idx = np.array(transparent, dtype=np.int64)
        self._opaque_idx = np.array(opaque, dtype=np.int64)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PaletteEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> PaletteEntry:
        return self._entries[index]

    @property
    def entries(self) -> Tuple[PaletteEntry, ...]:
        return self._entries

    @property
    def colors(self) -> np.ndarray:
        """Normalized colors, shape (N, 3)."""
        return self._colors

    @property
    def transparency_class(self) -> List[PaletteEntry]:
        return [self._entries[i] for i in self._transparent_idx]

    @property
    def normal_class(self) -> List[PaletteEntry]:
        return [self._entries[i] for i in self._opaque_idx]

    def candidates(self, alpha: float) -> np.ndarray:
        """
        Indices eligible for a sample with the given alpha.

        Falls back to every entry when the selected class is empty.
        """
        subset = self._transparent_idx if alpha < TRANSPARENCY_THRESHOLD else self._opaque_idx
        if len(subset) == 0:
            return np.arange(len(self._entries), dtype=np.int64)
        return subset

    def block_ids(self) -> List[str]:
        return [e.block_id for e in self._entries]


class PaletteMatcher:
    """
    Picks the best palette entry for a sampled color and alpha.

    The transparency partition is applied before any distance is
    computed, so a low-alpha white sample lands on a glass entry even
    when an opaque entry is numerically closer.
    """

    def __init__(self, palette: Palette):
        self.palette = palette
        # Candidate color arrays per class, built once
        self._subsets = {
            True: self._subset(0.0),
            False: self._subset(1.0),
        }

    def _subset(self, alpha: float) -> Tuple[np.ndarray, np.ndarray]:
        idx = self.palette.candidates(alpha)
        return idx, np.ascontiguousarray(self.palette.colors[idx])

    def best_match(self, color: Sequence[float], alpha: float) -> PaletteEntry:
        """
        Find the closest entry under the redmean metric.

        Args:
            color: Normalized (r, g, b) sample
            alpha: Sample opacity in [0, 1]

        Returns:
            The matching PaletteEntry
        """
        idx, colors = self._subsets[alpha < TRANSPARENCY_THRESHOLD]
        return self.palette[int(idx[nearest_redmean(color, colors)])]


_DEFAULT_BLOCKS = [
    ("Stone", "#7a7a7a", "minecraft:stone", False),
    ("Andesite", "#838383", "minecraft:andesite", False),
    ("Dripstone", "#846c61", "minecraft:dripstone_block", False),
    ("Tuff", "#6d6d66", "minecraft:tuff", False),
    ("Deepslate", "#353535", "minecraft:deepslate", False),
    ("Smooth Stone", "#a4a4a4", "minecraft:smooth_stone", False),
    ("Dark Oak Planks", "#422a12", "minecraft:dark_oak_planks", False),
    ("Dark Oak Log", "#352918", "minecraft:dark_oak_log", False),
    ("Spruce Planks", "#684e2e", "minecraft:spruce_planks", False),
    ("Spruce Log", "#48361e", "minecraft:spruce_log", False),
    ("Jungle Planks", "#af7a58", "minecraft:jungle_planks", False),
    ("Oak Planks", "#a88a53", "minecraft:oak_planks", False),
    ("Mud Bricks", "#896750", "minecraft:mud_bricks", False),
    ("White Concrete", "#cfd5d6", "minecraft:white_concrete", False),
    ("Light Gray Concrete", "#7d7d73", "minecraft:light_gray_concrete", False),
    ("Gray Concrete", "#373a3e", "minecraft:gray_concrete", False),
    ("Black Concrete", "#080a0f", "minecraft:black_concrete", False),
    ("Brown Concrete", "#603c20", "minecraft:brown_concrete", False),
    ("Terracotta", "#945b43", "minecraft:terracotta", False),
    ("White Terracotta", "#d1b2a1", "minecraft:white_terracotta", False),
    ("Orange Terracotta", "#a15325", "minecraft:orange_terracotta", False),
    ("Brown Terracotta", "#4d3324", "minecraft:brown_terracotta", False),
    ("Gray Terracotta", "#392d24", "minecraft:gray_terracotta", False),
    ("Moss Block", "#597220", "minecraft:moss_block", False),
    ("Green Concrete", "#495b24", "minecraft:green_concrete", False),
    ("Green Wool", "#4d6a27", "minecraft:green_wool", False),
    ("Azalea Leaves", "#546d31", "minecraft:azalea_leaves", False),
    ("Glass", "#ffffff", "minecraft:glass", True),
    ("Cyan Stained Glass", "#4c7f99", "minecraft:cyan_stained_glass", True),
    ("Black Stained Glass", "#191919", "minecraft:black_stained_glass", True),
]


def default_palette() -> Palette:
    """Built-in block palette: stones, woods, concretes, terracottas, foliage, glass."""
    return Palette([PaletteEntry(*block) for block in _DEFAULT_BLOCKS])


def load_palette(filepath: Union[str, Path]) -> Palette:
    """
    Load a palette from a JSON file.

    The file holds a list of objects with "name", "hex", "block_id" and
    an optional boolean "transparent".

    Args:
        filepath: Path to the JSON palette

    Returns:
        Loaded Palette

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    filepath = Path(filepath)
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read palette {filepath}: {exc}") from exc

    if not isinstance(data, list):
        raise ConfigurationError(f"Palette {filepath} must contain a JSON list")

    entries = []
    for i, item in enumerate(data):
        try:
            entries.append(PaletteEntry(
                name=str(item["name"]),
                color_hex=str(item["hex"]),
                block_id=str(item["block_id"]),
                is_transparency_class=bool(item.get("transparent", False)),
            ))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ConfigurationError(f"Palette {filepath} entry {i} is malformed: {exc}") from exc

    palette = Palette(entries)
    logger.debug("Loaded %d palette entries from %s", len(palette), filepath)
    return palette
