"""
Texture Decoding and Sampling Module

This module handles:
- Decoding texture images (Pillow images, numpy arrays or files) to RGBA
- Caching decoded pixel buffers per texture identity
- UV lookups with a flipped V axis and clamped pixel coordinates

A texture's identity is its explicit key when one is given, otherwise a
hash of its content. Two Texture objects wrapping the same pixels share
one cache entry; the cache is cleared at the start of every run.
"""

import hashlib
import logging
import math
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
import numpy as np
from PIL import Image, UnidentifiedImageError

from .color import RGB

logger = logging.getLogger(__name__)

ImageSource = Union[Image.Image, np.ndarray, str, Path]


class Texture:
    """
    Reference to a raster image bound to a material.

    Args:
        image: Pillow image, (H, W), (H, W, 3) or (H, W, 4) array
            (uint8, or float in [0, 1]), or path to an image file
        key: Optional explicit identity; overrides the content hash
    """

    def __init__(self, image: ImageSource, key: Optional[str] = None):
        self.image = image
        self._explicit_key = key

    def __repr__(self) -> str:
        return f"Texture(key={self.key[:12]!r})"

    @cached_property
    def key(self) -> str:
        """Stable content identity of the texture."""
        if self._explicit_key is not None:
            return str(self._explicit_key)

        digest = hashlib.sha1()
        image = self.image
        if isinstance(image, (str, Path)):
            digest.update(b"file:")
            digest.update(str(Path(image).resolve()).encode("utf-8"))
        elif isinstance(image, Image.Image):
            digest.update(f"{image.mode}:{image.size}".encode("ascii"))
            try:
                digest.update(image.tobytes())
            except (OSError, ValueError):
                # Lazily opened image with unreadable pixel data
                source = getattr(image, "filename", "") or f"id:{id(image)}"
                digest.update(f"unreadable:{source}".encode("utf-8"))
        elif isinstance(image, np.ndarray):
            digest.update(f"{image.dtype}:{image.shape}".encode("ascii"))
            digest.update(np.ascontiguousarray(image).tobytes())
        else:
            digest.update(f"object:{type(image).__name__}:{id(image)}".encode("ascii"))
        return digest.hexdigest()


@dataclass(frozen=True)
class TextureSample:
    """
    Decoded texture pixels.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        pixels: Row-major RGBA array of shape (height, width, 4), uint8
    """
    width: int
    height: int
    pixels: np.ndarray

    def sample(self, u: float, v: float) -> Tuple[RGB, float]:
        """
        Look up the pixel under a UV coordinate.

        x = floor(u * width), y = floor((1 - v) * height), both clamped
        into the image. V is flipped relative to image rows.

        Args:
            u: Horizontal texture coordinate, nominally in [0, 1]
            v: Vertical texture coordinate, nominally in [0, 1]

        Returns:
            ((r, g, b), alpha), all normalized to [0, 1]
        """
        # Clamp before flooring so huge coordinates cannot overflow
        x = min(max(u * self.width, 0.0), self.width - 1.0)
        y = min(max((1.0 - v) * self.height, 0.0), self.height - 1.0)
        r, g, b, a = self.pixels[math.floor(y), math.floor(x)]
        return (int(r) / 255.0, int(g) / 255.0, int(b) / 255.0), int(a) / 255.0


def decode_image(image: ImageSource) -> TextureSample:
    """
    Decode an image source into an RGBA TextureSample.

    Args:
        image: Pillow image, numpy array or image file path

    Returns:
        Decoded TextureSample

    Raises:
        OSError: If a file cannot be read
        ValueError: If the data is not a usable image
    """
    if isinstance(image, (str, Path)):
        with Image.open(image) as img:
            pixels = np.array(img.convert("RGBA"), dtype=np.uint8)
    elif isinstance(image, Image.Image):
        img = image if image.mode == "RGBA" else image.convert("RGBA")
        pixels = np.array(img, dtype=np.uint8)
    elif isinstance(image, np.ndarray):
        pixels = _array_to_rgba(image)
    else:
        raise ValueError(f"Unsupported texture image type: {type(image).__name__}")

    height, width = pixels.shape[:2]
    if width == 0 or height == 0:
        raise ValueError("Texture image has zero size")
    return TextureSample(width=width, height=height, pixels=pixels)


def _to_uint8(array: np.ndarray) -> np.ndarray:
    """Convert float [0, 1] or integer [0, 255] channel data to uint8."""
    if array.dtype == np.uint8:
        return array
    if np.issubdtype(array.dtype, np.floating):
        if not np.all(np.isfinite(array)):
            raise ValueError("Float texture contains non-finite values")
        return np.round(np.clip(array, 0.0, 1.0) * 255.0).astype(np.uint8)
    if np.issubdtype(array.dtype, np.integer):
        return np.clip(array, 0, 255).astype(np.uint8)
    raise ValueError(f"Unsupported texture dtype: {array.dtype}")


def _array_to_rgba(array: np.ndarray) -> np.ndarray:
    """
    Expand a grayscale, RGB or RGBA array to (H, W, 4) uint8.

    Float arrays are read as [0, 1] channels; integer arrays as [0, 255].
    """
    if array.ndim in (2, 3):
        array = _to_uint8(array)

    if array.ndim == 2:
        gray = array.astype(np.uint8)
        alpha = np.full_like(gray, 255)
        return np.stack([gray, gray, gray, alpha], axis=-1)

    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Texture array must have shape (H, W), (H, W, 3) or (H, W, 4), got {array.shape}")

    if array.shape[2] == 3:
        alpha = np.full((*array.shape[:2], 1), 255, dtype=np.uint8)
        return np.concatenate([array.astype(np.uint8), alpha], axis=-1)
    return np.ascontiguousarray(array, dtype=np.uint8)


class TextureSampleCache:
    """
    Decode-once cache of texture pixel buffers.

    Failed decodes are remembered so a broken texture is reported once
    per run and then served as a miss.
    """

    def __init__(self):
        self._samples: Dict[str, Optional[TextureSample]] = {}

    def __len__(self) -> int:
        return len(self._samples)

    def __contains__(self, texture: Texture) -> bool:
        return texture.key in self._samples

    def decode(self, texture: Texture) -> Optional[TextureSample]:
        """
        Decode a texture, or return the cached buffer.

        Args:
            texture: Texture to decode

        Returns:
            TextureSample, or None if the image cannot be decoded
        """
        key = texture.key
        if key in self._samples:
            return self._samples[key]

        try:
            sample = decode_image(texture.image)
        except (OSError, ValueError, UnidentifiedImageError) as exc:
            logger.warning("Texture %s could not be decoded, using material color: %s", key[:12], exc)
            sample = None

        self._samples[key] = sample
        return sample

    def sample_uv(self, texture: Texture, u: float, v: float) -> Optional[Tuple[RGB, float]]:
        """
        Sample a texture at a UV coordinate.

        Returns:
            ((r, g, b), alpha) or None if the texture is undecodable
        """
        sample = self.decode(texture)
        if sample is None:
            return None
        return sample.sample(u, v)

    def clear(self):
        """Drop every cached buffer."""
        self._samples.clear()
