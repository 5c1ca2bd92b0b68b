"""Shared helpers for float32 RGBA texture kernels."""

from __future__ import annotations

from typing import Any, Callable

import numpy as np

from textool.graph.errors import RenderError

Size = tuple[int, int]
Kernel = Callable[[dict[str, Any], Size], np.ndarray]

TRANSPARENT = (0.0, 0.0, 0.0, 0.0)


def blank(size: Size, color: Any = TRANSPARENT) -> np.ndarray:
    height, width = size
    out = np.empty((height, width, 4), dtype=np.float32)
    out[...] = as_color(color)
    return out


def as_color(value: Any) -> np.ndarray:
    """Coerce a literal to an RGBA vector; RGB gets an opaque alpha."""
    try:
        channels = [float(v) for v in value]
    except (TypeError, ValueError) as err:
        raise RenderError(f"invalid color literal: {value!r}") from err
    if len(channels) == 3:
        channels.append(1.0)
    if len(channels) != 4:
        raise RenderError(f"color needs 3 or 4 channels, got {len(channels)}")
    return np.clip(np.asarray(channels, dtype=np.float32), 0.0, 1.0)


def as_number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise RenderError(f"'{name}' must be a number, got {value!r}") from err


def texture_input(value: Any, size: Size) -> np.ndarray:
    """Resolve a texture slot; an absent texture reads as transparent black."""
    if value is None:
        return blank(size)
    array = np.asarray(value, dtype=np.float32)
    if array.ndim != 3 or array.shape[2] != 4:
        raise RenderError(f"expected an HxWx4 texture, got shape {array.shape}")
    return fit(array, size)


def fit(texture: np.ndarray, size: Size) -> np.ndarray:
    """Nearest-neighbour resample to ``size``."""
    height, width = size
    if texture.shape[:2] == (height, width):
        return texture
    rows = (np.arange(height) * texture.shape[0] // height).astype(np.intp)
    cols = (np.arange(width) * texture.shape[1] // width).astype(np.intp)
    return texture[rows][:, cols]


def uv_grid(size: Size) -> tuple[np.ndarray, np.ndarray]:
    """Pixel-centre coordinates in ``[0, 1)``."""
    height, width = size
    v, u = np.meshgrid(
        (np.arange(height, dtype=np.float32) + 0.5) / height,
        (np.arange(width, dtype=np.float32) + 0.5) / width,
        indexing="ij",
    )
    return u, v


def luminance(texture: np.ndarray) -> np.ndarray:
    return texture[..., 0] * 0.2126 + texture[..., 1] * 0.7152 + texture[..., 2] * 0.0722


def finish(texture: np.ndarray) -> np.ndarray:
    return np.clip(texture, 0.0, 1.0).astype(np.float32, copy=False)
