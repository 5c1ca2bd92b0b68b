"""Texture generators: operations without texture inputs."""

from __future__ import annotations

import importlib
import importlib.util
import math
from typing import Any

import numpy as np

from textool.graph.errors import RenderError
from textool.graph.types import InputSlot, TypeDescriptor, ValueKind
from textool.library.textures import (
    Kernel,
    Size,
    as_color,
    as_number,
    blank,
    finish,
    fit,
    uv_grid,
)

BLACK = [0.0, 0.0, 0.0, 1.0]
WHITE = [1.0, 1.0, 1.0, 1.0]


def uniform_color(inputs: dict[str, Any], size: Size) -> np.ndarray:
    return blank(size, inputs["color"])


def linear_gradient(inputs: dict[str, Any], size: Size) -> np.ndarray:
    color_a = as_color(inputs["color_a"])
    color_b = as_color(inputs["color_b"])
    angle = math.radians(as_number(inputs["angle"], "angle"))
    u, v = uv_grid(size)
    dx, dy = math.cos(angle), math.sin(angle)
    # Project onto the gradient direction, normalised over the unit square.
    t = (u - 0.5) * dx + (v - 0.5) * dy
    extent = (abs(dx) + abs(dy)) / 2.0
    t = np.clip(t / extent * 0.5 + 0.5, 0.0, 1.0)[..., None]
    return finish(color_a * (1.0 - t) + color_b * t)


def checkerboard(inputs: dict[str, Any], size: Size) -> np.ndarray:
    cells = max(1, int(as_number(inputs["cells"], "cells")))
    u, v = uv_grid(size)
    parity = ((np.floor(u * cells) + np.floor(v * cells)) % 2).astype(bool)
    return finish(np.where(parity[..., None], as_color(inputs["color_b"]), as_color(inputs["color_a"])))


def value_noise(inputs: dict[str, Any], size: Size) -> np.ndarray:
    seed = int(as_number(inputs["seed"], "seed"))
    scale = max(1, int(as_number(inputs["scale"], "scale")))
    rng = np.random.default_rng(seed)
    # Periodic lattice so the texture tiles.
    lattice = rng.random((scale, scale), dtype=np.float32)

    u, v = uv_grid(size)
    x = u * scale
    y = v * scale
    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    fx = x - x0
    fy = y - y0
    fx = fx * fx * (3.0 - 2.0 * fx)
    fy = fy * fy * (3.0 - 2.0 * fy)
    x0 %= scale
    y0 %= scale
    x1 = (x0 + 1) % scale
    y1 = (y0 + 1) % scale

    top = lattice[y0, x0] * (1.0 - fx) + lattice[y0, x1] * fx
    bottom = lattice[y1, x0] * (1.0 - fx) + lattice[y1, x1] * fx
    value = top * (1.0 - fy) + bottom * fy

    out = np.ones((*value.shape, 4), dtype=np.float32)
    out[..., :3] = value[..., None]
    return finish(out)


def image(inputs: dict[str, Any], size: Size) -> np.ndarray:
    """Load an image file as an RGBA texture resampled to ``size``."""
    path = str(inputs["path"] or "").strip()
    if not path:
        return blank(size)
    if importlib.util.find_spec("PIL") is None:
        raise RenderError("Pillow is required to load image textures.")
    pil_image_module = importlib.import_module("PIL.Image")
    try:
        with pil_image_module.open(path) as source:
            pixels = np.asarray(source.convert("RGBA"), dtype=np.float32) / 255.0
    except (OSError, ValueError) as err:
        raise RenderError(f"cannot read image '{path}': {err}") from err
    return finish(fit(pixels, size))


TYPES = (
    TypeDescriptor(
        id="uniform-color",
        name="Uniform color",
        inputs=(InputSlot(name="color", kind=ValueKind.COLOR, default=BLACK),),
        compute="uniform_color",
    ),
    TypeDescriptor(
        id="linear-gradient",
        name="Linear gradient",
        inputs=(
            InputSlot(name="color_a", kind=ValueKind.COLOR, default=BLACK),
            InputSlot(name="color_b", kind=ValueKind.COLOR, default=WHITE),
            InputSlot(name="angle", kind=ValueKind.NUMBER, default=0.0),
        ),
        compute="linear_gradient",
    ),
    TypeDescriptor(
        id="checkerboard",
        name="Checkerboard",
        inputs=(
            InputSlot(name="color_a", kind=ValueKind.COLOR, default=BLACK),
            InputSlot(name="color_b", kind=ValueKind.COLOR, default=WHITE),
            InputSlot(name="cells", kind=ValueKind.NUMBER, default=8),
        ),
        compute="checkerboard",
    ),
    TypeDescriptor(
        id="value-noise",
        name="Value noise",
        inputs=(
            InputSlot(name="seed", kind=ValueKind.NUMBER, default=0),
            InputSlot(name="scale", kind=ValueKind.NUMBER, default=8),
        ),
        compute="value_noise",
        description="Tileable smoothed value noise.",
    ),
    TypeDescriptor(
        id="image",
        name="Image",
        inputs=(InputSlot(name="path", kind=ValueKind.STRING, default=""),),
        compute="image",
        description="Texture loaded from an image file (needs Pillow).",
    ),
)

KERNELS: dict[str, Kernel] = {
    "uniform_color": uniform_color,
    "linear_gradient": linear_gradient,
    "checkerboard": checkerboard,
    "value_noise": value_noise,
    "image": image,
}
