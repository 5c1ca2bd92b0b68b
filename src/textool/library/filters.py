"""Single-source texture filters."""

from __future__ import annotations

from typing import Any

import numpy as np

from textool.graph.errors import RenderError
from textool.graph.types import InputSlot, TypeDescriptor, ValueKind
from textool.library.textures import Kernel, Size, as_number, finish, luminance, texture_input


def _source(inputs: dict[str, Any], size: Size) -> np.ndarray:
    return texture_input(inputs["source"], size)


def invert(inputs: dict[str, Any], size: Size) -> np.ndarray:
    out = _source(inputs, size).copy()
    out[..., :3] = 1.0 - out[..., :3]
    return finish(out)


def threshold(inputs: dict[str, Any], size: Size) -> np.ndarray:
    src = _source(inputs, size)
    level = as_number(inputs["level"], "level")
    mask = (luminance(src) >= level).astype(np.float32)
    out = np.empty_like(src)
    out[..., :3] = mask[..., None]
    out[..., 3] = src[..., 3]
    return finish(out)


def levels(inputs: dict[str, Any], size: Size) -> np.ndarray:
    src = _source(inputs, size)
    black = as_number(inputs["black"], "black")
    white = as_number(inputs["white"], "white")
    gamma = as_number(inputs["gamma"], "gamma")
    if white <= black:
        raise RenderError(f"levels needs white > black, got black={black} white={white}")
    if gamma <= 0:
        raise RenderError(f"levels needs a positive gamma, got {gamma}")
    out = src.copy()
    rgb = np.clip((src[..., :3] - black) / (white - black), 0.0, 1.0)
    out[..., :3] = rgb ** (1.0 / gamma)
    return finish(out)


def grayscale(inputs: dict[str, Any], size: Size) -> np.ndarray:
    src = _source(inputs, size)
    out = src.copy()
    out[..., :3] = luminance(src)[..., None]
    return finish(out)


def _source_slot() -> InputSlot:
    return InputSlot(name="source", kind=ValueKind.TEXTURE, default=None)


TYPES = (
    TypeDescriptor(id="invert", name="Invert", inputs=(_source_slot(),), compute="invert"),
    TypeDescriptor(
        id="threshold",
        name="Threshold",
        inputs=(_source_slot(), InputSlot(name="level", kind=ValueKind.NUMBER, default=0.5)),
        compute="threshold",
    ),
    TypeDescriptor(
        id="levels",
        name="Levels",
        inputs=(
            _source_slot(),
            InputSlot(name="black", kind=ValueKind.NUMBER, default=0.0),
            InputSlot(name="white", kind=ValueKind.NUMBER, default=1.0),
            InputSlot(name="gamma", kind=ValueKind.NUMBER, default=1.0),
        ),
        compute="levels",
    ),
    TypeDescriptor(id="grayscale", name="Grayscale", inputs=(_source_slot(),), compute="grayscale"),
)

KERNELS: dict[str, Kernel] = {
    "invert": invert,
    "threshold": threshold,
    "levels": levels,
    "grayscale": grayscale,
}
