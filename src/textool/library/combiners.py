"""Operations that combine two textures."""

from __future__ import annotations

from typing import Any

import numpy as np

from textool.graph.errors import RenderError
from textool.graph.types import InputSlot, TypeDescriptor, ValueKind
from textool.library.textures import Kernel, Size, as_number, finish, luminance, texture_input

BLEND_MODES = ("mix", "add", "multiply", "screen", "difference")


def blend(inputs: dict[str, Any], size: Size) -> np.ndarray:
    a = texture_input(inputs["a"], size)
    b = texture_input(inputs["b"], size)
    amount = float(np.clip(as_number(inputs["amount"], "amount"), 0.0, 1.0))
    mode = str(inputs["mode"]).lower()
    if mode == "mix":
        mixed = b
    elif mode == "add":
        mixed = a + b
    elif mode == "multiply":
        mixed = a * b
    elif mode == "screen":
        mixed = 1.0 - (1.0 - a) * (1.0 - b)
    elif mode == "difference":
        mixed = np.abs(a - b)
    else:
        raise RenderError(f"unknown blend mode '{mode}' (expected one of {', '.join(BLEND_MODES)})")
    return finish(a * (1.0 - amount) + mixed * amount)


def multiply(inputs: dict[str, Any], size: Size) -> np.ndarray:
    return finish(texture_input(inputs["a"], size) * texture_input(inputs["b"], size))


def mask(inputs: dict[str, Any], size: Size) -> np.ndarray:
    src = texture_input(inputs["source"], size)
    matte = texture_input(inputs["mask"], size)
    out = src.copy()
    out[..., 3] = src[..., 3] * luminance(matte)
    return finish(out)


def _texture(name: str) -> InputSlot:
    return InputSlot(name=name, kind=ValueKind.TEXTURE, default=None)


TYPES = (
    TypeDescriptor(
        id="blend",
        name="Blend",
        inputs=(
            _texture("a"),
            _texture("b"),
            InputSlot(name="amount", kind=ValueKind.NUMBER, default=0.5),
            InputSlot(name="mode", kind=ValueKind.STRING, default="mix"),
        ),
        compute="blend",
    ),
    TypeDescriptor(
        id="multiply",
        name="Multiply",
        inputs=(_texture("a"), _texture("b")),
        compute="multiply",
    ),
    TypeDescriptor(
        id="mask",
        name="Mask",
        inputs=(_texture("source"), _texture("mask")),
        compute="mask",
        description="Scales the source alpha by the mask luminance.",
    ),
)

KERNELS: dict[str, Kernel] = {
    "blend": blend,
    "multiply": multiply,
    "mask": mask,
}
