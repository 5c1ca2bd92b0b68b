"""Rendering backends that execute a node's compute step."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from textool.graph.errors import RenderError
from textool.graph.types import TypeDescriptor
from textool.library import KERNELS, Kernel
from textool.library.textures import finish

_target_ids = itertools.count(1)


@dataclass(eq=False)
class RenderTarget:
    """Output surface owned by a single node."""

    width: int
    height: int
    id: int = field(default_factory=lambda: next(_target_ids))
    released: bool = False

    @property
    def size(self) -> tuple[int, int]:
        return self.height, self.width


class NumpyBackend:
    """Runs the built-in kernels over float32 RGBA arrays (HxWx4, 0..1)."""

    def __init__(self, size: int = 256, kernels: dict[str, Kernel] | None = None) -> None:
        if size <= 0:
            raise ValueError(f"texture size must be positive, got {size}")
        self.size = size
        self.kernels = dict(KERNELS if kernels is None else kernels)
        self._targets: dict[int, RenderTarget] = {}

    def allocate_target(self, width: int | None = None, height: int | None = None) -> RenderTarget:
        target = RenderTarget(width or self.size, height or width or self.size)
        self._targets[target.id] = target
        return target

    @property
    def live_targets(self) -> list[RenderTarget]:
        return list(self._targets.values())

    def compute(self, node_type: TypeDescriptor, inputs: dict[str, Any], target: Any) -> np.ndarray:
        kernel = self.kernels.get(node_type.compute)
        if kernel is None:
            raise RenderError(f"no kernel '{node_type.compute}' for type '{node_type.id}'")

        size = (self.size, self.size)
        if isinstance(target, RenderTarget):
            if target.released:
                raise RenderError(f"render target {target.id} was released")
            size = target.size

        result = np.asarray(kernel(inputs, size))
        if result.shape != (*size, 4):
            raise RenderError(
                f"kernel '{node_type.compute}' returned shape {result.shape}, expected {(*size, 4)}"
            )
        # Outputs are shared with downstream readers and must not be mutated.
        result = finish(result)
        result.setflags(write=False)
        return result

    def release(self, target: Any) -> None:
        if isinstance(target, RenderTarget):
            target.released = True
            self._targets.pop(target.id, None)


class ThreadedBackend:
    """Runs a synchronous backend in a worker thread so compute suspends."""

    def __init__(self, inner: NumpyBackend) -> None:
        self.inner = inner

    async def compute(self, node_type: TypeDescriptor, inputs: dict[str, Any], target: Any) -> np.ndarray:
        return await asyncio.to_thread(self.inner.compute, node_type, inputs, target)

    def release(self, target: Any) -> None:
        self.inner.release(target)
