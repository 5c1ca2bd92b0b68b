"""Built-in texture operations: descriptors plus numpy kernels."""

from textool.library import combiners, filters, generators
from textool.library.textures import Kernel

TYPES = (*generators.TYPES, *filters.TYPES, *combiners.TYPES)

KERNELS: dict[str, Kernel] = {
    **generators.KERNELS,
    **filters.KERNELS,
    **combiners.KERNELS,
}

__all__ = ["KERNELS", "TYPES", "Kernel"]
