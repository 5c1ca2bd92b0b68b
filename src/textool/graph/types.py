"""Type descriptors for texture operations."""

from __future__ import annotations

from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ValueKind(str, Enum):
    """Supported slot payload kinds."""

    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    STRING = "STRING"
    COLOR = "COLOR"
    VECTOR = "VECTOR"
    TEXTURE = "TEXTURE"


class InputSlot(BaseModel):
    """Declared input of a type, with its literal default."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    kind: ValueKind
    default: Any = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("slot name cannot be empty")
        return trimmed


class OutputSlot(BaseModel):
    """Declared output of a type."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "out"
    kind: ValueKind = ValueKind.TEXTURE


class TypeDescriptor(BaseModel):
    """Immutable description of a texture operation.

    ``compute`` names the kernel a rendering backend runs for nodes of this
    type; descriptors never carry behaviour themselves.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    inputs: tuple[InputSlot, ...] = Field(default_factory=tuple)
    output: OutputSlot = Field(default_factory=OutputSlot)
    compute: str
    description: str = ""

    @model_validator(mode="after")
    def _validate_slots(self) -> "TypeDescriptor":
        names = [slot.name for slot in self.inputs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"type '{self.id}' declares duplicate inputs: {', '.join(duplicates)}")
        return self

    def has_input(self, name: str) -> bool:
        return any(slot.name == name for slot in self.inputs)

    def defaults(self) -> dict[str, Any]:
        return {slot.name: _copy_literal(slot.default) for slot in self.inputs}

    def describe(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def _copy_literal(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_copy_literal(item) for item in value]
    return value


def to_portable(value: Any) -> Any:
    """Unwrap numpy scalars (also inside lists) into plain Python values."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple)):
        return [to_portable(item) for item in value]
    return value


def is_json_safe(value: Any) -> bool:
    """Whether a literal can be written to a portable state document."""
    if isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, (list, tuple)):
        return all(is_json_safe(item) for item in value)
    return False
