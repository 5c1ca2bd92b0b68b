"""Configuration loading and validation for the engine and CLI."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigValidationError(ValueError):
    """Raised when an engine config does not validate."""


class EngineSettings(BaseSettings):
    """Engine settings; every field can be overridden with ``TEXTOOL_<NAME>``."""

    model_config = SettingsConfigDict(env_prefix="TEXTOOL_", extra="forbid")

    texture_size: int = Field(default=256, ge=1, le=8192)
    runs_root: Path = Path("runs")
    threaded_backend: bool = False
    auto_flush: bool = True


def validate_config_dict(raw: object, model: type[BaseModel]) -> BaseModel:
    """Validate a pre-loaded config mapping against a pydantic model."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigValidationError("Config file root must be a mapping/object.")

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def load_and_validate_config(path: Path, model: type[BaseModel]) -> BaseModel:
    """Load YAML config and validate with the provided pydantic model."""
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return validate_config_dict(raw, model)


def load_engine_settings(path: Path | None = None) -> EngineSettings:
    if path is None:
        return EngineSettings()
    return load_and_validate_config(path, EngineSettings)  # type: ignore[return-value]
