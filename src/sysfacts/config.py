"""Pydantic settings for sysfacts."""

import logging
import os
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "SYSFACTS_"


class Settings(BaseModel):
    """Runtime settings for source adapters."""

    proc_path: str = "/proc"
    etc_path: str = "/etc"
    command_timeout: float = Field(default=5.0, gt=0)  # Seconds
    backend: Literal["auto", "linux", "psutil"] = "auto"
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level: {value}")
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``SYSFACTS_*`` environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in environ:
                values[name] = environ[key]
        return cls(**values)
