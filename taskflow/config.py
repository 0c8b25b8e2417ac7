"""
Configuration Loading.

All settings come from TASKFLOW_* environment variables; every field has a
default suitable for local development.
"""

import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000"


class Settings(BaseModel):
    data_dir: str = ".taskflow"
    cors_origins: List[str] = Field(
        default_factory=lambda: DEFAULT_CORS_ORIGINS.split(",")
    )
    session_ttl_hours: int = 24 * 7
    max_attachment_mb: int = 25
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def max_attachment_bytes(self) -> int:
        return self.max_attachment_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ValidationError: If a numeric variable is not a positive integer
        """
        env = os.environ if environ is None else environ
        origins = env.get("TASKFLOW_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)

        return cls(
            data_dir=env.get("TASKFLOW_DATA_DIR", ".taskflow"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            session_ttl_hours=_positive_int(env, "TASKFLOW_SESSION_TTL_HOURS", 24 * 7),
            max_attachment_mb=_positive_int(env, "TASKFLOW_MAX_ATTACHMENT_MB", 25),
            log_level=env.get("TASKFLOW_LOG_LEVEL", "INFO").upper(),
            host=env.get("TASKFLOW_HOST", "127.0.0.1"),
            port=_positive_int(env, "TASKFLOW_PORT", 8000),
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got '{raw}'.", field=name)
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}.", field=name)
    return value
