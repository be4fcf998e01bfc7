import os
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    """Process-wide settings, read once at startup."""
    model_config = ConfigDict(frozen=True)

    bridge_secret: str
    bridges_file: Optional[str] = None
    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)
    rate_limit_per_minute: int = Field(default=120, ge=0)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        secret = env.get("BRIDGE_SECRET", "")
        if not secret:
            raise ValueError("BRIDGE_SECRET environment variable must be set")
        origins = [o.strip() for o in env.get("CORS_ALLOWED_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            bridge_secret=secret,
            bridges_file=env.get("BRIDGES_FILE") or None,
            cors_allowed_origins=origins or ["*"],
            upstream_timeout_seconds=env.get("UPSTREAM_TIMEOUT_SECONDS", 30),
            rate_limit_per_minute=env.get("RATE_LIMIT_PER_MINUTE", 120),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            host=env.get("HOST", "0.0.0.0"),
            port=env.get("PORT", 8000),
        )
