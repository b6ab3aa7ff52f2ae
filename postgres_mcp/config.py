"""Process-wide settings, read from the environment once at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    allowed_origins: tuple[str, ...] = ("*",)
    enable_writes: bool = False
    database_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 3000
    keepalive_interval: float = 30.0

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ
        origins = environ.get("ALLOWED_ORIGINS", "*")
        return cls(
            api_key=environ.get("MCP_API_KEY") or None,
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            enable_writes=environ.get("ENABLE_WRITES") == "true",
            database_url=environ.get("DATABASE_URL") or None,
            host=environ.get("HOST", "0.0.0.0"),
            port=int(environ.get("PORT", "3000")),
            keepalive_interval=float(environ.get("KEEPALIVE_SECONDS", "30")),
        )
