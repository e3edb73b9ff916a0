"""Environment configuration for the gym API authentication gate.

Values are read from ``os.environ`` after loading a local ``.env`` file with
python-dotenv. Only ``SUPABASE_URL`` is required.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from .key_sources import issuer_for, jwks_url_for

DEFAULT_CORS_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:3210",
    "http://localhost:5173",
    "https://entrenar.app",
    "https://www.entrenar.app",
)


def _number(
    environ: Mapping[str, str],
    name: str,
    default: float,
    kind: Callable[[str], float],
) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = kind(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class AuthSettings:
    """Settings for the gate and the app factory.

    Attributes:
        supabase_url: Project base URL, e.g. "https://example.supabase.co".
            Both the JWKS endpoint and the expected issuer derive from it.
        jwt_secret: Shared secret enabling the HMAC fallback (local dev only).
        audience: Expected ``aud`` claim; None disables the audience check.
        jwks_cache_ttl: Seconds a fetched key set is trusted.
        jwks_timeout: Seconds before a JWKS fetch is abandoned.
        cors_origins: Origins allowed to call the API from a browser.
        log_level: Root logging level name.
    """

    supabase_url: str
    jwt_secret: str | None = None
    audience: str | None = None
    jwks_cache_ttl: int = 300
    jwks_timeout: float = 10.0
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    @property
    def issuer(self) -> str:
        return issuer_for(self.supabase_url)

    @property
    def jwks_url(self) -> str:
        return jwks_url_for(self.supabase_url)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AuthSettings:
        """Build settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``. When omitted,
                ``.env`` is loaded first (existing variables win).

        Raises:
            ValueError: SUPABASE_URL is missing or a numeric setting is invalid.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        supabase_url = environ.get("SUPABASE_URL", "").strip()
        if not supabase_url:
            raise ValueError("Missing required environment variable SUPABASE_URL")

        origins = environ.get("CORS_ALLOWED_ORIGINS", "")
        cors_origins = tuple(o.strip() for o in origins.split(",") if o.strip())

        return cls(
            supabase_url=supabase_url.rstrip("/"),
            jwt_secret=environ.get("SUPABASE_JWT_SECRET") or None,
            audience=environ.get("SUPABASE_JWT_AUDIENCE") or None,
            jwks_cache_ttl=int(_number(environ, "JWKS_CACHE_TTL", 300, int)),
            jwks_timeout=_number(environ, "JWKS_TIMEOUT", 10.0, float),
            cors_origins=cors_origins or DEFAULT_CORS_ORIGINS,
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
        )
