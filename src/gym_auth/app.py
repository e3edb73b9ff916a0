"""Application wiring for the gym API authentication gate.

``create_app`` assembles a Flask application the same way the gym backend
does: CORS, request logging, the authorization gate, and the two routes the
gate itself cares about (the public health check and ``/api/me``). Resource
routes (workouts, routines, ...) are registered on top of it by the backend.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import TYPE_CHECKING

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from .authorization import RoleAuthorizer
from .config import AuthSettings
from .flask_extension import AuthGate, current_identity
from .key_cache import KeySetCache
from .key_sources import SupabaseJWKSSource
from .refresh_gate import RefreshGate
from .verifier import FallbackVerifier, JWKSVerifier, SecretVerifier, VerifyOptions

if TYPE_CHECKING:
    from flask import Response

    from .protocols import TokenVerifier, UserStore

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("gym_auth.requests")


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging for the API."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )


def build_verifier(settings: AuthSettings) -> TokenVerifier:
    """Wire key source, cache and verifiers from settings.

    The secret fallback is only installed when ``settings.jwt_secret`` is set.
    """
    options = VerifyOptions(issuer=settings.issuer, audience=settings.audience)
    cache = KeySetCache(
        SupabaseJWKSSource(settings.supabase_url, timeout=settings.jwks_timeout),
        ttl_seconds=settings.jwks_cache_ttl,
        gate=RefreshGate(min_interval=min(10.0, settings.jwks_cache_ttl)),
    )
    primary = JWKSVerifier(cache, options)

    fallback = None
    if settings.jwt_secret:
        logger.warning("SUPABASE_JWT_SECRET is set: HMAC fallback verification enabled")
        fallback = SecretVerifier(settings.jwt_secret, options)

    return FallbackVerifier(primary, fallback)


def _start_timer() -> None:
    g.request_started = time.perf_counter()


def _log_request(response: Response) -> Response:
    started = g.get("request_started")
    elapsed_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
    request_logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.path,
        response.status_code,
        elapsed_ms,
        request.remote_addr,
    )
    return response


def create_app(
    settings: AuthSettings | None = None,
    *,
    user_store: UserStore,
    verifier: TokenVerifier | None = None,
) -> Flask:
    """
    Create and configure the Flask application with the authorization gate.

    Args:
        settings: Configuration; read from the environment when omitted.
        user_store: Application user records used by the gate.
        verifier: Override the verifier built from settings (tests).

    Returns:
        Flask: Configured Flask application instance
    """
    settings = settings or AuthSettings.from_env()

    app = Flask(__name__)

    CORS(
        app,
        origins=list(settings.cors_origins),
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )

    # Timing runs before the gate so rejected requests are logged too.
    app.before_request(_start_timer)
    app.after_request(_log_request)

    gate = AuthGate(
        verifier or build_verifier(settings),
        user_store,
        authorizer=RoleAuthorizer(user_store),
    )
    gate.init_app(app)

    @app.get("/api/health")
    def health():
        """Liveness probe; never requires a token."""
        return jsonify({"status": "ok"}), 200

    @app.get("/api/me")
    def me():
        """Return the verified identity of the caller."""
        identity = current_identity()
        return jsonify(
            {
                "user_id": identity.subject,
                "expires_at": identity.expires_at.isoformat() if identity.expires_at else None,
            }
        ), 200

    return app
