"""Flask extension implementing the authorization gate.

This module is the integration point between token verification and the
Flask application. Unlike a per-route decorator, the gate runs for every
request through a ``before_request`` hook, so a route is protected unless it
is explicitly listed as public.

Per-request flow:
1. CORS preflight (``OPTIONS``) passes untouched.
2. Paths in ``public_paths`` (health check) pass untouched.
3. Extract the bearer token and verify it.
4. Unless the path is in ``setup_paths`` (first-time account setup), the
   subject must exist in the application's user store.
5. Store the identity in ``flask.g.identity`` / ``flask.g.user_id``.

Any AuthError is rendered as JSON by the error handler registered in
``init_app`` (401, or 403 for role failures).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, g, jsonify, request

from .errors import AuthError, SubjectNotProvisioned
from .extractors import BearerExtractor

if TYPE_CHECKING:
    from flask import Response

    from .protocols import Authorizer, Extractor, TokenVerifier, UserStore, ViewFunc
    from .verifier import VerifiedIdentity

logger = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "auth_gate"
"""Flask extensions registry key for AuthGate."""

DEFAULT_PUBLIC_PATHS: Final[tuple[str, ...]] = ("/api/health",)
DEFAULT_SETUP_PATHS: Final[tuple[str, ...]] = ("/api/me/setup",)


def _normalize(path: str) -> str:
    return path.rstrip("/") or "/"


class AuthGate:
    """
    Flask glue for bearer token authentication.

    Responsibilities:
    - Decide which requests need a token
    - Extract and verify the token (TokenVerifier)
    - Reject subjects the application no longer knows (UserStore)
    - Expose the verified identity on ``flask.g``
    - Optionally enforce roles per view (Authorizer)
    - Convert domain errors to JSON HTTP responses

    Usage:
        gate = AuthGate(verifier, user_store, authorizer=RoleAuthorizer(user_store))
        gate.init_app(app)

        @app.get("/api/admin/users")
        @gate.require_roles("admin")
        def admin_users(): ...
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        user_store: UserStore,
        *,
        public_paths: Iterable[str] = DEFAULT_PUBLIC_PATHS,
        setup_paths: Iterable[str] = DEFAULT_SETUP_PATHS,
        extractor: Extractor | None = None,
        authorizer: Authorizer | None = None,
    ) -> None:
        self._verifier: TokenVerifier = verifier
        self._users: UserStore = user_store
        self._public_paths = frozenset(_normalize(p) for p in public_paths)
        self._setup_paths = frozenset(_normalize(p) for p in setup_paths)
        self._extractor: Extractor = extractor or BearerExtractor()
        self._authorizer: Authorizer | None = authorizer

    def init_app(self, app: Flask) -> None:
        """Install the gate on a Flask application.

        Registers the ``before_request`` hook and the AuthError handler, and
        records the extension under ``app.extensions["auth_gate"]``.
        """
        app.before_request(self._authenticate)
        app.register_error_handler(AuthError, handle_auth_error)
        app.extensions[_EXT_KEY] = self

    def _authenticate(self) -> None:
        if request.method == "OPTIONS":
            return None

        path = _normalize(request.path)
        if path in self._public_paths:
            return None

        token = self._extractor.extract()
        try:
            identity = self._verifier.verify(token)
        except AuthError as e:
            logger.info("Rejected token on %s %s: %s", request.method, path, e.code)
            raise
        except Exception as e:
            logger.exception("Token verification failed unexpectedly on %s", path)
            raise AuthError("Token verification failed") from e

        if path not in self._setup_paths:
            try:
                exists = self._users.user_exists(identity.subject)
            except Exception as e:
                logger.exception("User lookup failed for subject %s", identity.subject)
                raise AuthError("User lookup failed") from e
            if not exists:
                logger.info("Subject %s has no user profile", identity.subject)
                raise SubjectNotProvisioned(identity.subject)

        g.identity = identity
        g.user_id = identity.subject
        return None

    def require_roles(self, *roles: str):
        """Decorator restricting a view to subjects holding any of ``roles``.

        Requires an authorizer; the view itself must be behind the gate.

        Error mapping:
        - No authenticated identity -> HTTP 401
        - Authorizer denies          -> HTTP 403

        Args:
            *roles: Accepted roles (any-of).
        """
        if self._authorizer is None:
            raise RuntimeError("require_roles() needs an authorizer")
        authorizer = self._authorizer
        roles_set = frozenset(roles)

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                authorizer.authorize(current_identity(), roles=roles_set)
                return view(*args, **kwargs)

            return wrapper

        return decorator


def handle_auth_error(error: AuthError) -> tuple[Response, int]:
    """Render an AuthError as a JSON response.

    Only the error's code and safe description leave the server.
    """
    response = jsonify(
        {
            "error": error.code,
            "message": error.description,
            "retryable": error.retryable,
        }
    )
    if error.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response, error.status_code


def current_identity() -> VerifiedIdentity:
    """Return the identity the gate verified for the current request.

    Raises:
        AuthError: Called outside an authenticated request (public path,
            preflight, or the gate is not installed).
    """
    identity = g.get("identity")
    if identity is None:
        raise AuthError("No authenticated identity for this request")
    return identity


def current_user_id() -> str:
    """Return the verified subject (user id) of the current request."""
    return current_identity().subject
