"""
Supabase JWT verification and Flask authorization gate for the gym API.

High-level flow (per request)
-----------------------------
1. `AuthGate` runs as a `before_request` hook.
2. Preflight requests and public paths (health check) pass untouched.
3. `BearerExtractor` pulls the raw JWT from `Authorization: Bearer <token>`.
4. `FallbackVerifier.verify(token)`:
   - `JWKSVerifier` reads the unverified header (`alg`, `kid`), resolves the
     key in the cached JWKS (`KeySetCache`), verifies the signature, then
     validates issuer, expiry and subject
   - only if that fails and a shared secret is configured, `SecretVerifier`
     tries HMAC verification with the same claim checks
5. The subject must exist in the `UserStore` (skipped on setup paths).
6. On success: the identity is stored in `flask.g.identity` / `flask.g.user_id`.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Each path accepts one algorithm family (no algorithm confusion).
- Issuer is compared by exact string equality.
- JWKS fetches are single-flight and throttled after failures.

Example usage
-------------

.. code-block:: python

    from gym_auth import AuthSettings, InMemoryUserStore, create_app

    settings = AuthSettings(supabase_url="https://example.supabase.co")
    app = create_app(settings, user_store=InMemoryUserStore({"user-42": ["user"]}))
"""

# Application
from .app import build_verifier, configure_logging, create_app

# Authorization
from .authorization import (
    ADMIN_ONLY,
    ADMIN_OR_TEACHER,
    ADMIN_STAFF_OR_TEACHER,
    RoleAuthorizer,
)

# Configuration
from .config import AuthSettings

# Errors
from .errors import (
    AudienceMismatch,
    AuthError,
    AuthHeaderMalformed,
    AuthHeaderMissing,
    BadStatus,
    Forbidden,
    InvalidSignature,
    InvalidToken,
    IssuerMismatch,
    KeyNotFound,
    KeySetError,
    MalformedEncoding,
    MalformedKeySet,
    MalformedToken,
    MissingExpiry,
    MissingSubject,
    MissingToken,
    NetworkFailure,
    SubjectNotProvisioned,
    TokenExpired,
    TokenNotYetValid,
    UnsupportedAlgorithm,
    UnsupportedKeyType,
)

# Extractors
from .extractors import BearerExtractor

# Flask extension
from .flask_extension import AuthGate, current_identity, current_user_id

# Key cache
from .key_cache import KeySetCache

# Key sources
from .key_sources import SupabaseJWKSSource, issuer_for, jwks_url_for

# Keys
from .keys import (
    ECKey,
    RSAKey,
    SigningKeySet,
    UnsupportedKey,
    decode_key,
    parse_jwk,
    parse_key_set,
)

# Protocols
from .protocols import (
    Authorizer,
    Claims,
    Extractor,
    KeySource,
    TokenVerifier,
    UserStore,
    ViewFunc,
)

# Refresh gate
from .refresh_gate import RefreshGate

# User stores
from .user_stores import InMemoryUserStore, SQLUserStore

# Verifier
from .verifier import (
    FallbackVerifier,
    JWKSVerifier,
    SecretVerifier,
    TokenClaims,
    VerifiedIdentity,
    VerifyOptions,
    validate_claims,
)

__all__ = [
    # Application
    "build_verifier",
    "configure_logging",
    "create_app",
    # Configuration
    "AuthSettings",
    # Errors
    "AudienceMismatch",
    "AuthError",
    "AuthHeaderMalformed",
    "AuthHeaderMissing",
    "BadStatus",
    "Forbidden",
    "InvalidSignature",
    "InvalidToken",
    "IssuerMismatch",
    "KeyNotFound",
    "KeySetError",
    "MalformedEncoding",
    "MalformedKeySet",
    "MalformedToken",
    "MissingExpiry",
    "MissingSubject",
    "MissingToken",
    "NetworkFailure",
    "SubjectNotProvisioned",
    "TokenExpired",
    "TokenNotYetValid",
    "UnsupportedAlgorithm",
    "UnsupportedKeyType",
    # Protocols
    "Authorizer",
    "Claims",
    "Extractor",
    "KeySource",
    "TokenVerifier",
    "UserStore",
    "ViewFunc",
    # Extractors
    "BearerExtractor",
    # Keys
    "ECKey",
    "RSAKey",
    "SigningKeySet",
    "UnsupportedKey",
    "decode_key",
    "parse_jwk",
    "parse_key_set",
    # Key sources
    "SupabaseJWKSSource",
    "issuer_for",
    "jwks_url_for",
    # Key cache
    "KeySetCache",
    # Refresh gate
    "RefreshGate",
    # Verifier
    "FallbackVerifier",
    "JWKSVerifier",
    "SecretVerifier",
    "TokenClaims",
    "VerifiedIdentity",
    "VerifyOptions",
    "validate_claims",
    # User stores
    "InMemoryUserStore",
    "SQLUserStore",
    # Authorization
    "ADMIN_ONLY",
    "ADMIN_OR_TEACHER",
    "ADMIN_STAFF_OR_TEACHER",
    "RoleAuthorizer",
    # Flask extension
    "AuthGate",
    "current_identity",
    "current_user_id",
]
