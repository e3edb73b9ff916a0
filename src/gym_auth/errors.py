"""Authentication and authorization errors.

This module defines the exception hierarchy for every way a request can be
rejected by the gate. All errors inherit from AuthError so the Flask boundary
can map them to a response in one place.

Every class carries:
    code: Stable machine-readable identifier returned to clients.
    description: Client-facing message. Never contains key material, token
        contents or internal state; details go to the server log instead.
    status_code: HTTP status the gate answers with (401 unless noted).
    retryable: Whether the same request may succeed later without the client
        changing anything (e.g. the identity provider was unreachable).

Security Note:
    ``str(error)`` may hold diagnostic detail for logs. Only ``code`` and
    ``description`` are ever sent to clients.
"""

from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base exception for all authentication and authorization failures.

    Application code can catch this single exception type to handle any auth
    failure generically.
    """

    code: ClassVar[str] = "authentication_failed"
    description: ClassVar[str] = "Authentication failed"
    status_code: ClassVar[int] = 401
    retryable: ClassVar[bool] = False


# ============================================================================
# Request header
# ============================================================================


class MissingToken(AuthError):  # noqa: N818
    """Raised when no usable bearer token is present on the request."""

    code = "missing_token"
    description = "Authentication required"


class AuthHeaderMissing(MissingToken):  # noqa: N818
    """The Authorization header is absent or blank."""

    code = "auth_header_missing"
    description = "Authorization header required"


class AuthHeaderMalformed(MissingToken):  # noqa: N818
    """The Authorization header is not of the form ``Bearer <token>``."""

    code = "auth_header_malformed"
    description = "Invalid Authorization header format"


# ============================================================================
# Key source and key material
# ============================================================================


class KeySetError(AuthError):
    """Base class for failures obtaining or decoding the provider's keys."""

    code = "key_set_error"
    description = "Unable to load signing keys"


class NetworkFailure(KeySetError):
    """The JWKS endpoint could not be reached, or fetching was throttled.

    Retryable: the next request triggers a new fetch attempt once the refresh
    gate allows it. Nothing is retried inside the failing request.
    """

    code = "network_failure"
    description = "Identity provider unavailable, try again later"
    retryable = True


class BadStatus(NetworkFailure):
    """The JWKS endpoint answered with a non-200 status.

    Attributes:
        status: HTTP status returned by the endpoint.
    """

    def __init__(self, status: int, message: str | None = None) -> None:
        super().__init__(message or f"JWKS endpoint returned status {status}")
        self.status = status


class MalformedKeySet(KeySetError):
    """The JWKS document could not be parsed (bad JSON or unexpected shape).

    Not retryable until the provider publishes a valid document.
    """

    code = "malformed_key_set"
    description = "Identity provider returned invalid signing keys"


class MalformedEncoding(MalformedKeySet):
    """Key material is not valid base64url or not a valid public key."""


class UnsupportedKeyType(KeySetError):
    """The signing key is neither RSA nor EC on a supported curve."""

    code = "unsupported_key_type"
    description = "Unsupported signing key"


# ============================================================================
# Token
# ============================================================================


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be accepted.

    Subclasses distinguish the failing step for logs and metrics. All of them
    answer 401; clients should not rely on the distinction.
    """

    code = "invalid_token"
    description = "Invalid token"


class MalformedToken(InvalidToken):  # noqa: N818
    """The token is not a structurally valid JWT."""

    code = "malformed_token"


class UnsupportedAlgorithm(InvalidToken):  # noqa: N818
    """The header's ``alg`` is outside the family the verification path accepts."""

    code = "unsupported_algorithm"


class KeyNotFound(InvalidToken):  # noqa: N818
    """The header carries no ``kid``, or no key in the set has exactly that id."""

    code = "key_not_found"


class InvalidSignature(InvalidToken):  # noqa: N818
    """The signature does not verify against the resolved key."""

    code = "invalid_signature"


class IssuerMismatch(InvalidToken):  # noqa: N818
    """The ``iss`` claim is absent or not exactly the expected issuer."""

    code = "issuer_mismatch"


class AudienceMismatch(InvalidToken):  # noqa: N818
    """The ``aud`` claim does not contain the configured audience."""

    code = "audience_mismatch"


class TokenNotYetValid(InvalidToken):  # noqa: N818
    """The ``nbf`` claim lies in the future."""

    code = "token_not_yet_valid"


class TokenExpired(InvalidToken):  # noqa: N818
    """The ``exp`` claim is not strictly greater than the current time."""

    code = "token_expired"
    description = "Token has expired"


class MissingExpiry(InvalidToken):  # noqa: N818
    """The token has no ``exp`` claim and non-expiring tokens are not allowed."""

    code = "missing_expiry"


class MissingSubject(InvalidToken):  # noqa: N818
    """The ``sub`` claim is absent, empty or not a string."""

    code = "missing_subject"


# ============================================================================
# Application user store / authorization
# ============================================================================


class SubjectNotProvisioned(AuthError):  # noqa: N818
    """The token is valid but its subject no longer exists in the user store."""

    code = "subject_not_provisioned"
    description = "User not found or has been removed"


class Forbidden(AuthError):  # noqa: N818
    """Raised when an authenticated subject lacks the role a route requires.

    This is the only error that answers 403. All others are 401.
    """

    code = "forbidden"
    description = "Forbidden"
    status_code = 403
