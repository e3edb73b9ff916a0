"""Protocol definitions for the authentication gate.

This module defines structural interfaces using Protocol (PEP 544) for:
- Fetching signing keys
- Token verification
- Application user lookup
- Authorization
- Token extraction

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance. Any class that implements the required methods
satisfies the protocol.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from .keys import SigningKeySet
    from .verifier import VerifiedIdentity

# ============================================================================
# Type Aliases
# ============================================================================

Claims: TypeAlias = Mapping[str, Any]
"""Represents a decoded JWT payload as an immutable mapping."""

ViewFunc: TypeAlias = Callable[..., Any]
"""Type alias for Flask view functions (callable that takes any args and returns any)."""

Clock: TypeAlias = Callable[[], float]
"""Returns the current time in seconds."""


# ============================================================================
# Core Protocols
# ============================================================================


class KeySource(Protocol):
    """Protocol for fetching the identity provider's current signing keys.

    Implementations perform exactly one upstream request per call and never
    retry internally. Caching belongs to the caller (see KeySetCache).
    """

    def fetch(self) -> SigningKeySet:
        """Fetch and parse the provider's JWKS document.

        Raises:
            NetworkFailure: Endpoint unreachable, timed out or non-200.
            MalformedKeySet: Body is not a valid JWKS document.
        """
        ...


class KeySetProvider(Protocol):
    """Protocol for anything that hands out the current key set (usually a cache)."""

    def get(self) -> SigningKeySet: ...


class TokenVerifier(Protocol):
    """Protocol for bearer token verification implementations.

    Implementers must either return a fully verified identity or raise an
    AuthError subclass. Partial results are never exposed.
    """

    def verify(self, token: str) -> VerifiedIdentity:
        """Verify a raw JWT and return the authenticated identity.

        Args:
            token: The raw JWT string (e.g., from Authorization: Bearer <token>)

        Raises:
            InvalidToken: Token is malformed, signature invalid, or claims invalid
            KeySetError: Signing keys could not be obtained or decoded
        """
        ...


class UserStore(Protocol):
    """Protocol for the application's user records.

    Backed by the persistent store in production. The gate treats it as an
    opaque dependency.
    """

    def user_exists(self, subject: str) -> bool:
        """Return True when the subject has an application user profile."""
        ...

    def roles_for(self, subject: str) -> frozenset[str]:
        """Return the roles held by the subject (empty for unknown subjects)."""
        ...


class Authorizer(Protocol):
    """Protocol for role-based access checks above authentication."""

    def authorize(self, identity: VerifiedIdentity, *, roles: frozenset[str]) -> None:
        """Check that the identity satisfies the role requirement.

        Raises:
            Forbidden: If requirements are not met. Implementations must fail
                closed when roles cannot be determined.
        """
        ...


class Extractor(Protocol):
    """Protocol for extracting the raw JWT from the current Flask request."""

    def extract(self) -> str:
        """Extract the raw JWT string from the Flask request.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...
