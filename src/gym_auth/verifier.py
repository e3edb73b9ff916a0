"""Bearer token verification using PyJWT.

Two verification paths are provided, plus a composite that orders them:

- JWKSVerifier: asymmetric tokens (RS*/PS*/ES*) checked against the
  provider's published keys. This is the production path.
- SecretVerifier: HMAC tokens (HS*) checked against a pre-shared secret.
  Intended for local development without access to the provider.
- FallbackVerifier: JWKS first, secret second. Never the reverse, so a
  configured secret cannot downgrade a token that the JWKS path accepts.

Both paths delegate only the signature check to ``jwt.decode``. Issuer,
expiry and subject are validated by ``validate_claims`` against an injected
clock so the rules (strict ``exp > now``, exact issuer) are explicit and
testable.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

import jwt

from .errors import (
    AudienceMismatch,
    AuthError,
    InvalidSignature,
    IssuerMismatch,
    KeyNotFound,
    MalformedToken,
    MissingExpiry,
    MissingSubject,
    TokenExpired,
    TokenNotYetValid,
    UnsupportedAlgorithm,
)
from .keys import ECKey, RSAKey, decode_key
from .protocols import TokenVerifier

if TYPE_CHECKING:
    from .keys import PublicKey, SigningKey
    from .protocols import Claims, Clock, KeySetProvider

logger = logging.getLogger(__name__)

RSA_ALGORITHMS: Final[frozenset[str]] = frozenset(
    {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512"}
)
EC_ALGORITHMS: Final[frozenset[str]] = frozenset({"ES256", "ES384", "ES512"})
ASYMMETRIC_ALGORITHMS: Final[frozenset[str]] = RSA_ALGORITHMS | EC_ALGORITHMS
HMAC_ALGORITHMS: Final[frozenset[str]] = frozenset({"HS256", "HS384", "HS512"})


@dataclass(frozen=True, slots=True)
class VerifyOptions:
    """Configuration for token validation rules.

    Attributes:
        issuer: Expected ``iss`` claim, compared by exact string equality.
            For Supabase: "https://<project>.supabase.co/auth/v1".

        audience: Expected ``aud`` claim. Supabase issues "authenticated" for
            signed-in users. If None, audience is not validated.

        leeway: Clock skew tolerance in seconds for ``exp`` and ``nbf``.
            Default: 0 (a token expiring exactly now is rejected).

        require_exp: Reject tokens without an ``exp`` claim. When False such
            tokens never expire. Default: True.
    """

    issuer: str
    audience: str | None = None
    leeway: int = 0
    require_exp: bool = True


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Typed view of the registered claims checked by ``validate_claims``.

    Fields are None when the claim is absent. Values are not validated beyond
    their type; see ``validate_claims``.
    """

    subject: Any
    issuer: Any
    expires_at: float | None

    @classmethod
    def from_payload(cls, payload: Claims) -> TokenClaims:
        """Build from a decoded payload.

        Raises:
            MalformedToken: ``exp`` is present but not a number.
        """
        exp = payload.get("exp")
        if exp is not None and (isinstance(exp, bool) or not isinstance(exp, (int, float))):
            raise MalformedToken("'exp' claim must be a number")

        return cls(
            subject=payload.get("sub"),
            issuer=payload.get("iss"),
            expires_at=exp,
        )


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    """Outcome of a successful verification.

    Created per request and discarded with it; never persisted.

    Attributes:
        subject: The ``sub`` claim (Supabase user UUID).
        issuer: The ``iss`` claim.
        expires_at: Expiry as an aware UTC datetime, or None when the token
            has no ``exp`` and non-expiring tokens are allowed.
    """

    subject: str
    issuer: str
    expires_at: datetime | None


def validate_claims(payload: Claims, options: VerifyOptions, now: float) -> VerifiedIdentity:
    """Validate issuer, expiry and subject of a signature-checked payload.

    Raises:
        IssuerMismatch: ``iss`` absent or not exactly ``options.issuer``.
        TokenExpired: ``exp`` is not strictly greater than ``now``.
        MissingExpiry: No ``exp`` and ``options.require_exp`` is set.
        MissingSubject: ``sub`` absent, empty or not a string.
        MalformedToken: ``exp`` is not a number, or too large to be a date.
    """
    claims = TokenClaims.from_payload(payload)

    if not isinstance(claims.issuer, str) or claims.issuer != options.issuer:
        raise IssuerMismatch(f"Unexpected issuer {claims.issuer!r}")

    expires_at: datetime | None = None
    if claims.expires_at is None:
        if options.require_exp:
            raise MissingExpiry("Token has no 'exp' claim")
    else:
        if not claims.expires_at + options.leeway > now:
            raise TokenExpired("Token has expired")
        try:
            expires_at = datetime.fromtimestamp(claims.expires_at, tz=UTC)
        except (OverflowError, ValueError, OSError) as e:
            raise MalformedToken("'exp' claim is out of range") from e

    if not isinstance(claims.subject, str) or not claims.subject:
        raise MissingSubject("Token has no usable 'sub' claim")

    return VerifiedIdentity(subject=claims.subject, issuer=claims.issuer, expires_at=expires_at)


# ============================================================================
# Shared helpers
# ============================================================================


def _read_header(token: str) -> Mapping[str, Any]:
    """Parse the token header without verifying anything."""
    try:
        return jwt.get_unverified_header(token)
    except jwt.PyJWTError as e:
        raise MalformedToken(f"Unreadable token header: {e}") from e


def _check_signature(
    token: str,
    key: PublicKey | str,
    algorithm: str,
    options: VerifyOptions,
) -> dict[str, Any]:
    """Verify the signature with exactly one algorithm and return the payload.

    Issuer and ``exp`` are left to ``validate_claims``. PyJWT still checks
    ``nbf`` and ``iat`` when present, against the real clock rather than the
    verifier's injected one.
    """
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            audience=options.audience,
            leeway=options.leeway,
            options={
                "verify_exp": False,
                "verify_iss": False,
                "verify_sub": False,
                "verify_aud": options.audience is not None,
            },
        )
    except jwt.InvalidSignatureError as e:
        raise InvalidSignature("Signature verification failed") from e
    except jwt.InvalidAudienceError as e:
        raise AudienceMismatch(f"Unexpected audience: {e}") from e
    except jwt.MissingRequiredClaimError as e:
        raise AudienceMismatch(f"Missing claim: {e}") from e
    except jwt.ImmatureSignatureError as e:
        raise TokenNotYetValid("Token is not yet valid") from e
    except jwt.DecodeError as e:
        raise MalformedToken(f"Token could not be decoded: {e}") from e
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Token has an invalid claim: {e}") from e
    except jwt.PyJWTError as e:
        raise InvalidSignature(f"Token validation failed: {e}") from e


def _key_matches_algorithm(key: SigningKey, algorithm: str) -> bool:
    if algorithm in RSA_ALGORITHMS:
        return isinstance(key, RSAKey)
    if algorithm in EC_ALGORITHMS:
        return isinstance(key, ECKey)
    return False


# ============================================================================
# Verifiers
# ============================================================================


class JWKSVerifier(TokenVerifier):
    """Verifies asymmetric tokens against the provider's published keys.

    Architecture (one token):
        1. Parse the unverified header; ``alg`` must be RS*, PS* or ES*
           (HMAC is reserved for SecretVerifier) and ``kid`` must be set.
        2. Resolve ``kid`` in the current key set (fetching if stale).
        3. Decode the key material and verify the signature.
        4. Validate issuer, expiry and subject.

    Thread Safety:
        Safe for concurrent use; the only shared state lives in the injected
        key set provider.

    Attributes:
        _keys: Provides the current SigningKeySet (normally a KeySetCache).
        _opt: Immutable validation options.
        _clock: Wall-clock time source for expiry checks.
    """

    def __init__(
        self,
        keys: KeySetProvider,
        options: VerifyOptions,
        clock: Clock = time.time,
    ) -> None:
        self._keys = keys
        self._opt = options
        self._clock = clock

    def verify(self, token: str) -> VerifiedIdentity:
        header = _read_header(token)

        algorithm = header.get("alg")
        if algorithm not in ASYMMETRIC_ALGORITHMS:
            raise UnsupportedAlgorithm(f"Algorithm {algorithm!r} not accepted on the JWKS path")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise KeyNotFound("Token header missing required 'kid'")

        signing_key = self._keys.get().find(kid)
        public_key = decode_key(signing_key)
        if not _key_matches_algorithm(signing_key, algorithm):
            raise InvalidSignature(f"Key {kid!r} cannot verify {algorithm} signatures")

        payload = _check_signature(token, public_key, algorithm, self._opt)
        return validate_claims(payload, self._opt, self._clock())


class SecretVerifier(TokenVerifier):
    """Verifies HMAC-signed tokens with a pre-shared secret.

    Only for local development. Production deployments leave the secret
    unset, which removes this path entirely.
    """

    def __init__(
        self,
        secret: str,
        options: VerifyOptions,
        clock: Clock = time.time,
    ) -> None:
        if not secret:
            raise ValueError("secret cannot be empty")
        self._secret = secret
        self._opt = options
        self._clock = clock

    def verify(self, token: str) -> VerifiedIdentity:
        algorithm = _read_header(token).get("alg")
        if algorithm not in HMAC_ALGORITHMS:
            raise UnsupportedAlgorithm(f"Algorithm {algorithm!r} not accepted on the secret path")

        payload = _check_signature(token, self._secret, algorithm, self._opt)
        return validate_claims(payload, self._opt, self._clock())


class FallbackVerifier(TokenVerifier):
    """Tries the primary verifier, then the fallback if one is configured.

    Error reporting when both fail:
        The primary's error is raised, since it describes the production path.
        The exception is a primary UnsupportedAlgorithm (an HMAC token never
        reaches the JWKS keys), where the fallback's error is the one that
        explains the rejection.
    """

    def __init__(self, primary: TokenVerifier, fallback: TokenVerifier | None = None) -> None:
        self._primary = primary
        self._fallback = fallback

    def verify(self, token: str) -> VerifiedIdentity:
        try:
            return self._primary.verify(token)
        except AuthError as primary_error:
            if self._fallback is None:
                raise

            try:
                identity = self._fallback.verify(token)
            except AuthError as fallback_error:
                if isinstance(primary_error, UnsupportedAlgorithm):
                    raise fallback_error
                raise primary_error

            logger.info(
                "Token accepted by shared-secret fallback after JWKS rejection (%s)",
                primary_error.code,
            )
            return identity
