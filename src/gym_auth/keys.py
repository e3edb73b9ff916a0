"""Signing key model and key material decoding.

A JWKS document is parsed into an immutable SigningKeySet of tagged key
variants:

- RSAKey: modulus ``n`` and exponent ``e``
- ECKey: curve ``crv`` and point coordinates ``x`` / ``y``
- UnsupportedKey: any other ``kty``; kept so rejection happens in one place

``decode_key`` turns a variant into a ``cryptography`` public key object that
PyJWT can verify signatures with. All JWK numbers are base64url encoded
(no padding), big-endian, unsigned.
"""

from __future__ import annotations

import binascii
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, TypeAlias

from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.utils import base64url_decode

from .errors import KeyNotFound, MalformedEncoding, MalformedKeySet, UnsupportedKeyType

logger = logging.getLogger(__name__)

PublicKey: TypeAlias = rsa.RSAPublicKey | ec.EllipticCurvePublicKey

_CURVES: Final[Mapping[str, type[ec.EllipticCurve]]] = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}
"""Supported JWK ``crv`` names."""


@dataclass(frozen=True, slots=True)
class RSAKey:
    kid: str | None
    n: str
    e: str
    alg: str | None = None
    use: str | None = None

    kty = "RSA"


@dataclass(frozen=True, slots=True)
class ECKey:
    kid: str | None
    crv: str
    x: str
    y: str
    alg: str | None = None
    use: str | None = None

    kty = "EC"


@dataclass(frozen=True, slots=True)
class UnsupportedKey:
    kid: str | None
    kty: str
    alg: str | None = None
    use: str | None = None


SigningKey: TypeAlias = RSAKey | ECKey | UnsupportedKey


@dataclass(frozen=True, slots=True)
class SigningKeySet:
    """The provider's published keys, in document order.

    Immutable: a refreshed document produces a new instance that replaces the
    old one wholesale.
    """

    keys: tuple[SigningKey, ...] = ()

    def find(self, kid: str) -> SigningKey:
        """Return the first key whose id equals ``kid`` exactly.

        Raises:
            KeyNotFound: No key carries that id. No fuzzy or prefix matching.
        """
        for key in self.keys:
            if key.kid == kid:
                return key
        raise KeyNotFound(f"No signing key with kid {kid!r}")

    @property
    def kids(self) -> tuple[str | None, ...]:
        return tuple(key.kid for key in self.keys)

    def __len__(self) -> int:
        return len(self.keys)


# ============================================================================
# Parsing
# ============================================================================


def _optional_str(entry: Mapping[str, Any], name: str) -> str | None:
    value = entry.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedKeySet(f"JWK field {name!r} must be a string")
    return value


def _required_str(entry: Mapping[str, Any], name: str) -> str:
    value = _optional_str(entry, name)
    if not value:
        raise MalformedKeySet(f"JWK is missing required field {name!r}")
    return value


def parse_jwk(entry: Any) -> SigningKey:
    """Parse one JWK object into its tagged variant.

    Only shape is checked here. Material is validated by ``decode_key`` when
    the key is actually used.

    Raises:
        MalformedKeySet: Entry is not an object, or lacks fields for its kty.
    """
    if not isinstance(entry, Mapping):
        raise MalformedKeySet("JWK entry is not an object")

    kty = _required_str(entry, "kty")
    kid = _optional_str(entry, "kid")
    alg = _optional_str(entry, "alg")
    use = _optional_str(entry, "use")

    if kty == "RSA":
        return RSAKey(
            kid=kid,
            n=_required_str(entry, "n"),
            e=_required_str(entry, "e"),
            alg=alg,
            use=use,
        )
    if kty == "EC":
        return ECKey(
            kid=kid,
            crv=_required_str(entry, "crv"),
            x=_required_str(entry, "x"),
            y=_required_str(entry, "y"),
            alg=alg,
            use=use,
        )
    return UnsupportedKey(kid=kid, kty=kty, alg=alg, use=use)


def parse_key_set(document: Any) -> SigningKeySet:
    """Parse a JWKS document (``{"keys": [...]}``) into a SigningKeySet.

    Raises:
        MalformedKeySet: Document is not an object with a ``keys`` list, or
            any entry is malformed.
    """
    if not isinstance(document, Mapping):
        raise MalformedKeySet("JWKS document is not a JSON object")

    entries = document.get("keys")
    if not isinstance(entries, list):
        raise MalformedKeySet("JWKS document has no 'keys' list")

    keys = tuple(parse_jwk(entry) for entry in entries)
    for key in keys:
        if isinstance(key, UnsupportedKey):
            logger.debug("JWKS contains unsupported key type %r (kid=%r)", key.kty, key.kid)
    return SigningKeySet(keys)


# ============================================================================
# Decoding
# ============================================================================


def _b64url_uint(value: str, field: str) -> int:
    """Decode a base64url (unpadded) big-endian unsigned integer."""
    try:
        raw = base64url_decode(value)
    except (binascii.Error, ValueError) as e:
        raise MalformedEncoding(f"JWK field {field!r} is not valid base64url") from e
    if not raw:
        raise MalformedEncoding(f"JWK field {field!r} is empty")
    return int.from_bytes(raw, "big")


def _decode_rsa(key: RSAKey) -> rsa.RSAPublicKey:
    n = _b64url_uint(key.n, "n")
    e = _b64url_uint(key.e, "e")
    try:
        return rsa.RSAPublicNumbers(e, n).public_key()
    except ValueError as exc:
        raise MalformedEncoding("JWK does not describe a valid RSA public key") from exc


def _decode_ec(key: ECKey) -> ec.EllipticCurvePublicKey:
    curve = _CURVES.get(key.crv)
    if curve is None:
        raise UnsupportedKeyType(f"Unsupported EC curve {key.crv!r}")

    x = _b64url_uint(key.x, "x")
    y = _b64url_uint(key.y, "y")
    try:
        # cryptography rejects points that are not on the curve here.
        return ec.EllipticCurvePublicNumbers(x, y, curve()).public_key()
    except ValueError as exc:
        raise MalformedEncoding("JWK does not describe a valid EC public key") from exc


def decode_key(key: SigningKey) -> PublicKey:
    """Convert a parsed signing key into a verifier-usable public key.

    Raises:
        UnsupportedKeyType: Key type is not RSA/EC, or the curve is unknown.
        MalformedEncoding: Material is not valid base64url or not a valid key.
    """
    match key:
        case RSAKey():
            return _decode_rsa(key)
        case ECKey():
            return _decode_ec(key)
        case UnsupportedKey(kty=kty):
            raise UnsupportedKeyType(f"Unsupported key type {kty!r}")
        case _:
            raise UnsupportedKeyType(f"Unsupported key object {type(key).__name__}")
