import json
import threading

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from flask import Flask
from jwt.algorithms import ECAlgorithm, RSAAlgorithm

from gym_auth import (
    InvalidToken,
    KeyNotFound,
    NetworkFailure,
    SigningKeySet,
    VerifiedIdentity,
    parse_key_set,
)

ISSUER = "https://example.supabase.co/auth/v1"
NOW = 1_700_000_000.0


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def make_jwk():
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk = make_jwk(private_key, kid="k1")
    """

    def _make(private_key, *, kid: str = "k1", alg: str | None = None) -> dict:
        public_key = private_key.public_key()
        if isinstance(public_key, rsa.RSAPublicKey):
            data = json.loads(RSAAlgorithm.to_jwk(public_key))
            data["alg"] = alg or "RS256"
        else:
            data = json.loads(ECAlgorithm.to_jwk(public_key))
            data["alg"] = alg or "ES256"
        data["kid"] = kid
        data["use"] = "sig"
        return data

    return _make


@pytest.fixture
def key_set(make_jwk, rsa_private_key, ec_private_key) -> SigningKeySet:
    """Key set with an RSA key "k1" and an EC P-256 key "e1"."""
    return parse_key_set(
        {
            "keys": [
                make_jwk(rsa_private_key, kid="k1"),
                make_jwk(ec_private_key, kid="e1"),
            ]
        }
    )


@pytest.fixture
def make_token():
    """
    Factory fixture for signed tokens.

    Defaults to a valid token for subject "user-42" expiring an hour after NOW.
    Passing a claim as None removes it from the payload.

    Usage in tests:
        token = make_token(rsa_private_key, kid="k1", exp=None)
    """

    def _make(key, *, kid: str | None = "k1", alg: str = "RS256", **claims) -> str:
        payload = {"iss": ISSUER, "sub": "user-42", "exp": int(NOW) + 3600}
        payload.update(claims)
        payload = {name: value for name, value in payload.items() if value is not None}
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, key, algorithm=alg, headers=headers)

    return _make


class FakeKeySource:
    """
    KeySource stub returning a fixed key set (or raising a fixed error).
    Counts fetches so tests can assert on upstream traffic.
    """

    def __init__(self, key_set: SigningKeySet | None = None, error: Exception | None = None):
        self.key_set = key_set if key_set is not None else SigningKeySet()
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def fetch(self) -> SigningKeySet:
        with self._lock:
            self.calls += 1
        if self.error is not None:
            raise self.error
        return self.key_set


@pytest.fixture
def fake_source(key_set) -> FakeKeySource:
    return FakeKeySource(key_set)


class StubVerifier:
    """
    TokenVerifier stub keyed on the raw token string:
        "GOOD"  -> subject "user-42"
        "COACH" -> subject "coach-1"
        "GHOST" -> subject "ghost-1"
        "DOWN"  -> NetworkFailure
        "BOOM"  -> RuntimeError
        other   -> KeyNotFound
    """

    _SUBJECTS = {"GOOD": "user-42", "COACH": "coach-1", "GHOST": "ghost-1"}

    def __init__(self):
        self.tokens: list[str] = []

    def verify(self, token: str) -> VerifiedIdentity:
        self.tokens.append(token)
        if token in self._SUBJECTS:
            return VerifiedIdentity(subject=self._SUBJECTS[token], issuer=ISSUER, expires_at=None)
        if token == "DOWN":
            raise NetworkFailure("JWKS endpoint unreachable")
        if token == "BOOM":
            raise RuntimeError("unexpected verifier bug")
        if token == "BAD":
            raise InvalidToken("bad token")
        raise KeyNotFound("No signing key with kid 'secret-kid'")


@pytest.fixture
def stub_verifier() -> StubVerifier:
    return StubVerifier()
