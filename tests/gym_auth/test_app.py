"""
End-to-end tests for the application factory.

Tokens are real RS256 JWTs signed with a generated key; only the JWKS
endpoint is replaced by an in-memory key source.
"""

import logging

import pytest
from conftest import ISSUER, NOW, FakeKeySource

import gym_auth as m

SETTINGS = m.AuthSettings(supabase_url="https://example.supabase.co")


@pytest.fixture
def users() -> m.InMemoryUserStore:
    return m.InMemoryUserStore({"user-42": ["user"]})


@pytest.fixture
def verifier(key_set) -> m.FallbackVerifier:
    options = m.VerifyOptions(issuer=ISSUER)
    cache = m.KeySetCache(FakeKeySource(key_set))
    return m.FallbackVerifier(m.JWKSVerifier(cache, options, clock=lambda: NOW))


@pytest.fixture
def client(users, verifier):
    app = m.create_app(SETTINGS, user_store=users, verifier=verifier)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_me_requires_token(client):
    response = client.get("/api/me")

    assert response.status_code == 401
    assert response.get_json()["error"] == "auth_header_missing"


def test_me_with_valid_token(client, make_token, rsa_private_key):
    token = make_token(rsa_private_key, kid="k1")

    response = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.get_json() == {
        "user_id": "user-42",
        "expires_at": "2023-11-14T23:13:20+00:00",
    }


def test_me_with_expired_token(client, make_token, rsa_private_key):
    token = make_token(rsa_private_key, kid="k1", exp=int(NOW))

    response = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "token_expired"


def test_cors_preflight_for_allowed_origin(client):
    response = client.options(
        "/api/me",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_cors_headers_on_rejections(client):
    response = client.get("/api/me", headers={"Origin": "https://entrenar.app"})

    assert response.status_code == 401
    assert response.headers["Access-Control-Allow-Origin"] == "https://entrenar.app"


def test_cors_unknown_origin_gets_no_allow_header(client):
    response = client.get("/api/health", headers={"Origin": "https://evil.example"})

    assert "Access-Control-Allow-Origin" not in response.headers


def test_requests_are_logged(client, caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.INFO, logger="gym_auth.requests"):
        client.get("/api/me")

    messages = [r.getMessage() for r in caplog.records if r.name == "gym_auth.requests"]
    assert len(messages) == 1
    assert messages[0].startswith("GET /api/me 401 ")


class TestBuildVerifier:
    def test_jwks_only_by_default(self):
        verifier = m.build_verifier(SETTINGS)

        assert isinstance(verifier, m.FallbackVerifier)
        assert isinstance(verifier._primary, m.JWKSVerifier)
        assert verifier._fallback is None

    def test_secret_enables_fallback(self, caplog: pytest.LogCaptureFixture):
        settings = m.AuthSettings(supabase_url="https://example.supabase.co", jwt_secret="dev")

        with caplog.at_level(logging.WARNING, logger="gym_auth.app"):
            verifier = m.build_verifier(settings)

        assert isinstance(verifier._fallback, m.SecretVerifier)
        assert "HMAC fallback" in caplog.text

    def test_short_ttl_gets_matching_gate(self):
        settings = m.AuthSettings(supabase_url="https://example.supabase.co", jwks_cache_ttl=5)

        verifier = m.build_verifier(settings)

        assert verifier._primary._keys._gate.min_interval == 5


def test_configure_logging_accepts_level_names():
    m.configure_logging("debug")
    m.configure_logging("not-a-level")
