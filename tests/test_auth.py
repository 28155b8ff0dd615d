"""Tests for identity verification, session tokens and user upsert."""

import asyncio
import time
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from google.auth import exceptions as google_exceptions
from sqlmodel import Session, select

from staffing.auth import providers
from staffing.auth.providers import VerifiedProfile
from staffing.auth.sessions import decode_session_token, issue_session_token, upsert_user
from staffing.core.config import settings
from staffing.core.errors import ServerMisconfigured, Unauthorized, UpstreamUnavailable
from staffing.main import app
from staffing.models import User


class TestSessionTokens:
    def test_round_trip(self, profile: VerifiedProfile):
        identity = decode_session_token(issue_session_token(profile))

        assert identity.sub == profile.subject
        assert identity.provider == "google"
        assert identity.email == profile.email
        assert identity.name == profile.name
        assert identity.picture == profile.picture
        assert identity.user_key == "google:alice-123"

    def test_valid_for_seven_days(self, profile: VerifiedProfile, jwt_secret: str):
        claims = jwt.decode(issue_session_token(profile), jwt_secret, algorithms=["HS256"])
        assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60

    def test_expired(self, jwt_secret: str):
        token = jwt.encode(
            {
                "sub": "alice-123",
                "provider": "google",
                "exp": datetime.now(UTC) - timedelta(seconds=5),
            },
            jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(Unauthorized, match="expired"):
            decode_session_token(token)

    def test_wrong_signature(self, profile: VerifiedProfile, monkeypatch):
        token = issue_session_token(profile)
        monkeypatch.setattr(settings, "jwt_secret", "another-secret-that-is-also-long-enough")
        with pytest.raises(Unauthorized):
            decode_session_token(token)

    def test_missing_provider(self, jwt_secret: str):
        token = jwt.encode(
            {"sub": "alice-123", "exp": datetime.now(UTC) + timedelta(hours=1)},
            jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(Unauthorized):
            decode_session_token(token)

    def test_garbage(self):
        with pytest.raises(Unauthorized):
            decode_session_token("not-a-token")

    def test_no_secret_configured(self, profile: VerifiedProfile, monkeypatch):
        monkeypatch.setattr(settings, "jwt_secret", "")
        with pytest.raises(ServerMisconfigured):
            issue_session_token(profile)


class TestUpsertUser:
    def test_creates_user(self, session: Session, profile: VerifiedProfile):
        user = upsert_user(session, profile)

        assert user.user_key == "google:alice-123"
        assert user.email == profile.email
        assert user.first_name is None
        assert user.app_id is None

    def test_login_preserves_profile_fields(self, session: Session, profile: VerifiedProfile):
        """A second login refreshes OAuth fields and keeps edited ones."""
        user = upsert_user(session, profile)
        user.first_name = "Ally"
        user.last_name = "Smithers"
        user.phone_number = "512-555-0100"
        session.add(user)
        session.commit()

        changed = profile.model_copy(
            update={
                "name": "Alice S.",
                "email": "alice@new.example.com",
                "picture": "https://example.com/new.png",
            }
        )
        user = upsert_user(session, changed)

        assert user.first_name == "Ally"
        assert user.last_name == "Smithers"
        assert user.phone_number == "512-555-0100"
        assert user.name == "Alice S."
        assert user.email == "alice@new.example.com"
        assert user.picture == "https://example.com/new.png"
        assert len(session.exec(select(User)).all()) == 1


@pytest.fixture(name="google_key")
def google_key_fixture(monkeypatch):
    """RSA key pair standing in for Google's published signing certificates."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    monkeypatch.setattr(
        providers.id_token, "_fetch_certs", lambda request, url: {"test-key": public_pem}
    )
    return private_key


def google_token(private_key, **claims) -> str:
    now = int(time.time())
    payload = {
        "iss": "https://accounts.google.com",
        "sub": "g-1",
        "aud": "web-client",
        "email": "g@example.com",
        "iat": now,
        "exp": now + 600,
    }
    payload.update(claims)
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": "test-key"})


class TestGoogleVerification:
    @pytest.fixture(autouse=True)
    def client_id(self, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id_web", "web-client")

    def test_valid_token(self, monkeypatch):
        def fake_verify(token, request, audience=None):
            return {"sub": "g-1", "email": "g@example.com", "name": "Gee", "picture": None}

        monkeypatch.setattr(providers.id_token, "verify_oauth2_token", fake_verify)
        profile = providers.verify_google_id_token("token")

        assert profile.provider == "google"
        assert profile.subject == "g-1"
        assert profile.name == "Gee"

    def test_passes_configured_audiences(self, monkeypatch):
        seen = {}

        def fake_verify(token, request, audience=None):
            seen["audience"] = audience
            return {"sub": "g-1"}

        monkeypatch.setattr(providers.id_token, "verify_oauth2_token", fake_verify)
        monkeypatch.setattr(settings, "google_client_id_ios", "ios-client")
        monkeypatch.setattr(settings, "google_client_id_web", "web-client")
        providers.verify_google_id_token("token")

        assert seen["audience"] == ["ios-client", "web-client"]

    def test_invalid_token(self, monkeypatch):
        def fake_verify(token, request, audience=None):
            raise ValueError("Token used too late")

        monkeypatch.setattr(providers.id_token, "verify_oauth2_token", fake_verify)
        with pytest.raises(Unauthorized):
            providers.verify_google_id_token("token")

    def test_unreachable(self, monkeypatch):
        def fake_verify(token, request, audience=None):
            raise google_exceptions.TransportError("timed out")

        monkeypatch.setattr(providers.id_token, "verify_oauth2_token", fake_verify)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            providers.verify_google_id_token("token")
        assert exc_info.value.retryable is True

    def test_signed_token_for_our_client(self, google_key):
        profile = providers.verify_google_id_token(google_token(google_key))
        assert profile.subject == "g-1"
        assert profile.email == "g@example.com"

    def test_token_for_another_app(self, google_key):
        with pytest.raises(Unauthorized):
            providers.verify_google_id_token(google_token(google_key, aud="someone-elses-app"))

    def test_no_client_ids_refuses_every_token(self, google_key, monkeypatch):
        """Without configured client ids, no audience is trusted."""
        monkeypatch.setattr(settings, "google_client_id_ios", "")
        monkeypatch.setattr(settings, "google_client_id_android", "")
        monkeypatch.setattr(settings, "google_client_id_web", "")

        with pytest.raises(ServerMisconfigured):
            providers.verify_google_id_token(google_token(google_key, aud="someone-elses-app"))


class FakeSigningKey:
    def __init__(self, key):
        self.key = key


class FakeJWKSClient:
    def __init__(self, public_key):
        self.public_key = public_key

    def get_signing_key_from_jwt(self, token):
        return FakeSigningKey(self.public_key)


@pytest.fixture(name="apple_key")
def apple_key_fixture(monkeypatch):
    """RSA key pair standing in for Apple's signing key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    monkeypatch.setattr(
        providers, "get_apple_jwks_client", lambda: FakeJWKSClient(private_key.public_key())
    )
    return private_key


def apple_token(private_key, **claims) -> str:
    payload = {
        "iss": providers.APPLE_ISSUER,
        "sub": "001234.apple",
        "aud": "com.example.staff",
        "email": "x@privaterelay.appleid.com",
        "exp": datetime.now(UTC) + timedelta(minutes=10),
    }
    payload.update(claims)
    return jwt.encode(payload, private_key, algorithm="RS256")


class TestAppleVerification:
    def test_valid_token(self, apple_key):
        profile = providers.verify_apple_identity_token(apple_token(apple_key))

        assert profile.provider == "apple"
        assert profile.subject == "001234.apple"
        assert profile.email == "x@privaterelay.appleid.com"
        assert profile.name is None

    def test_checks_bundle_id(self, apple_key, monkeypatch):
        monkeypatch.setattr(settings, "apple_bundle_id", "com.example.other")
        with pytest.raises(Unauthorized):
            providers.verify_apple_identity_token(apple_token(apple_key))

    def test_matching_bundle_id(self, apple_key, monkeypatch):
        monkeypatch.setattr(settings, "apple_bundle_id", "com.example.staff")
        profile = providers.verify_apple_identity_token(apple_token(apple_key))
        assert profile.subject == "001234.apple"

    def test_wrong_issuer(self, apple_key):
        with pytest.raises(Unauthorized):
            providers.verify_apple_identity_token(
                apple_token(apple_key, iss="https://evil.example.com")
            )

    def test_expired(self, apple_key):
        with pytest.raises(Unauthorized):
            providers.verify_apple_identity_token(
                apple_token(apple_key, exp=datetime.now(UTC) - timedelta(minutes=1))
            )

    def test_jwks_client_keeps_fractional_timeout(self, monkeypatch):
        monkeypatch.setattr(providers, "_apple_jwks_client", None)
        monkeypatch.setattr(settings, "identity_timeout_seconds", 0.5)

        assert providers.get_apple_jwks_client().timeout == 0.5


class TestAuthRoutes:
    """Tests for the sign-in endpoints."""

    def test_google_sign_in(self, client: TestClient, session: Session, monkeypatch):
        monkeypatch.setattr(
            providers,
            "verify_google_id_token",
            lambda token: VerifiedProfile(provider="google", subject="g-1", name="Gee"),
        )
        response = client.post("/auth/google", json={"idToken": "abc"})
        assert response.status_code == 200

        data = response.json()
        assert data["user"]["subject"] == "g-1"
        assert decode_session_token(data["token"]).user_key == "google:g-1"
        assert session.exec(select(User).where(User.subject == "g-1")).first() is not None

    def test_apple_sign_in_under_api_prefix(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(
            providers,
            "verify_apple_identity_token",
            lambda token: VerifiedProfile(provider="apple", subject="a-1"),
        )
        response = client.post("/api/auth/apple", json={"identityToken": "abc"})
        assert response.status_code == 200
        assert response.json()["user"]["provider"] == "apple"

    def test_missing_token(self, client: TestClient):
        response = client.post("/auth/google", json={})
        assert response.status_code == 400

    def test_rejected_token(self, client: TestClient, monkeypatch):
        def reject(token):
            raise Unauthorized("Google auth failed")

        monkeypatch.setattr(providers, "verify_google_id_token", reject)
        response = client.post("/auth/google", json={"idToken": "abc"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Google auth failed"

    def test_provider_unreachable(self, client: TestClient, monkeypatch):
        def unreachable(token):
            raise UpstreamUnavailable("Google sign-in is temporarily unavailable")

        monkeypatch.setattr(providers, "verify_google_id_token", unreachable)
        response = client.post("/auth/google", json={"idToken": "abc"})
        assert response.status_code == 503
        assert response.json()["retryable"] is True

    def test_no_secret_configured(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "jwt_secret", "")
        response = client.post("/auth/google", json={"idToken": "abc"})
        assert response.status_code == 500

    def test_status(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "apple_bundle_id", "")
        monkeypatch.setattr(settings, "google_client_id_ios", "")
        monkeypatch.setattr(settings, "google_client_id_android", "")
        monkeypatch.setattr(settings, "google_client_id_web", "")

        response = client.get("/auth/status")
        assert response.status_code == 200
        data = response.json()
        assert data["configured"] is True
        assert data["providers"] == {"google": False, "apple": True}
        assert data["apple_audience_check"] is False

    def test_status_with_bundle_id(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "apple_bundle_id", "com.example.staff")
        assert client.get("/auth/status").json()["apple_audience_check"] is True

    def test_google_without_client_ids(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id_ios", "")
        monkeypatch.setattr(settings, "google_client_id_android", "")
        monkeypatch.setattr(settings, "google_client_id_web", "")

        response = client.post("/auth/google", json={"idToken": "abc"})
        assert response.status_code == 500
        assert response.json()["detail"] == "Google sign-in is not configured"

    def test_slow_provider_does_not_block_other_requests(
        self, client: TestClient, monkeypatch
    ):
        """Sign-in runs off the event loop, so liveness checks answer meanwhile."""

        def slow_verify(token):
            time.sleep(1.5)
            return VerifiedProfile(provider="google", subject="g-slow")

        monkeypatch.setattr(providers, "verify_google_id_token", slow_verify)

        async def sign_in_then_check_health():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                started = time.monotonic()
                sign_in = asyncio.create_task(ac.post("/auth/google", json={"idToken": "abc"}))
                await asyncio.sleep(0.1)
                health = await ac.get("/healthz")
                latency = time.monotonic() - started
                return await sign_in, health, latency

        sign_in, health, latency = asyncio.run(sign_in_then_check_health())

        assert health.text == "OK"
        assert latency < 1.0
        assert sign_in.status_code == 200
