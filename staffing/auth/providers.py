"""Verification of third-party identity tokens.

Google ID tokens are checked with google-auth against Google's published
certificates. Apple identity tokens are checked with PyJWT against Apple's
JWKS. Neither function touches the database; both return a
``VerifiedProfile`` or raise.
"""
import logging
from typing import Literal

import jwt
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import BaseModel

from staffing.core.config import settings
from staffing.core.errors import ServerMisconfigured, Unauthorized, UpstreamUnavailable

logger = logging.getLogger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"

# Cached JWKS client; keeps Apple's signing keys between requests
_apple_jwks_client: jwt.PyJWKClient | None = None


class VerifiedProfile(BaseModel):
    """Identity asserted by a provider after its token checked out."""

    provider: Literal["google", "apple"]
    subject: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None

    @property
    def user_key(self) -> str:
        return f"{self.provider}:{self.subject}"


class _BoundedRequest(google_requests.Request):
    """google-auth transport that never waits longer than the configured timeout."""

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=timeout or settings.identity_timeout_seconds,
            **kwargs,
        )


def verify_google_id_token(token: str) -> VerifiedProfile:
    """Verify a Google ID token issued to one of our client ids.

    Every token is refused while no client id is configured.
    """
    audience = settings.google_audiences
    if not audience:
        logger.error("Google sign-in attempted but no Google client id is configured")
        raise ServerMisconfigured("Google sign-in is not configured")
    try:
        payload = id_token.verify_oauth2_token(token, _BoundedRequest(), audience=audience)
    except google_exceptions.TransportError as e:
        logger.error(f"Could not reach Google to verify token: {e}")
        raise UpstreamUnavailable("Google sign-in is temporarily unavailable") from e
    except (ValueError, google_exceptions.GoogleAuthError) as e:
        logger.info(f"Rejected Google ID token: {e}")
        raise Unauthorized("Google auth failed") from e

    if not payload.get("sub"):
        raise Unauthorized("Google auth failed")

    return VerifiedProfile(
        provider="google",
        subject=payload["sub"],
        email=payload.get("email"),
        name=payload.get("name"),
        picture=payload.get("picture"),
    )


def get_apple_jwks_client() -> jwt.PyJWKClient:
    """Build (once) the client that fetches Apple's signing keys."""
    global _apple_jwks_client

    if _apple_jwks_client is None:
        _apple_jwks_client = jwt.PyJWKClient(
            settings.apple_keys_url,
            cache_keys=True,
            timeout=settings.identity_timeout_seconds,
        )
    return _apple_jwks_client


def verify_apple_identity_token(token: str) -> VerifiedProfile:
    """Verify an Apple identity token, checking the bundle id when configured."""
    try:
        signing_key = get_apple_jwks_client().get_signing_key_from_jwt(token)
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=APPLE_ISSUER,
            audience=settings.apple_bundle_id or None,
            options={"verify_aud": bool(settings.apple_bundle_id)},
        )
    except jwt.PyJWKClientConnectionError as e:
        logger.error(f"Could not reach Apple to fetch signing keys: {e}")
        raise UpstreamUnavailable("Apple sign-in is temporarily unavailable") from e
    except jwt.PyJWTError as e:
        logger.info(f"Rejected Apple identity token: {e}")
        raise Unauthorized("Apple auth failed") from e

    if not payload.get("sub"):
        raise Unauthorized("Apple auth failed")

    # Apple only shares the name on the device, never in the token
    return VerifiedProfile(
        provider="apple",
        subject=payload["sub"],
        email=payload.get("email"),
    )
