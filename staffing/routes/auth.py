"""Sign-in routes exchanging provider tokens for session tokens."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from staffing.auth import providers
from staffing.auth.sessions import issue_session_token, require_secret, upsert_user
from staffing.core.config import settings
from staffing.core.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class GoogleSignIn(BaseModel):
    id_token: str = Field(alias="idToken", min_length=1)


class AppleSignIn(BaseModel):
    identity_token: str = Field(alias="identityToken", min_length=1)


def _sign_in(session: Session, profile: providers.VerifiedProfile) -> dict:
    upsert_user(session, profile)
    token = issue_session_token(profile)
    logger.info(f"Issued session for {profile.user_key}")
    return {"token": token, "user": profile.model_dump()}


@router.post("/google")
def google_sign_in(body: GoogleSignIn, session: Session = Depends(get_session)):
    """Verify a Google ID token and return a session token."""
    require_secret()
    profile = providers.verify_google_id_token(body.id_token)
    return _sign_in(session, profile)


@router.post("/apple")
def apple_sign_in(body: AppleSignIn, session: Session = Depends(get_session)):
    """Verify an Apple identity token and return a session token."""
    require_secret()
    profile = providers.verify_apple_identity_token(body.identity_token)
    return _sign_in(session, profile)


@router.get("/status")
async def auth_status():
    """
    Check which sign-in pieces are configured.

    Session signing must be configured for any sign-in to work. Google needs
    at least one client id; Apple works without a bundle id but then does
    not check the token audience.
    """
    return {
        "configured": bool(settings.jwt_secret),
        "providers": {
            "google": bool(settings.google_audiences),
            "apple": True,
        },
        "apple_audience_check": bool(settings.apple_bundle_id),
        "message": (
            "Sign-in configured"
            if settings.jwt_secret
            else "Set JWT_SECRET to enable sign-in"
        ),
    }
