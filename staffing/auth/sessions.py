"""Session credentials and user upsert.

After a provider token checks out, the user row is upserted and a signed
HS256 JWT is issued. Incoming requests carry that JWT as a bearer token;
it is validated by signature and expiry only, without calling the provider
again.
"""
import logging
from datetime import timedelta

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from staffing.auth.providers import VerifiedProfile
from staffing.core.config import settings
from staffing.core.errors import ServerMisconfigured, Unauthorized
from staffing.core.timeutil import utc_now
from staffing.models import User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


class SessionIdentity(BaseModel):
    """Claims carried by a session token."""

    sub: str
    provider: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None

    @property
    def user_key(self) -> str:
        return f"{self.provider}:{self.sub}"


def require_secret() -> str:
    """Session signing secret; raises when the server has none configured."""
    if not settings.jwt_secret:
        raise ServerMisconfigured("Server not configured for auth")
    return settings.jwt_secret


def issue_session_token(profile: VerifiedProfile) -> str:
    """Mint a session token binding provider and subject."""
    now = utc_now()
    payload = {
        "sub": profile.subject,
        "provider": profile.provider,
        "email": profile.email,
        "name": profile.name,
        "picture": profile.picture,
        "iat": now,
        "exp": now + timedelta(days=settings.session_ttl_days),
    }
    return jwt.encode(payload, require_secret(), algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> SessionIdentity:
    """Check signature and expiry of a session token and return its claims."""
    secret = require_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise Unauthorized("Token expired") from e
    except jwt.PyJWTError as e:
        raise Unauthorized("Invalid token") from e

    if not payload.get("provider"):
        raise Unauthorized("Invalid token")
    return SessionIdentity(**payload)


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> SessionIdentity:
    """Dependency resolving the bearer token into the caller's identity."""
    require_secret()
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing token")
    return decode_session_token(credentials.credentials)


def upsert_user(session: Session, profile: VerifiedProfile) -> User:
    """Create the user on first login, refresh OAuth fields afterwards.

    Application profile fields (first/last name, phone number, app id) are
    only initialised when the row is created; later logins leave them alone.
    """
    user = session.exec(
        select(User)
        .where(User.provider == profile.provider)
        .where(User.subject == profile.subject)
    ).first()

    now = utc_now()
    if user is None:
        user = User(
            provider=profile.provider,
            subject=profile.subject,
            first_name=None,
            last_name=None,
            phone_number=None,
            app_id=None,
            created_at=now,
        )
        logger.info(f"Creating user {profile.user_key}")

    user.email = profile.email
    user.name = profile.name
    user.picture = profile.picture
    user.updated_at = now

    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent first login inserted the row; update that one instead
        session.rollback()
        return upsert_user(session, profile)
    session.refresh(user)
    return user


def get_user(session: Session, identity: SessionIdentity) -> User | None:
    """Stored user row for a session identity, if any."""
    return session.exec(
        select(User)
        .where(User.provider == identity.provider)
        .where(User.subject == identity.sub)
    ).first()
