"""Profile routes for the signed-in staff member."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator
from sqlmodel import Session

from staffing.auth.sessions import SessionIdentity, get_current_identity, get_user
from staffing.core.database import get_session
from staffing.core.errors import NotFound
from staffing.core.timeutil import utc_now
from staffing.models import User

router = APIRouter(prefix="/users", tags=["users"])

# (XXX) XXX-XXXX, XXX-XXX-XXXX or XXXXXXXXXX
US_PHONE_PATTERN = r"^(\(\d{3}\)\s?\d{3}-\d{4}|\d{3}-\d{3}-\d{4}|\d{10})$"


class ProfileUpdate(BaseModel):
    """Editable profile fields, named the way the mobile client sends them."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName", min_length=1, max_length=100)
    last_name: str | None = Field(default=None, alias="lastName", min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, alias="phoneNumber", pattern=US_PHONE_PATTERN)
    app_id: str | None = Field(default=None, alias="appId", max_length=100)
    picture: HttpUrl | None = None

    @field_validator(
        "first_name", "last_name", "phone_number", "app_id", "picture", mode="before"
    )
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged
        if value is None:
            raise ValueError("must not be null")
        return value


def profile_payload(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "name": user.name,
        "picture": user.picture,
        "appId": user.app_id,
        "phoneNumber": user.phone_number,
    }


@router.get("/me")
def get_profile(
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """Fetch the caller's profile."""
    user = get_user(session, identity)
    if not user:
        raise NotFound("User not found")
    return profile_payload(user)


@router.patch("/me")
def update_profile(
    body: ProfileUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """
    Update the caller's editable profile fields.

    Only fields present in the body are written. These fields are never
    touched by a later sign-in.
    """
    user = get_user(session, identity)
    if not user:
        raise NotFound("User not found")

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, str(value) if field == "picture" else value)
    user.updated_at = utc_now()

    session.add(user)
    session.commit()
    session.refresh(user)
    return profile_payload(user)
