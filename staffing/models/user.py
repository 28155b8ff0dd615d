"""User model for staff members signing in through Google or Apple.

Two groups of fields live here. The OAuth-sourced ones (email, name,
picture) are refreshed on every login. The application profile fields
(first/last name, phone number, app id) are edited by the user and must
survive repeated logins.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from staffing.core.timeutil import utc_now


class User(SQLModel, table=True):
    """A staff member known by their identity provider and subject.

    Attributes:
        id: Unique identifier (UUID).
        provider: Identity provider name ("google" or "apple").
        subject: Subject identifier at the provider.
        email: Email from the provider, if shared.
        name: Display name from the provider, if shared.
        picture: Avatar URL from the provider or set by the user.
        first_name: Editable first name.
        last_name: Editable last name.
        phone_number: Editable US phone number.
        app_id: Editable identifier used by the staffing team.
    """
    __table_args__ = (UniqueConstraint("provider", "subject", name="uq_user_identity"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider: str = Field(index=True)
    subject: str = Field(index=True)

    # OAuth-sourced
    email: str | None = None
    name: str | None = None
    picture: str | None = None

    # Application profile
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    app_id: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def user_key(self) -> str:
        return f"{self.provider}:{self.subject}"
