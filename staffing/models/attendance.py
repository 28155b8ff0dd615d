"""Attendance record model for clock-in/clock-out tracking.

Each clock-in creates a new record; clock-out closes it. Records are never
deleted, so a person's history on an event accumulates one row per shift.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import Index, text
from sqlmodel import Field, Relationship, SQLModel

from staffing.core.timeutil import utc_now

if TYPE_CHECKING:
    from staffing.models.event import Event


class AttendanceRecord(SQLModel, table=True):
    """One clock-in, and its clock-out once it happens.

    A record with ``clock_out_at`` unset is "open". The partial unique index
    allows at most one open record per (event, user), which makes a second
    concurrent clock-in fail at insert time rather than slip through.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the Event worked.
        user_key: Identity key ``provider:subject`` of the staff member.
        provider: Identity provider name ("google" or "apple").
        subject: Subject identifier at the provider.
        email, name, picture: Profile snapshot taken at clock-in.
        role: Role the person says they are working, if given.
        clock_in_at: When the shift started.
        clock_out_at: When the shift ended; None while clocked in.
    """
    __table_args__ = (
        Index(
            "ix_attendance_one_open_per_user",
            "event_id",
            "user_key",
            unique=True,
            sqlite_where=text("clock_out_at IS NULL"),
            postgresql_where=text("clock_out_at IS NULL"),
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", index=True)
    user_key: str = Field(index=True)
    provider: str
    subject: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    role: str | None = None
    clock_in_at: datetime = Field(default_factory=utc_now)
    clock_out_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="attendance")
