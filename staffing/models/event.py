"""Event model for staffed events.

An event is created by the scheduling side of the business and is only ever
mutated here through staff responses. Its role list, staff-response lists and
derived role statistics are kept as JSON columns, so the whole event reads
and writes as one document.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

from staffing.core.timeutil import utc_now

if TYPE_CHECKING:
    from staffing.models.attendance import AttendanceRecord


class Event(SQLModel, table=True):
    """An event that needs staff.

    Attributes:
        id: Unique identifier (UUID).
        event_name: Display name of the event.
        client_name: Customer the event is staffed for.
        date: Event date as an ISO date string.
        start_time: Local start time, free-form (e.g. "18:00").
        end_time: Local end time, free-form.
        venue_name, venue_address, city, state, country: Where it happens.
        contact_name, contact_phone, contact_email: On-site contact.
        setup_time: When staff should arrive to set up.
        uniform: Dress code.
        notes: Anything else staff should know.
        headcount_total: Total people needed across all roles.
        roles: Ordered role declarations, each ``{"role": str, "count": int}``
            with an optional ``"visibility"``. ``count`` is the capacity.
        pay_rate_info: Opaque pay information, passed through untouched.
        accepted_staff: Staff-response records of people who accepted.
            Old rows may still hold bare ``"provider:subject"`` strings.
        declined_staff: Staff-response records of people who declined.
        role_stats: Cached ``{"role", "capacity", "taken", "remaining"}`` per
            declared role. Derived from ``roles`` and ``accepted_staff``.
        revision: Bumped on every staff-list write; writers compare and swap
            on it.
        attendance: Clock-in records for this event.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_name: str
    client_name: str = ""
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    venue_name: str = ""
    venue_address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    contact_name: str = ""
    contact_phone: str = ""
    contact_email: str | None = None
    setup_time: str | None = None
    uniform: str | None = None
    notes: str | None = None
    headcount_total: int = Field(default=0)

    roles: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    pay_rate_info: Any = Field(default=None, sa_column=Column(JSON))
    accepted_staff: list[Any] = Field(default_factory=list, sa_column=Column(JSON))
    declined_staff: list[Any] = Field(default_factory=list, sa_column=Column(JSON))
    role_stats: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    revision: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # Relationship
    attendance: list["AttendanceRecord"] = Relationship(back_populates="event")
