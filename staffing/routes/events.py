"""Event routes: listing, staff responses and attendance."""
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from staffing.auth.sessions import SessionIdentity, get_current_identity, get_user
from staffing.core.database import get_session
from staffing.models import Event
from staffing.staff import attendance
from staffing.staff.attendance import AttendanceStatus, record_payload
from staffing.staff.responses import record_response

router = APIRouter(prefix="/events", tags=["events"])


class RespondRequest(BaseModel):
    response: Literal["accept", "decline"]
    role: str | None = None


class ClockInRequest(BaseModel):
    role: str | None = None


def event_payload(event: Event) -> dict:
    """JSON shape of an event, derived fields included."""
    return event.model_dump(mode="json")


@router.get("")
def list_events(session: Session = Depends(get_session)):
    """List all events, earliest date first."""
    events = session.exec(select(Event).order_by(Event.date, Event.created_at)).all()
    return [event_payload(event) for event in events]


@router.post("/{event_id}/respond")
def respond_to_event(
    event_id: UUID,
    body: RespondRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """
    Accept or decline an event, optionally for a specific role.

    Replaces any earlier response by the caller and returns the event with
    freshly computed role statistics.
    """
    user = get_user(session, identity)
    event = record_response(
        session, event_id, identity, body.response, role=body.role, user=user
    )
    return event_payload(event)


@router.get("/{event_id}/attendance/me")
def my_attendance(
    event_id: UUID,
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """Current attendance status of the caller on this event."""
    status, record = attendance.query_status(session, event_id, identity.user_key)
    if status == AttendanceStatus.NOT_STARTED:
        return {"status": status}
    return {"status": status, "record": record_payload(record)}


@router.post("/{event_id}/clock-in", status_code=201)
def clock_in(
    event_id: UUID,
    body: ClockInRequest | None = None,
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """
    Clock in to an event.

    Returns 403 if the caller has not accepted the event and 409 with the
    existing record if they are already clocked in.
    """
    role = body.role if body else None
    record = attendance.clock_in(session, event_id, identity, role=role)
    return {"status": AttendanceStatus.CLOCKED_IN, "record": record_payload(record)}


@router.post("/{event_id}/clock-out")
def clock_out(
    event_id: UUID,
    identity: SessionIdentity = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    """Clock out of an event. Returns 400 when there is no open clock-in."""
    record = attendance.clock_out(session, event_id, identity.user_key)
    return {"status": AttendanceStatus.COMPLETED, "record": record_payload(record)}
