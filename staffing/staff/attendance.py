"""Clock-in/clock-out tracking per event and staff member.

Per (event, person) the flow is ``not_started -> clocked_in -> completed``.
Clocking in again after a completed shift starts a new record, so the
history of shifts accumulates rather than overwriting one slot.
"""
import logging
from enum import StrEnum
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from staffing.auth.sessions import SessionIdentity
from staffing.core.errors import Conflict, Forbidden, InvalidState, NotFound
from staffing.core.timeutil import as_utc, isoformat, utc_now
from staffing.models import AttendanceRecord, Event
from staffing.staff.responses import is_accepted, normalize_role

logger = logging.getLogger(__name__)


class AttendanceStatus(StrEnum):
    NOT_STARTED = "not_started"
    CLOCKED_IN = "clocked_in"
    COMPLETED = "completed"


def record_payload(record: AttendanceRecord) -> dict:
    """JSON shape of an attendance record as returned to clients."""
    return {
        "id": str(record.id),
        "event_id": str(record.event_id),
        "user_key": record.user_key,
        "provider": record.provider,
        "subject": record.subject,
        "email": record.email,
        "name": record.name,
        "picture": record.picture,
        "role": record.role,
        "clock_in_at": isoformat(record.clock_in_at),
        "clock_out_at": isoformat(record.clock_out_at),
        "created_at": isoformat(record.created_at),
        "updated_at": isoformat(record.updated_at),
    }


def get_open_record(session: Session, event_id: UUID, user_key: str) -> AttendanceRecord | None:
    """The record still waiting for a clock-out, if there is one."""
    return session.exec(
        select(AttendanceRecord)
        .where(AttendanceRecord.event_id == event_id)
        .where(AttendanceRecord.user_key == user_key)
        .where(col(AttendanceRecord.clock_out_at).is_(None))
    ).first()


def query_status(
    session: Session, event_id: UUID, user_key: str
) -> tuple[AttendanceStatus, AttendanceRecord | None]:
    """
    Current attendance state of a person on an event.

    An open record means clocked in. Otherwise the latest closed record (by
    clock-in time) means completed. No records at all means not started.
    """
    open_record = get_open_record(session, event_id, user_key)
    if open_record:
        return AttendanceStatus.CLOCKED_IN, open_record

    last = session.exec(
        select(AttendanceRecord)
        .where(AttendanceRecord.event_id == event_id)
        .where(AttendanceRecord.user_key == user_key)
        .order_by(col(AttendanceRecord.clock_in_at).desc())
    ).first()
    if last:
        return AttendanceStatus.COMPLETED, last

    return AttendanceStatus.NOT_STARTED, None


def clock_in(
    session: Session,
    event_id: UUID,
    identity: SessionIdentity,
    role: str | None = None,
) -> AttendanceRecord:
    """
    Open a new attendance record for the caller.

    Only people on the event's accepted list may clock in. A second clock-in
    while a record is open raises Conflict carrying the open record, whether
    it is caught by the lookup or by the one-open-record index at insert.
    """
    event = session.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")

    user_key = identity.user_key
    if not is_accepted(event, user_key):
        raise Forbidden("User has not accepted this event")

    existing = get_open_record(session, event_id, user_key)
    if existing:
        raise Conflict("Already clocked in", record=record_payload(existing))

    now = utc_now()
    record = AttendanceRecord(
        event_id=event_id,
        user_key=user_key,
        provider=identity.provider,
        subject=identity.sub,
        email=identity.email,
        name=identity.name,
        picture=identity.picture,
        role=normalize_role(role),
        clock_in_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(record)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_open_record(session, event_id, user_key)
        if existing is None:
            raise
        raise Conflict("Already clocked in", record=record_payload(existing))

    session.refresh(record)
    logger.info(f"{user_key} clocked in to event {event_id}")
    return record


def clock_out(session: Session, event_id: UUID, user_key: str) -> AttendanceRecord:
    """
    Close the caller's open attendance record.

    The close is a conditional update on the record still being open, so two
    racing clock-outs cannot both succeed. The clock-out time is never earlier
    than the clock-in time.
    """
    record = get_open_record(session, event_id, user_key)
    if record is None:
        raise InvalidState("No open clock-in found")

    now = max(utc_now(), as_utc(record.clock_in_at))
    result = session.connection().execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id)
        .where(col(AttendanceRecord.clock_out_at).is_(None))
        .values(clock_out_at=now, updated_at=now)
    )
    if result.rowcount != 1:
        session.rollback()
        raise InvalidState("No open clock-in found")

    session.commit()
    session.refresh(record)
    logger.info(f"{user_key} clocked out of event {event_id}")
    return record
