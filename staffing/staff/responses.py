"""Staff accept/decline bookkeeping and role capacity statistics.

Each event keeps two lists, ``accepted_staff`` and ``declined_staff``. A
person appears at most once across both: responding again first retracts
whatever they said before, then appends the new response. Older rows may
still hold a bare ``"provider:subject"`` string instead of a structured
record; every read path here understands both shapes until
``migrate_legacy_entries`` has rewritten them.

``role_stats`` is a cache derived from ``roles`` and ``accepted_staff``.
It is recomputed after every response, and the reconciler in
``staffing.core.scheduler`` repairs it if a recomputation was lost.
"""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from staffing.auth.sessions import SessionIdentity
from staffing.core.config import settings
from staffing.core.errors import Busy, InvalidRequest, NotFound
from staffing.core.timeutil import isoformat, utc_now
from staffing.models import Event, User

logger = logging.getLogger(__name__)

DECISION_LISTS = {
    "accept": "accepted_staff",
    "decline": "declined_staff",
}


def entry_key(entry: Any) -> str | None:
    """Identity key of a staff entry, whichever shape it is stored in."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        key = entry.get("user_key")
        return key if isinstance(key, str) else None
    return None


def retract(entries: list[Any] | None, user_key: str) -> list[Any]:
    """Copy of ``entries`` without any entry belonging to ``user_key``."""
    return [entry for entry in entries or [] if entry_key(entry) != user_key]


def is_accepted(event: Event, user_key: str) -> bool:
    return any(entry_key(entry) == user_key for entry in event.accepted_staff or [])


def normalize_role(value: Any) -> str | None:
    """Stripped role name, or None for anything blank or not a string."""
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _role_name(value: Any) -> str:
    return str(value if value is not None else "").strip()


def _capacity(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def compute_role_stats(roles: list[Any] | None, accepted: list[Any] | None) -> list[dict]:
    """Per-role capacity, taken and remaining counts.

    Only structured accepted entries count toward a role, matched on the
    stripped role name. ``remaining`` never drops below zero, even when a
    role has been over-accepted.
    """
    stats = []
    for role in roles or []:
        if not isinstance(role, dict):
            role = {}
        name = _role_name(role.get("role"))
        capacity = _capacity(role.get("count", 0))
        taken = sum(
            1
            for entry in accepted or []
            if isinstance(entry, dict) and _role_name(entry.get("role")) == name
        )
        stats.append({
            "role": name,
            "capacity": capacity,
            "taken": taken,
            "remaining": max(0, capacity - taken),
        })
    return stats


def _split_name(name: str | None) -> tuple[str | None, str | None]:
    parts = name.split() if name else []
    if not parts:
        return None, None
    return " ".join(parts[:-1]) or None, parts[-1]


def build_staff_entry(
    identity: SessionIdentity,
    decision: str,
    role: str | None = None,
    user: User | None = None,
) -> dict:
    """Structured response record with a profile snapshot taken now."""
    name = (user.name if user else None) or identity.name
    email = (user.email if user else None) or identity.email
    picture = (user.picture if user else None) or identity.picture

    first_name, last_name = _split_name(name)
    if user and user.first_name:
        first_name = user.first_name
    if user and user.last_name:
        last_name = user.last_name

    return {
        "user_key": identity.user_key,
        "provider": identity.provider,
        "subject": identity.sub,
        "email": email,
        "name": name,
        "first_name": first_name,
        "last_name": last_name,
        "picture": picture,
        "response": decision,
        "role": normalize_role(role),
        "responded_at": isoformat(utc_now()),
    }


def record_response(
    session: Session,
    event_id: UUID,
    identity: SessionIdentity,
    decision: str,
    role: str | None = None,
    user: User | None = None,
) -> Event:
    """
    Record an accept or decline for the caller on an event.

    Retracts any earlier response by the same person from both lists and
    appends the new one. The two lists are rewritten in a single update
    guarded by the event's revision; when another writer got there first the
    write is retried against the fresh event. Role statistics are then
    recomputed, and a failure there does not undo the response.

    Returns the event as last persisted.
    """
    target = DECISION_LISTS.get(decision)
    if target is None:
        raise InvalidRequest("response must be 'accept' or 'decline'")

    entry = build_staff_entry(identity, decision, role=role, user=user)
    user_key = identity.user_key

    for attempt in range(1, settings.respond_max_attempts + 1):
        event = session.get(Event, event_id, populate_existing=True)
        if event is None:
            raise NotFound("Event not found")

        lists = {
            "accepted_staff": retract(event.accepted_staff, user_key),
            "declined_staff": retract(event.declined_staff, user_key),
        }
        lists[target].append(entry)

        result = session.connection().execute(
            update(Event)
            .where(Event.id == event_id)
            .where(Event.revision == event.revision)
            .values(**lists, revision=event.revision + 1, updated_at=utc_now())
        )
        if result.rowcount == 1:
            session.commit()
            break

        session.rollback()
        logger.info(
            f"Event {event_id} changed during response by {user_key}, "
            f"retrying (attempt {attempt})"
        )
    else:
        raise Busy("Event is being updated, please retry")

    logger.info(f"Recorded {decision} for {user_key} on event {event_id} (role={entry['role']})")

    event = session.get(Event, event_id, populate_existing=True)
    return refresh_role_stats(session, event)


def refresh_role_stats(session: Session, event: Event) -> Event:
    """Recompute and store ``role_stats``; failures are logged, not raised.

    The write only lands if the staff lists are unchanged since ``event`` was
    read. Otherwise the newer writer recomputes from its own lists.
    """
    try:
        stats = compute_role_stats(event.roles, event.accepted_staff)
        session.connection().execute(
            update(Event)
            .where(Event.id == event.id)
            .where(Event.revision == event.revision)
            .values(role_stats=stats, updated_at=utc_now())
        )
        session.commit()
    except Exception as e:
        logger.warning(f"role_stats recompute failed for event {event.id}: {e}", exc_info=True)
        session.rollback()

    session.refresh(event)
    return event


def reconcile_role_stats(session: Session) -> dict:
    """
    Repair every event whose cached ``role_stats`` drifted from its lists.

    Returns dict with reconciliation statistics.
    """
    stats = {"checked": 0, "repaired": 0}

    for event in session.exec(select(Event)).all():
        stats["checked"] += 1
        expected = compute_role_stats(event.roles, event.accepted_staff)
        if event.role_stats == expected:
            continue

        result = session.connection().execute(
            update(Event)
            .where(Event.id == event.id)
            .where(Event.revision == event.revision)
            .values(role_stats=expected, updated_at=utc_now())
        )
        if result.rowcount == 1:
            stats["repaired"] += 1
            logger.info(f"Repaired role_stats for event {event.id}")

    session.commit()
    return stats


def _structured_entry(key: str, decision: str) -> dict:
    provider, _, subject = key.partition(":")
    return {
        "user_key": key,
        "provider": provider or None,
        "subject": subject or None,
        "email": None,
        "name": None,
        "first_name": None,
        "last_name": None,
        "picture": None,
        "response": decision,
        "role": None,
        "responded_at": None,
    }


def migrate_legacy_entries(session: Session, dry_run: bool = False) -> dict:
    """
    Rewrite bare-string staff entries as structured records.

    Run once per database. Events written concurrently are skipped and
    reported; running again picks them up.

    Returns dict with migration statistics.
    """
    stats = {"events": 0, "entries": 0, "skipped": 0}

    for event in session.exec(select(Event)).all():
        lists = {}
        converted = 0
        for decision, field in DECISION_LISTS.items():
            entries = []
            for entry in getattr(event, field) or []:
                if isinstance(entry, str):
                    entry = _structured_entry(entry, decision)
                    converted += 1
                entries.append(entry)
            lists[field] = entries

        if not converted:
            continue

        if dry_run:
            logger.info(f"Would migrate {converted} entries on event {event.id}")
            stats["events"] += 1
            stats["entries"] += converted
            continue

        result = session.connection().execute(
            update(Event)
            .where(Event.id == event.id)
            .where(Event.revision == event.revision)
            .values(**lists, revision=event.revision + 1, updated_at=utc_now())
        )
        if result.rowcount == 1:
            stats["events"] += 1
            stats["entries"] += converted
        else:
            stats["skipped"] += 1

    if dry_run:
        session.rollback()
    else:
        session.commit()
    return stats
