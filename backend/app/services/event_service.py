"""Event descriptor service: capacity and waitlist settings for the RSVP engine.

Responsibilities:
- Create event descriptors with an empty seat counter
- Optimistic locking via version field on updates
- Refuse to shrink capacity below the seats already taken
- Hand freed capacity to the waitlist when auto-promotion is on
"""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.models.event import Event
from app.services.errors import CapacityBelowAttendanceError

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "start_at", "max_attendees", "waitlist_enabled", "waitlist_limit")


def get_event(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def create_event(
    db: Session,
    title: str,
    start_at: datetime,
    max_attendees: Optional[int] = None,
    waitlist_enabled: bool = False,
    waitlist_limit: Optional[int] = None,
) -> Event:
    event = Event(
        title=title,
        start_at=start_at,
        max_attendees=max_attendees,
        waitlist_enabled=waitlist_enabled,
        waitlist_limit=waitlist_limit,
        going_count=0,
        version=1,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) capacity=%s waitlist=%s", title, event.event_id, max_attendees, waitlist_enabled)
    return event


def update_event(
    db: Session,
    event_id: str,
    version: int,
    updates: dict[str, Any],
) -> tuple[Event, bool]:
    """Update descriptor fields under optimistic locking.

    Returns the event and whether capacity grew (seats or waitlist opened up),
    so the caller can run waitlist promotion.
    """
    event = get_event(db, event_id)

    if event.version != version:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Version mismatch: expected {event.version}, got {version}. Re-fetch and retry.",
        )

    old_max = event.max_attendees
    if "max_attendees" in updates:
        new_max = updates["max_attendees"]
        if new_max is not None and new_max < event.going_count:
            raise CapacityBelowAttendanceError(going_count=event.going_count, max_attendees=new_max)

    for field, value in updates.items():
        if field in _UPDATABLE_FIELDS:
            setattr(event, field, value)

    # Conditional on the version we read, so a concurrent writer makes this a no-op.
    updated = (
        db.query(Event)
        .filter(Event.event_id == event_id, Event.version == version)
        .update({Event.version: Event.version + 1}, synchronize_session="fetch")
    )
    if updated != 1:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event was modified concurrently. Re-fetch and retry.",
        )
    db.commit()
    db.refresh(event)

    grew = old_max is not None and (event.max_attendees is None or event.max_attendees > old_max)
    logger.info("Updated event %s to version %d (capacity grew: %s)", event_id, event.version, grew)
    return event, grew
