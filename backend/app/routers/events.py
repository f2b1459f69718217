"""Event API routes: descriptors and capacity summaries."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import build_registry, get_actor
from app.schemas.attendee import CapacityOut
from app.schemas.event import EventCreate, EventUpdate, EventOut
from app.services import event_service
from app.services.attendee_registry import Actor

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create an event descriptor with capacity and waitlist settings."""
    return event_service.create_event(
        db=db,
        title=payload.title,
        start_at=payload.start_at,
        max_attendees=payload.max_attendees,
        waitlist_enabled=payload.waitlist_enabled,
        waitlist_limit=payload.waitlist_limit,
    )


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    """Fetch a single event descriptor."""
    return event_service.get_event(db, event_id)


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Update capacity/waitlist settings (optimistic locking enforced)."""
    updates = payload.model_dump(exclude_unset=True, exclude={"version"})
    event, grew = event_service.update_event(db=db, event_id=event_id, version=payload.version, updates=updates)
    registry = build_registry(db, event_id)
    if grew and registry.policy.auto_promote_waitlist:
        registry.promote_waitlist(actor)
        db.refresh(event)
    return event


@router.get("/{event_id}/capacity", response_model=CapacityOut)
def get_capacity(event_id: str, db: Session = Depends(get_db)):
    """Going / not-going / pending / waitlisted counts against capacity."""
    capacity = build_registry(db, event_id).capacity()
    return CapacityOut(
        max_attendees=capacity.max_attendees,
        going_count=capacity.going_count,
        not_going_count=capacity.not_going_count,
        pending_count=capacity.pending_count,
        waitlisted_count=capacity.waitlisted_count,
        going_by_age_group=capacity.going_by_age_group,
        available_seats=capacity.available_seats,
        is_at_capacity=capacity.is_at_capacity,
        can_waitlist=capacity.can_waitlist,
        waitlist_enabled=capacity.waitlist_enabled,
        waitlist_limit=capacity.waitlist_limit,
    )
