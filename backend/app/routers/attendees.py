"""Attendee / RSVP API routes: thin wrappers over AttendeeRegistry."""
import logging
from typing import Union

from fastapi import APIRouter, Depends, status

from app.dependencies import get_actor, get_registry
from app.models.attendee import Attendee
from app.schemas.attendee import (
    AttendeeChangeRequest,
    AttendeeCreate,
    AttendeeOut,
    BulkAddOut,
    BulkAttendeeCreate,
    BulkItemErrorOut,
    CascadeFailureOut,
    LinkOut,
    LinkPayload,
    PromotionOut,
    RemovalOut,
    StatusPayload,
    TransitionOut,
    WaitlistPositionOut,
)
from app.services.attendee_registry import Actor, AttendeeRegistry, LinkResult, TransitionResult

logger = logging.getLogger(__name__)
router = APIRouter()


def _attendee_out(registry: AttendeeRegistry, attendee: Attendee) -> AttendeeOut:
    display = registry.display_of(attendee)
    return AttendeeOut(
        attendee_id=attendee.attendee_id,
        event_id=attendee.event_id,
        user_id=attendee.user_id,
        attendee_type=attendee.attendee_type,
        relationship=attendee.relationship_,
        name=attendee.name,
        age_group=attendee.age_group,
        display_name=display.name,
        display_age_group=display.age_group,
        family_member_id=attendee.family_member_id,
        rsvp_status=attendee.rsvp_status,
        waitlist_joined_at=attendee.waitlist_joined_at,
        created_at=attendee.created_at,
        updated_at=attendee.updated_at,
    )


def _transition_out(registry: AttendeeRegistry, result: TransitionResult) -> TransitionOut:
    return TransitionOut(
        attendee=_attendee_out(registry, result.attendee),
        requested_status=result.requested_status,
        effective_status=result.effective_status,
        downgraded=result.downgraded,
        promoted_primary_id=result.promoted_primary_id,
        cascaded_ids=result.cascaded_ids,
        cascaded_count=result.cascaded_count,
        cascade_failures=[CascadeFailureOut(attendee_id=f.attendee_id, message=f.message) for f in result.cascade_failures],
        partial=result.partial,
        waitlist_promoted_ids=result.waitlist_promoted_ids,
    )


def _link_out(registry: AttendeeRegistry, result: LinkResult) -> LinkOut:
    return LinkOut(
        attendee=_attendee_out(registry, result.attendee),
        family_member_id=result.profile.family_member_id,
        created_profile=result.created_profile,
        changed=result.changed,
    )


@router.get("/", response_model=list[AttendeeOut])
def list_attendees(registry: AttendeeRegistry = Depends(get_registry)):
    """List every attendee of the event with resolved display names."""
    return [_attendee_out(registry, a) for a in registry.list_attendees()]


@router.post("/", response_model=TransitionOut, status_code=status.HTTP_201_CREATED)
def add_attendee(
    payload: AttendeeCreate,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Add one attendee. A full event may answer with ``effective_status = waitlisted``."""
    result = registry.add_attendee(actor, payload)
    return _transition_out(registry, result)


@router.post("/bulk", response_model=BulkAddOut)
def bulk_add_attendees(
    payload: BulkAttendeeCreate,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Add many attendees; failures are reported per item rather than aborting the batch."""
    result = registry.bulk_add_attendees(actor, payload.attendees)
    return BulkAddOut(
        created=[_transition_out(registry, r) for r in result.created],
        errors=[BulkItemErrorOut(index=e.index, kind=e.kind, message=e.message) for e in result.errors],
    )


@router.post("/waitlist/promote", response_model=PromotionOut)
def promote_waitlist(
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Fill any free seats from the waitlist."""
    return PromotionOut(promoted_ids=registry.promote_waitlist(actor))


@router.post("/{attendee_id}/status", response_model=TransitionOut)
def update_attendee_status(
    attendee_id: str,
    payload: StatusPayload,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Change an attendee's RSVP status; read ``effective_status`` for the outcome."""
    result = registry.update_attendee_status(actor, attendee_id, payload.rsvp_status)
    return _transition_out(registry, result)


@router.patch("/{attendee_id}", response_model=Union[TransitionOut, LinkOut, AttendeeOut])
def change_attendee(
    attendee_id: str,
    payload: AttendeeChangeRequest,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Apply one tagged change (``set_status``, ``link`` or ``rename``)."""
    result = registry.apply(actor, attendee_id, payload.change)
    if isinstance(result, TransitionResult):
        return _transition_out(registry, result)
    if isinstance(result, LinkResult):
        return _link_out(registry, result)
    return _attendee_out(registry, result)


@router.post("/{attendee_id}/link", response_model=LinkOut)
def link_to_family_profile(
    attendee_id: str,
    payload: LinkPayload,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Link an attendee to a family profile, creating one from the attendee if no id is given."""
    result = registry.link_to_family_profile(actor, attendee_id, payload.family_member_id)
    return _link_out(registry, result)


@router.delete("/{attendee_id}", response_model=RemovalOut)
def remove_attendee(
    attendee_id: str,
    actor: Actor = Depends(get_actor),
    registry: AttendeeRegistry = Depends(get_registry),
):
    """Remove an attendee. Family members of a removed primary are left in place."""
    result = registry.remove_attendee(actor, attendee_id)
    return RemovalOut(attendee_id=result.attendee_id, waitlist_promoted_ids=result.waitlist_promoted_ids)


@router.get("/{attendee_id}/waitlist-position", response_model=WaitlistPositionOut)
def get_waitlist_position(attendee_id: str, registry: AttendeeRegistry = Depends(get_registry)):
    """1-based waitlist position, or null when the attendee is not waitlisted."""
    return WaitlistPositionOut(attendee_id=attendee_id, position=registry.waitlist_position(attendee_id))
