"""Pydantic schemas for Attendees and RSVP change requests."""
from __future__ import annotations
from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, StringConstraints

from app.models.attendee import AgeGroup, AttendeeType, Relationship, RSVPStatus

AttendeeName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class AttendeeCreate(BaseModel):
    user_id: Optional[str] = None  # None only for admin imports
    attendee_type: AttendeeType
    name: AttendeeName
    age_group: AgeGroup = AgeGroup.adult
    relationship: Optional[Relationship] = None
    rsvp_status: RSVPStatus = RSVPStatus.going
    family_member_id: Optional[str] = None


class BulkAttendeeCreate(BaseModel):
    attendees: list[AttendeeCreate]


class StatusPayload(BaseModel):
    rsvp_status: RSVPStatus


class LinkPayload(BaseModel):
    family_member_id: Optional[str] = None  # None = promote this attendee to a new profile


# --- Tagged union of attendee changes -------------------------------------

class SetStatus(BaseModel):
    kind: Literal["set_status"] = "set_status"
    rsvp_status: RSVPStatus


class Link(BaseModel):
    kind: Literal["link"] = "link"
    family_member_id: Optional[str] = None


class Rename(BaseModel):
    kind: Literal["rename"] = "rename"
    name: Optional[AttendeeName] = None
    age_group: Optional[AgeGroup] = None
    relationship: Optional[Relationship] = None


AttendeeChange = Annotated[Union[SetStatus, Link, Rename], Field(discriminator="kind")]


class AttendeeChangeRequest(BaseModel):
    change: AttendeeChange


# --- Responses -------------------------------------------------------------

class AttendeeOut(BaseModel):
    attendee_id: str
    event_id: str
    user_id: Optional[str] = None
    attendee_type: AttendeeType
    relationship: Relationship
    name: str
    age_group: AgeGroup
    display_name: str
    display_age_group: Optional[AgeGroup] = None
    family_member_id: Optional[str] = None
    rsvp_status: RSVPStatus
    waitlist_joined_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CascadeFailureOut(BaseModel):
    attendee_id: str
    message: str


class TransitionOut(BaseModel):
    attendee: AttendeeOut
    requested_status: RSVPStatus
    effective_status: RSVPStatus
    downgraded: bool
    promoted_primary_id: Optional[str] = None
    cascaded_ids: list[str] = []
    cascaded_count: int = 0
    cascade_failures: list[CascadeFailureOut] = []
    partial: bool = False
    waitlist_promoted_ids: list[str] = []


class BulkItemErrorOut(BaseModel):
    index: int
    kind: str
    message: str


class BulkAddOut(BaseModel):
    created: list[TransitionOut]
    errors: list[BulkItemErrorOut]


class LinkOut(BaseModel):
    attendee: AttendeeOut
    family_member_id: str
    created_profile: bool
    changed: bool


class RemovalOut(BaseModel):
    attendee_id: str
    waitlist_promoted_ids: list[str] = []


class WaitlistPositionOut(BaseModel):
    attendee_id: str
    position: Optional[int] = None


class PromotionOut(BaseModel):
    promoted_ids: list[str]


class CapacityOut(BaseModel):
    max_attendees: Optional[int] = None
    going_count: int
    not_going_count: int
    pending_count: int
    waitlisted_count: int
    going_by_age_group: dict[str, int]
    available_seats: Optional[int] = None
    is_at_capacity: bool
    can_waitlist: bool
    waitlist_enabled: bool
    waitlist_limit: Optional[int] = None
