"""Capacity arithmetic and waitlist ordering over one event's attendee set."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from app.models.attendee import Attendee, AgeGroup, RSVPStatus
from app.services.stores import EventDescriptor

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class EventCapacity:
    max_attendees: Optional[int]
    waitlist_enabled: bool
    waitlist_limit: Optional[int]
    going_count: int = 0
    not_going_count: int = 0
    pending_count: int = 0
    waitlisted_count: int = 0
    going_by_age_group: dict[str, int] = field(default_factory=dict)

    @property
    def is_at_capacity(self) -> bool:
        return self.max_attendees is not None and self.going_count >= self.max_attendees

    @property
    def available_seats(self) -> Optional[int]:
        """Seats left, or None when the event is unlimited."""
        if self.max_attendees is None:
            return None
        return max(0, self.max_attendees - self.going_count)

    @property
    def can_waitlist(self) -> bool:
        return self.waitlist_has_room(1)

    def waitlist_has_room(self, additional: int) -> bool:
        if not self.waitlist_enabled:
            return False
        if additional <= 0 or self.waitlist_limit is None:
            return True
        return self.waitlisted_count + additional <= self.waitlist_limit


def compute_capacity(event: EventDescriptor, attendees: Iterable[Attendee]) -> EventCapacity:
    counts = {status: 0 for status in RSVPStatus}
    by_age = {group.value: 0 for group in AgeGroup}
    for attendee in attendees:
        counts[attendee.rsvp_status] += 1
        if attendee.rsvp_status == RSVPStatus.going and attendee.age_group is not None:
            by_age[attendee.age_group.value] += 1
    return EventCapacity(
        max_attendees=event.max_attendees,
        waitlist_enabled=event.waitlist_enabled,
        waitlist_limit=event.waitlist_limit,
        going_count=counts[RSVPStatus.going],
        not_going_count=counts[RSVPStatus.not_going],
        pending_count=counts[RSVPStatus.pending],
        waitlisted_count=counts[RSVPStatus.waitlisted],
        going_by_age_group=by_age,
    )


def _as_utc(value: Optional[datetime]) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def waitlist_order(attendees: Iterable[Attendee]) -> list[Attendee]:
    """Waitlisted attendees, oldest entry first."""
    waitlisted = [a for a in attendees if a.rsvp_status == RSVPStatus.waitlisted]
    return sorted(
        waitlisted,
        key=lambda a: (
            _as_utc(a.waitlist_joined_at or a.created_at),
            _as_utc(a.created_at),
            a.attendee_id,
        ),
    )


def waitlist_position(attendees: Iterable[Attendee], attendee_id: str) -> Optional[int]:
    for position, attendee in enumerate(waitlist_order(attendees), start=1):
        if attendee.attendee_id == attendee_id:
            return position
    return None
