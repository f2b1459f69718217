"""Collaborator protocols consumed by the attendee registry.

The registry never touches a session or a query directly. It reads and writes
through these three interfaces, which lets the same rules run against the SQL
stores in ``sql_stores`` or any other backend that offers the same
conditional-write guarantees:

- ``AttendeeStore.create`` must reject a second primary for the same
  (event, user) atomically, raising ``DuplicatePrimaryError``.
- ``AttendeeStore.reserve_seats`` must be a conditional increment of the
  event's going counter that fails (returns False) rather than overshoot
  ``max_attendees``.
"""
from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from app.models.attendee import Attendee, AgeGroup
from app.models.attendee_mutation import ActionType
from app.models.family_member import FamilyMember


@dataclass(frozen=True)
class EventDescriptor:
    event_id: str
    start_at: datetime
    max_attendees: Optional[int] = None
    waitlist_enabled: bool = False
    waitlist_limit: Optional[int] = None


class AttendeeStore(Protocol):
    def transaction(self) -> AbstractContextManager[None]:
        """Commit everything written inside the block, or roll it all back."""
        ...

    def list(self, event_id: str) -> list[Attendee]: ...

    def get(self, attendee_id: str) -> Optional[Attendee]: ...

    def create(self, attendee: Attendee) -> Attendee: ...

    def update(self, attendee_id: str, **fields: Any) -> Attendee: ...

    def delete(self, attendee_id: str) -> None: ...

    def reserve_seats(self, event_id: str, count: int = 1) -> bool:
        """Atomically take ``count`` seats; False when that would exceed capacity."""
        ...

    def release_seats(self, event_id: str, count: int = 1) -> None: ...

    def record_mutation(
        self,
        event_id: str,
        attendee_id: str,
        actor_user_id: Optional[str],
        action_type: ActionType,
        before: Optional[dict],
        after: Optional[dict],
    ) -> None: ...


class EventDescriptorProvider(Protocol):
    def get(self, event_id: str) -> EventDescriptor: ...


class FamilyProfileStore(Protocol):
    def list(self, user_id: str) -> list[FamilyMember]: ...

    def get(self, user_id: str, family_member_id: str) -> Optional[FamilyMember]: ...

    def create(
        self,
        user_id: str,
        name: str,
        age_group: Optional[AgeGroup] = None,
        is_default_member: bool = False,
    ) -> FamilyMember: ...

    def find_by_name(self, user_id: str, name: str) -> Optional[FamilyMember]: ...

    def update(self, user_id: str, family_member_id: str, **fields: Any) -> FamilyMember: ...

    def delete(self, user_id: str, family_member_id: str) -> None: ...
