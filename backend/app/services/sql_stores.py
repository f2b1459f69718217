"""SQLAlchemy implementations of the registry collaborator protocols.

All three stores share one ``Session``; ``SqlAttendeeStore.transaction`` is
the unit of work for any writes made through them.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.attendee import Attendee, AttendeeType, AgeGroup
from app.models.attendee_mutation import AttendeeMutation, ActionType
from app.models.event import Event
from app.models.family_member import FamilyMember
from app.services.errors import DuplicatePrimaryError, NotFoundError
from app.services.stores import EventDescriptor

logger = logging.getLogger(__name__)


class SqlAttendeeStore:
    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any exception. Nested blocks join the outer one."""
        self._depth += 1
        try:
            yield
        except Exception:
            if self._depth == 1:
                self.db.rollback()
            raise
        else:
            if self._depth == 1:
                self.db.commit()
        finally:
            self._depth -= 1

    def list(self, event_id: str) -> list[Attendee]:
        return (
            self.db.query(Attendee)
            .filter(Attendee.event_id == event_id)
            .order_by(Attendee.created_at, Attendee.attendee_id)
            .all()
        )

    def get(self, attendee_id: str) -> Optional[Attendee]:
        return self.db.query(Attendee).filter(Attendee.attendee_id == attendee_id).first()

    def create(self, attendee: Attendee) -> Attendee:
        self.db.add(attendee)
        try:
            self.db.flush()
        except IntegrityError:
            if attendee.attendee_type == AttendeeType.primary:
                logger.warning(
                    "Unique index rejected second primary for user %s in event %s",
                    attendee.user_id, attendee.event_id,
                )
                raise DuplicatePrimaryError(user_id=attendee.user_id)
            raise
        return attendee

    def update(self, attendee_id: str, **fields: Any) -> Attendee:
        attendee = self.get(attendee_id)
        if attendee is None:
            raise NotFoundError.of("Attendee", attendee_id)
        for field, value in fields.items():
            setattr(attendee, field, value)
        self.db.flush()
        return attendee

    def delete(self, attendee_id: str) -> None:
        attendee = self.get(attendee_id)
        if attendee is None:
            raise NotFoundError.of("Attendee", attendee_id)
        self.db.delete(attendee)
        self.db.flush()

    def reserve_seats(self, event_id: str, count: int = 1) -> bool:
        if count <= 0:
            return True
        updated = (
            self.db.query(Event)
            .filter(
                Event.event_id == event_id,
                or_(
                    Event.max_attendees.is_(None),
                    Event.going_count + count <= Event.max_attendees,
                ),
            )
            .update({Event.going_count: Event.going_count + count}, synchronize_session="fetch")
        )
        return updated == 1

    def release_seats(self, event_id: str, count: int = 1) -> None:
        if count <= 0:
            return
        (
            self.db.query(Event)
            .filter(Event.event_id == event_id)
            .update(
                {Event.going_count: case((Event.going_count >= count, Event.going_count - count), else_=0)},
                synchronize_session="fetch",
            )
        )

    def record_mutation(
        self,
        event_id: str,
        attendee_id: str,
        actor_user_id: Optional[str],
        action_type: ActionType,
        before: Optional[dict],
        after: Optional[dict],
    ) -> None:
        self.db.add(AttendeeMutation(
            event_id=event_id,
            attendee_id=attendee_id,
            actor_user_id=actor_user_id,
            action_type=action_type,
            before_snapshot=before,
            after_snapshot=after,
        ))


class SqlEventDescriptorProvider:
    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> EventDescriptor:
        event = self.db.query(Event).filter(Event.event_id == event_id).first()
        if event is None:
            raise NotFoundError.of("Event", event_id)
        return EventDescriptor(
            event_id=event.event_id,
            start_at=event.start_at,
            max_attendees=event.max_attendees,
            waitlist_enabled=event.waitlist_enabled,
            waitlist_limit=event.waitlist_limit,
        )


class SqlFamilyProfileStore:
    def __init__(self, db: Session):
        self.db = db

    def list(self, user_id: str) -> list[FamilyMember]:
        return (
            self.db.query(FamilyMember)
            .filter(FamilyMember.user_id == user_id)
            .order_by(FamilyMember.created_at, FamilyMember.family_member_id)
            .all()
        )

    def get(self, user_id: str, family_member_id: str) -> Optional[FamilyMember]:
        return (
            self.db.query(FamilyMember)
            .filter(
                FamilyMember.user_id == user_id,
                FamilyMember.family_member_id == family_member_id,
            )
            .first()
        )

    def create(
        self,
        user_id: str,
        name: str,
        age_group: Optional[AgeGroup] = None,
        is_default_member: bool = False,
    ) -> FamilyMember:
        member = FamilyMember(
            user_id=user_id,
            name=name,
            age_group=age_group,
            is_default_member=is_default_member,
        )
        self.db.add(member)
        self.db.flush()
        return member

    def find_by_name(self, user_id: str, name: str) -> Optional[FamilyMember]:
        return (
            self.db.query(FamilyMember)
            .filter(
                FamilyMember.user_id == user_id,
                func.lower(func.trim(FamilyMember.name)) == name.strip().lower(),
            )
            .first()
        )

    def update(self, user_id: str, family_member_id: str, **fields: Any) -> FamilyMember:
        member = self.get(user_id, family_member_id)
        if member is None:
            raise NotFoundError.of("Family member", family_member_id)
        for field, value in fields.items():
            setattr(member, field, value)
        self.db.flush()
        return member

    def delete(self, user_id: str, family_member_id: str) -> None:
        member = self.get(user_id, family_member_id)
        if member is None:
            raise NotFoundError.of("Family member", family_member_id)
        self.db.delete(member)
        self.db.flush()
