"""Attendee registry: the RSVP status engine for one event.

Every change to an attendee of the event goes through ``AttendeeRegistry``:

- adding attendees, one at a time or in bulk
- status transitions, including the primary -> family "not going" cascade,
  the capacity gate with going -> waitlisted downgrade, and family members
  auto-promoting their primary
- removal, linking to family profiles and renames
- promoting the waitlist when seats free up

The registry reads through the collaborator protocols in ``stores`` and
treats its own reads as advisory. Seats are only ever taken with
``AttendeeStore.reserve_seats`` (a conditional write) and duplicate primaries
are rejected by the store, so concurrent clients cannot overbook the event or
add a second primary for a user between a read and a write.

Rule violations raise ``RegistryError`` subclasses. A downgrade to
``waitlisted`` is a success: callers must read ``effective_status``.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.config import Settings, settings
from app.models.attendee import Attendee, AttendeeType, AgeGroup, Relationship, RSVPStatus
from app.models.attendee_mutation import ActionType
from app.models.family_member import FamilyMember
from app.schemas.attendee import AttendeeCreate, Link, Rename, SetStatus
from app.services.capacity import EventCapacity, compute_capacity, waitlist_order, waitlist_position
from app.services.errors import (
    AlreadyLinkedError,
    AttendeeReadOnlyError,
    CapacityExceededError,
    DuplicatePrimaryError,
    NotFoundError,
    PermissionDeniedError,
    PrimaryNotGoingError,
    PrimaryNotRemovableError,
    PrimaryRequiredError,
    RegistryError,
    StatusNotAllowedError,
)
from app.services.family_service import validate_profile_name
from app.services.stores import AttendeeStore, EventDescriptor, EventDescriptorProvider, FamilyProfileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, passed explicitly to every call."""

    user_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class RegistryPolicy:
    allow_primary_removal: bool = False
    auto_promote_primary: bool = True
    auto_promote_waitlist: bool = True
    enabled_statuses: frozenset = frozenset(RSVPStatus)

    @classmethod
    def from_settings(cls, config: Settings) -> "RegistryPolicy":
        statuses = set(RSVPStatus)
        if not config.RSVP_PENDING_ENABLED:
            statuses.discard(RSVPStatus.pending)
        return cls(
            allow_primary_removal=config.ALLOW_PRIMARY_REMOVAL,
            auto_promote_primary=config.AUTO_PROMOTE_PRIMARY,
            auto_promote_waitlist=config.AUTO_PROMOTE_WAITLIST,
            enabled_statuses=frozenset(statuses),
        )


@dataclass
class CascadeFailure:
    attendee_id: str
    message: str


@dataclass
class TransitionResult:
    attendee: Attendee
    requested_status: RSVPStatus
    effective_status: RSVPStatus
    promoted_primary_id: Optional[str] = None
    cascaded_ids: list[str] = field(default_factory=list)
    cascade_failures: list[CascadeFailure] = field(default_factory=list)
    waitlist_promoted_ids: list[str] = field(default_factory=list)

    @property
    def downgraded(self) -> bool:
        return self.effective_status != self.requested_status

    @property
    def cascaded_count(self) -> int:
        return len(self.cascaded_ids)

    @property
    def partial(self) -> bool:
        return bool(self.cascade_failures)


@dataclass
class BulkItemError:
    index: int
    kind: str
    message: str


@dataclass
class BulkAddResult:
    created: list[TransitionResult] = field(default_factory=list)
    errors: list[BulkItemError] = field(default_factory=list)


@dataclass
class LinkResult:
    attendee: Attendee
    profile: FamilyMember
    created_profile: bool = False
    changed: bool = True


@dataclass
class RemovalResult:
    attendee_id: str
    waitlist_promoted_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AttendeeDisplay:
    name: str
    age_group: Optional[AgeGroup]
    linked: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _attendee_snapshot(attendee: Attendee) -> dict:
    """Serialize an attendee to a JSON-safe dict for the mutation ledger."""
    return {
        "attendee_id": attendee.attendee_id,
        "user_id": attendee.user_id,
        "attendee_type": attendee.attendee_type.value if attendee.attendee_type else None,
        "name": attendee.name,
        "age_group": attendee.age_group.value if attendee.age_group else None,
        "family_member_id": attendee.family_member_id,
        "rsvp_status": attendee.rsvp_status.value if attendee.rsvp_status else None,
    }


class AttendeeRegistry:
    def __init__(
        self,
        event_id: str,
        attendees: AttendeeStore,
        events: EventDescriptorProvider,
        profiles: FamilyProfileStore,
        policy: Optional[RegistryPolicy] = None,
    ):
        self.event_id = event_id
        self.attendees = attendees
        self.events = events
        self.profiles = profiles
        self.policy = policy or RegistryPolicy.from_settings(settings)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def event(self) -> EventDescriptor:
        return self.events.get(self.event_id)

    def list_attendees(self) -> list[Attendee]:
        self.event()
        return self.attendees.list(self.event_id)

    def get_attendee(self, attendee_id: str) -> Attendee:
        attendee = self.attendees.get(attendee_id)
        if attendee is None or attendee.event_id != self.event_id:
            raise NotFoundError.of("Attendee", attendee_id)
        return attendee

    def capacity(self) -> EventCapacity:
        return compute_capacity(self.event(), self.attendees.list(self.event_id))

    def waitlist_position(self, attendee_id: str) -> Optional[int]:
        self.get_attendee(attendee_id)
        return waitlist_position(self.attendees.list(self.event_id), attendee_id)

    def display_of(self, attendee: Attendee) -> AttendeeDisplay:
        """Name and age group to show, preferring the linked profile while it exists."""
        if attendee.family_member_id and attendee.user_id:
            profile = self.profiles.get(attendee.user_id, attendee.family_member_id)
            if profile is not None:
                return AttendeeDisplay(profile.name, profile.age_group or attendee.age_group, linked=True)
        return AttendeeDisplay(attendee.name, attendee.age_group, linked=False)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _check_status_enabled(self, status: RSVPStatus) -> None:
        if status not in self.policy.enabled_statuses:
            raise StatusNotAllowedError(status.value)

    def _authorize(self, actor: Actor, attendee: Attendee) -> None:
        if actor.is_admin:
            return
        if attendee.user_id is None:
            raise AttendeeReadOnlyError(attendee_id=attendee.attendee_id)
        if attendee.user_id != actor.user_id:
            raise PermissionDeniedError(attendee_id=attendee.attendee_id)

    def _authorize_owner(self, actor: Actor, user_id: Optional[str]) -> None:
        if actor.is_admin:
            return
        if user_id is None:
            raise PermissionDeniedError("Only admins can import attendees without an account.")
        if user_id != actor.user_id:
            raise PermissionDeniedError()

    @staticmethod
    def _primary_for(user_id: Optional[str], attendees: list[Attendee]) -> Optional[Attendee]:
        if user_id is None:
            return None
        for attendee in attendees:
            if attendee.is_primary and attendee.user_id == user_id:
                return attendee
        return None

    @classmethod
    def _primary_is_going(cls, user_id: Optional[str], attendees: list[Attendee]) -> bool:
        primary = cls._primary_for(user_id, attendees)
        return primary is not None and primary.rsvp_status == RSVPStatus.going

    def _profile_for(self, user_id: Optional[str], family_member_id: str) -> FamilyMember:
        profile = self.profiles.get(user_id, family_member_id) if user_id else None
        if profile is None:
            raise NotFoundError.of("Family member", family_member_id)
        return profile

    # ------------------------------------------------------------------
    # Capacity policy
    # ------------------------------------------------------------------

    def _capacity_error(self, event: EventDescriptor, capacity: EventCapacity) -> CapacityExceededError:
        return CapacityExceededError.for_event(capacity.going_count, event.max_attendees, event.waitlist_enabled)

    def _claim_primary_seat(
        self,
        event: EventDescriptor,
        attendees: list[Attendee],
        current: Optional[RSVPStatus],
    ) -> RSVPStatus:
        """Status a primary asking to go actually gets: going, waitlisted, or an error."""
        if self.attendees.reserve_seats(self.event_id, 1):
            return RSVPStatus.going
        if current == RSVPStatus.waitlisted:
            return RSVPStatus.waitlisted
        capacity = compute_capacity(event, attendees)
        if capacity.waitlist_has_room(1):
            return RSVPStatus.waitlisted
        raise self._capacity_error(event, capacity)

    def _plan_family_going(
        self,
        event: EventDescriptor,
        attendees: list[Attendee],
        user_id: Optional[str],
        current: Optional[RSVPStatus],
    ) -> tuple[RSVPStatus, Optional[Attendee], Optional[RSVPStatus]]:
        """Resolve a family member's request to go.

        Returns the family member's status plus, when the primary has to move
        with it, the primary and its new status. Any seat the plan hands out
        is already reserved.
        """
        primary = self._primary_for(user_id, attendees)
        if primary is None:
            raise PrimaryRequiredError(user_id=user_id)

        capacity = compute_capacity(event, attendees)
        family_extra = 0 if current == RSVPStatus.waitlisted else 1

        if primary.rsvp_status == RSVPStatus.going:
            if self.attendees.reserve_seats(self.event_id, 1):
                return RSVPStatus.going, None, None
            if capacity.waitlist_has_room(family_extra):
                return RSVPStatus.waitlisted, None, None
            raise self._capacity_error(event, capacity)

        if not self.policy.auto_promote_primary:
            raise PrimaryNotGoingError(primary_id=primary.attendee_id)

        primary_extra = 0 if primary.rsvp_status == RSVPStatus.waitlisted else 1
        if self.attendees.reserve_seats(self.event_id, 2):
            return RSVPStatus.going, primary, RSVPStatus.going
        if self.attendees.reserve_seats(self.event_id, 1):
            # The primary takes the last seat; the family member queues behind it.
            if capacity.waitlist_has_room(family_extra):
                return RSVPStatus.waitlisted, primary, RSVPStatus.going
            raise self._capacity_error(event, capacity)
        if capacity.waitlist_has_room(primary_extra + family_extra):
            return RSVPStatus.waitlisted, primary, RSVPStatus.waitlisted
        raise self._capacity_error(event, capacity)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _set_status(
        self,
        actor: Optional[Actor],
        attendee: Attendee,
        status: RSVPStatus,
        action: ActionType,
    ) -> Attendee:
        """Persist a status whose seat (if going) has already been reserved."""
        before = _attendee_snapshot(attendee)
        previous = attendee.rsvp_status
        fields = {"rsvp_status": status}
        if status == RSVPStatus.waitlisted:
            if previous != RSVPStatus.waitlisted:
                fields["waitlist_joined_at"] = _now()
        else:
            fields["waitlist_joined_at"] = None
        updated = self.attendees.update(attendee.attendee_id, **fields)
        if previous == RSVPStatus.going and status != RSVPStatus.going:
            self.attendees.release_seats(self.event_id, 1)
        self.attendees.record_mutation(
            self.event_id,
            attendee.attendee_id,
            actor.user_id if actor else None,
            action,
            before,
            _attendee_snapshot(updated),
        )
        logger.info(
            "Attendee %s in event %s: %s -> %s (%s)",
            attendee.attendee_id, self.event_id, previous.value, status.value, action.value,
        )
        return updated

    def add_attendee(self, actor: Actor, data: AttendeeCreate) -> TransitionResult:
        """Create one attendee, applying the capacity policy to a ``going`` request."""
        self._check_status_enabled(data.rsvp_status)
        self._authorize_owner(actor, data.user_id)
        is_primary = data.attendee_type == AttendeeType.primary

        with self.attendees.transaction():
            event = self.event()
            attendees = self.attendees.list(self.event_id)

            name, age_group = data.name.strip(), data.age_group
            if data.family_member_id:
                profile = self._profile_for(data.user_id, data.family_member_id)
                name, age_group = profile.name, profile.age_group or data.age_group

            if is_primary and self._primary_for(data.user_id, attendees) is not None:
                raise DuplicatePrimaryError(user_id=data.user_id)

            status = data.rsvp_status
            promoted_primary_id = None
            if status == RSVPStatus.going:
                if is_primary:
                    status = self._claim_primary_seat(event, attendees, None)
                else:
                    status, primary, primary_status = self._plan_family_going(
                        event, attendees, data.user_id, None
                    )
                    if primary is not None and primary_status != primary.rsvp_status:
                        self._set_status(actor, primary, primary_status, ActionType.promote)
                        if primary_status == RSVPStatus.going:
                            promoted_primary_id = primary.attendee_id

            now = _now()
            relationship = data.relationship or (Relationship.self_ if is_primary else Relationship.guest)
            attendee = self.attendees.create(Attendee(
                event_id=self.event_id,
                user_id=data.user_id,
                attendee_type=data.attendee_type,
                relationship_=relationship,
                name=name,
                age_group=age_group,
                family_member_id=data.family_member_id,
                rsvp_status=status,
                waitlist_joined_at=now if status == RSVPStatus.waitlisted else None,
                created_at=now,
            ))
            self.attendees.record_mutation(
                self.event_id, attendee.attendee_id, actor.user_id, ActionType.create,
                None, _attendee_snapshot(attendee),
            )

        logger.info(
            "Added %s attendee %s to event %s (requested %s, got %s)",
            data.attendee_type.value, attendee.attendee_id, self.event_id,
            data.rsvp_status.value, status.value,
        )
        return TransitionResult(
            attendee=attendee,
            requested_status=data.rsvp_status,
            effective_status=status,
            promoted_primary_id=promoted_primary_id,
        )

    def bulk_add_attendees(self, actor: Actor, items: list[AttendeeCreate]) -> BulkAddResult:
        """Best-effort batch; each item is its own transaction and sees the seats taken before it."""
        result = BulkAddResult()
        for index, item in enumerate(items):
            try:
                result.created.append(self.add_attendee(actor, item))
            except RegistryError as exc:
                result.errors.append(BulkItemError(index=index, kind=exc.kind, message=exc.message))
        logger.info(
            "Bulk add to event %s: %d created, %d rejected",
            self.event_id, len(result.created), len(result.errors),
        )
        return result

    def update_attendee_status(self, actor: Actor, attendee_id: str, new_status: RSVPStatus) -> TransitionResult:
        """Move an attendee to ``new_status``; the returned effective status may differ."""
        self._check_status_enabled(new_status)

        with self.attendees.transaction():
            event = self.event()
            attendee = self.get_attendee(attendee_id)
            self._authorize(actor, attendee)
            previous = attendee.rsvp_status
            effective = new_status
            promoted_primary_id = None

            if previous != new_status:
                attendees = self.attendees.list(self.event_id)
                if new_status == RSVPStatus.going:
                    if attendee.is_primary:
                        effective = self._claim_primary_seat(event, attendees, previous)
                    else:
                        effective, primary, primary_status = self._plan_family_going(
                            event, attendees, attendee.user_id, previous
                        )
                        if primary is not None and primary_status != primary.rsvp_status:
                            self._set_status(actor, primary, primary_status, ActionType.promote)
                            if primary_status == RSVPStatus.going:
                                promoted_primary_id = primary.attendee_id
                if effective != previous:
                    self._set_status(actor, attendee, effective, ActionType.status_change)

        result = TransitionResult(
            attendee=attendee,
            requested_status=new_status,
            effective_status=effective,
            promoted_primary_id=promoted_primary_id,
        )

        if attendee.is_primary and effective == RSVPStatus.not_going:
            self._cascade_not_going(actor, attendee, result)

        # A going attendee moving to the waitlist rejoins at the back, behind those already waiting.
        freed = (previous == RSVPStatus.going and effective != RSVPStatus.going) or bool(result.cascaded_ids)
        if freed and self.policy.auto_promote_waitlist:
            result.waitlist_promoted_ids = self.promote_waitlist(actor)
        return result

    def _cascade_not_going(self, actor: Actor, primary: Attendee, result: TransitionResult) -> None:
        """Take every going family member of the primary's user to not-going, one write each."""
        dependents = [
            a for a in self.attendees.list(self.event_id)
            if a.attendee_type == AttendeeType.family_member
            and a.user_id == primary.user_id
            and a.rsvp_status == RSVPStatus.going
        ]
        for member in dependents:
            member_id = member.attendee_id
            try:
                with self.attendees.transaction():
                    self._set_status(actor, member, RSVPStatus.not_going, ActionType.cascade)
            except Exception as exc:
                logger.exception("Cascade to attendee %s in event %s failed", member_id, self.event_id)
                result.cascade_failures.append(CascadeFailure(member_id, str(exc)))
            else:
                result.cascaded_ids.append(member_id)
        if dependents:
            logger.info(
                "Primary %s not going: cascaded %d of %d family members",
                primary.attendee_id, len(result.cascaded_ids), len(dependents),
            )

    def remove_attendee(self, actor: Actor, attendee_id: str) -> RemovalResult:
        with self.attendees.transaction():
            attendee = self.get_attendee(attendee_id)
            self._authorize(actor, attendee)
            if attendee.is_primary and not self.policy.allow_primary_removal and not actor.is_admin:
                raise PrimaryNotRemovableError(attendee_id=attendee_id)
            was_going = attendee.rsvp_status == RSVPStatus.going
            before = _attendee_snapshot(attendee)
            self.attendees.delete(attendee_id)
            if was_going:
                self.attendees.release_seats(self.event_id, 1)
            self.attendees.record_mutation(
                self.event_id, attendee_id, actor.user_id, ActionType.delete, before, None,
            )
        logger.info("Removed attendee %s from event %s", attendee_id, self.event_id)

        result = RemovalResult(attendee_id=attendee_id)
        if was_going and self.policy.auto_promote_waitlist:
            result.waitlist_promoted_ids = self.promote_waitlist(actor)
        return result

    def link_to_family_profile(
        self,
        actor: Actor,
        attendee_id: str,
        family_member_id: Optional[str] = None,
    ) -> LinkResult:
        """Link to an existing profile, or promote the attendee into one when no id is given."""
        with self.attendees.transaction():
            attendee = self.get_attendee(attendee_id)
            self._authorize(actor, attendee)
            if attendee.user_id is None:
                raise AttendeeReadOnlyError("Imported attendees cannot be linked to a family profile.")
            if attendee.is_primary and attendee.user_id == actor.user_id:
                raise AlreadyLinkedError(attendee_id=attendee_id)

            created = False
            if family_member_id:
                profile = self._profile_for(attendee.user_id, family_member_id)
            else:
                profile = self.profiles.find_by_name(attendee.user_id, attendee.name)
                if profile is None:
                    name = validate_profile_name(attendee.name)
                    profile = self.profiles.create(attendee.user_id, name, attendee.age_group)
                    created = True

            age_group = profile.age_group or attendee.age_group
            if (
                attendee.family_member_id == profile.family_member_id
                and attendee.name == profile.name
                and attendee.age_group == age_group
            ):
                return LinkResult(attendee=attendee, profile=profile, created_profile=False, changed=False)

            before = _attendee_snapshot(attendee)
            self.attendees.update(
                attendee_id,
                family_member_id=profile.family_member_id,
                name=profile.name,
                age_group=age_group,
            )
            self.attendees.record_mutation(
                self.event_id, attendee_id, actor.user_id, ActionType.link,
                before, _attendee_snapshot(attendee),
            )
        logger.info(
            "Linked attendee %s to family member %s (new profile: %s)",
            attendee_id, profile.family_member_id, created,
        )
        return LinkResult(attendee=attendee, profile=profile, created_profile=created)

    def rename_attendee(
        self,
        actor: Actor,
        attendee_id: str,
        name: Optional[str] = None,
        age_group: Optional[AgeGroup] = None,
        relationship: Optional[Relationship] = None,
    ) -> Attendee:
        """Edit descriptive fields; a linked profile is kept in sync."""
        with self.attendees.transaction():
            attendee = self.get_attendee(attendee_id)
            self._authorize(actor, attendee)
            fields = {}
            if name is not None:
                fields["name"] = name.strip()
            if age_group is not None:
                fields["age_group"] = age_group
            if relationship is not None:
                fields["relationship_"] = relationship
            if not fields:
                return attendee

            profile_fields = {k: v for k, v in fields.items() if k in ("name", "age_group")}
            if attendee.family_member_id and attendee.user_id and profile_fields:
                if self.profiles.get(attendee.user_id, attendee.family_member_id) is not None:
                    if "name" in profile_fields:
                        profile_fields["name"] = validate_profile_name(profile_fields["name"])
                    self.profiles.update(attendee.user_id, attendee.family_member_id, **profile_fields)

            before = _attendee_snapshot(attendee)
            self.attendees.update(attendee_id, **fields)
            self.attendees.record_mutation(
                self.event_id, attendee_id, actor.user_id, ActionType.rename,
                before, _attendee_snapshot(attendee),
            )
        logger.info("Renamed attendee %s in event %s", attendee_id, self.event_id)
        return attendee

    def apply(
        self,
        actor: Actor,
        attendee_id: str,
        change: SetStatus | Link | Rename,
    ) -> TransitionResult | LinkResult | Attendee:
        """Dispatch one tagged change request."""
        if isinstance(change, SetStatus):
            return self.update_attendee_status(actor, attendee_id, change.rsvp_status)
        if isinstance(change, Link):
            return self.link_to_family_profile(actor, attendee_id, change.family_member_id)
        if isinstance(change, Rename):
            return self.rename_attendee(actor, attendee_id, change.name, change.age_group, change.relationship)
        raise TypeError(f"Unsupported attendee change: {type(change).__name__}")

    def promote_waitlist(self, actor: Optional[Actor] = None) -> list[str]:
        """Fill free seats from the waitlist, oldest first.

        A promoted primary brings its waitlisted family members in right after
        it while seats last. A family member on its own only moves up once its
        primary is going.
        """
        promoted: list[str] = []
        with self.attendees.transaction():
            self.event()
            attendees = self.attendees.list(self.event_id)
            ordered = waitlist_order(attendees)
            handled: set[str] = set()
            full = False

            for entry in ordered:
                if full:
                    break
                if entry.attendee_id in handled:
                    continue
                if entry.is_primary:
                    if not self.attendees.reserve_seats(self.event_id, 1):
                        break
                    self._set_status(actor, entry, RSVPStatus.going, ActionType.promote)
                    handled.add(entry.attendee_id)
                    promoted.append(entry.attendee_id)
                    if entry.user_id is None:
                        continue
                    for member in ordered:
                        if (
                            member.attendee_id in handled
                            or member.is_primary
                            or member.user_id != entry.user_id
                        ):
                            continue
                        if not self.attendees.reserve_seats(self.event_id, 1):
                            full = True
                            break
                        self._set_status(actor, member, RSVPStatus.going, ActionType.promote)
                        handled.add(member.attendee_id)
                        promoted.append(member.attendee_id)
                elif self._primary_is_going(entry.user_id, attendees):
                    if not self.attendees.reserve_seats(self.event_id, 1):
                        break
                    self._set_status(actor, entry, RSVPStatus.going, ActionType.promote)
                    handled.add(entry.attendee_id)
                    promoted.append(entry.attendee_id)

        if promoted:
            logger.info("Promoted %d attendees from the waitlist of event %s", len(promoted), self.event_id)
        return promoted
