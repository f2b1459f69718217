"""Service-level tests for AttendeeRegistry.

Covers:
- Adding primaries and family members, with the duplicate-primary guard
- Status transitions: capacity downgrade, family auto-promoting its primary
- The primary -> family "not going" cascade, including partial failure
- Removal rules and authorization
- Bulk add with per-item errors
- The mutation ledger
"""
import pytest
from pydantic import ValidationError

from app.models.attendee import Attendee, AttendeeType, RSVPStatus
from app.models.attendee_mutation import AttendeeMutation, ActionType
from app.models.event import Event
from app.services.attendee_registry import Actor, RegistryPolicy
from app.services.errors import (
    AttendeeReadOnlyError,
    CapacityExceededError,
    DuplicatePrimaryError,
    NotFoundError,
    PermissionDeniedError,
    PrimaryNotGoingError,
    PrimaryNotRemovableError,
    PrimaryRequiredError,
    StatusNotAllowedError,
)
from tests.conftest import family, make_event, make_registry, primary

ALICE = Actor("alice")
BOB = Actor("bob")
ADMIN = Actor("admin", is_admin=True)


def _going_count(db, event_id: str) -> int:
    db.expire_all()
    return db.query(Event).filter(Event.event_id == event_id).one().going_count


def _status(db, attendee_id: str) -> RSVPStatus:
    db.expire_all()
    return db.query(Attendee).filter(Attendee.attendee_id == attendee_id).one().rsvp_status


class TestAddAttendee:
    """Creating attendees."""

    def test_add_primary_going(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        result = registry.add_attendee(ALICE, primary("alice"))
        assert result.effective_status == RSVPStatus.going
        assert not result.downgraded
        assert result.attendee.attendee_type == AttendeeType.primary
        assert _going_count(db, event.event_id) == 1

    def test_second_primary_for_same_user_rejected(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        registry.add_attendee(ALICE, primary("alice"))
        with pytest.raises(DuplicatePrimaryError):
            registry.add_attendee(ALICE, primary("alice", status="pending"))
        primaries = [a for a in registry.list_attendees() if a.is_primary]
        assert len(primaries) == 1

    def test_name_is_trimmed(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        result = registry.add_attendee(ALICE, primary("alice", name="  Alice  "))
        assert result.attendee.name == "Alice"
        assert registry.display_of(result.attendee).name == "Alice"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            primary("alice", name="   ")

    def test_family_member_without_primary_rejected(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        with pytest.raises(PrimaryRequiredError):
            registry.add_attendee(ALICE, family("alice", "Sam"))
        assert registry.list_attendees() == []

    def test_family_member_not_going_needs_no_primary_seat(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        result = registry.add_attendee(ALICE, family("alice", "Sam", status="not-going"))
        assert result.effective_status == RSVPStatus.not_going

    def test_family_member_going_promotes_pending_primary(self, db):
        event = make_event(db, max_attendees=5)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice", status="pending")).attendee
        result = registry.add_attendee(ALICE, family("alice", "Sam"))
        assert result.effective_status == RSVPStatus.going
        assert result.promoted_primary_id == parent.attendee_id
        assert _status(db, parent.attendee_id) == RSVPStatus.going
        assert _going_count(db, event.event_id) == 2

    def test_full_event_downgrades_to_waitlist(self, db):
        event = make_event(db, max_attendees=1, waitlist_enabled=True)
        registry = make_registry(db, event.event_id)
        registry.add_attendee(ALICE, primary("alice"))
        result = registry.add_attendee(BOB, primary("bob"))
        assert result.requested_status == RSVPStatus.going
        assert result.effective_status == RSVPStatus.waitlisted
        assert result.downgraded
        assert result.attendee.waitlist_joined_at is not None
        assert _going_count(db, event.event_id) == 1

    def test_full_event_without_waitlist_rejects(self, db):
        event = make_event(db, max_attendees=1)
        registry = make_registry(db, event.event_id)
        registry.add_attendee(ALICE, primary("alice"))
        with pytest.raises(CapacityExceededError) as exc_info:
            registry.add_attendee(BOB, primary("bob"))
        assert exc_info.value.context["reason"] == "waitlist_disabled"
        assert len(registry.list_attendees()) == 1

    def test_cannot_add_for_another_user(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        with pytest.raises(PermissionDeniedError):
            registry.add_attendee(BOB, primary("alice"))

    def test_import_without_user_requires_admin(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        with pytest.raises(PermissionDeniedError):
            registry.add_attendee(ALICE, primary(None, name="Walk-in Guest"))
        result = registry.add_attendee(ADMIN, primary(None, name="Walk-in Guest"))
        assert result.attendee.user_id is None

    def test_disabled_status_rejected(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id, enabled_statuses=frozenset(
            {RSVPStatus.going, RSVPStatus.not_going, RSVPStatus.waitlisted}
        ))
        with pytest.raises(StatusNotAllowedError):
            registry.add_attendee(ALICE, primary("alice", status="pending"))

    def test_unknown_event(self, db):
        registry = make_registry(db, "no-such-event")
        with pytest.raises(NotFoundError):
            registry.add_attendee(ALICE, primary("alice"))


class TestStatusTransitions:
    """update_attendee_status rules."""

    def test_same_status_is_noop(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        result = registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.going)
        assert result.effective_status == RSVPStatus.going
        assert _going_count(db, event.event_id) == 1

    def test_going_to_not_going_releases_seat(self, db):
        event = make_event(db, max_attendees=3)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.not_going)
        assert _going_count(db, event.event_id) == 0

    def test_family_going_without_primary_leaves_status_unchanged(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        kid = registry.add_attendee(ALICE, family("alice", "Sam", status="pending")).attendee
        with pytest.raises(PrimaryRequiredError):
            registry.update_attendee_status(ALICE, kid.attendee_id, RSVPStatus.going)
        assert _status(db, kid.attendee_id) == RSVPStatus.pending

    def test_family_going_auto_promotes_not_going_primary(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice", status="not-going")).attendee
        kid = registry.add_attendee(ALICE, family("alice", "Sam", status="not-going")).attendee
        result = registry.update_attendee_status(ALICE, kid.attendee_id, RSVPStatus.going)
        assert result.effective_status == RSVPStatus.going
        assert result.promoted_primary_id == parent.attendee_id
        assert _status(db, parent.attendee_id) == RSVPStatus.going

    def test_primary_not_going_error_when_auto_promotion_off(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id, auto_promote_primary=False)
        parent = registry.add_attendee(ALICE, primary("alice", status="pending")).attendee
        kid = registry.add_attendee(ALICE, family("alice", "Sam", status="pending")).attendee
        with pytest.raises(PrimaryNotGoingError):
            registry.update_attendee_status(ALICE, kid.attendee_id, RSVPStatus.going)
        assert _status(db, parent.attendee_id) == RSVPStatus.pending
        assert _status(db, kid.attendee_id) == RSVPStatus.pending

    def test_family_takes_waitlist_when_primary_gets_last_seat(self, db):
        event = make_event(db, max_attendees=1, waitlist_enabled=True)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice", status="pending")).attendee
        result = registry.add_attendee(ALICE, family("alice", "Sam"))
        assert result.effective_status == RSVPStatus.waitlisted
        assert result.promoted_primary_id == parent.attendee_id
        assert _status(db, parent.attendee_id) == RSVPStatus.going
        assert _going_count(db, event.event_id) == 1

    def test_family_and_primary_both_waitlisted_when_full(self, db):
        event = make_event(db, max_attendees=1, waitlist_enabled=True)
        registry = make_registry(db, event.event_id)
        registry.add_attendee(BOB, primary("bob"))
        parent = registry.add_attendee(ALICE, primary("alice", status="pending")).attendee
        result = registry.add_attendee(ALICE, family("alice", "Sam"))
        assert result.effective_status == RSVPStatus.waitlisted
        assert result.promoted_primary_id is None
        assert _status(db, parent.attendee_id) == RSVPStatus.waitlisted

    def test_other_users_attendee_denied(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        with pytest.raises(PermissionDeniedError):
            registry.update_attendee_status(BOB, parent.attendee_id, RSVPStatus.not_going)
        registry.update_attendee_status(ADMIN, parent.attendee_id, RSVPStatus.not_going)
        assert _status(db, parent.attendee_id) == RSVPStatus.not_going

    def test_imported_attendee_read_only(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        guest = registry.add_attendee(ADMIN, primary(None, name="Walk-in Guest")).attendee
        with pytest.raises(AttendeeReadOnlyError):
            registry.update_attendee_status(ALICE, guest.attendee_id, RSVPStatus.not_going)

    def test_attendee_of_other_event_not_found(self, db):
        first = make_event(db)
        second = make_event(db, title="Other")
        parent = make_registry(db, first.event_id).add_attendee(ALICE, primary("alice")).attendee
        with pytest.raises(NotFoundError):
            make_registry(db, second.event_id).update_attendee_status(
                ALICE, parent.attendee_id, RSVPStatus.not_going
            )


class TestNotGoingCascade:
    """A primary going to not-going takes its going family members along."""

    def test_cascade_only_touches_going_members_of_same_user(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        going_kid = registry.add_attendee(ALICE, family("alice", "Sam")).attendee
        pending_kid = registry.add_attendee(ALICE, family("alice", "Max", status="pending")).attendee
        registry.add_attendee(BOB, primary("bob"))
        bobs_kid = registry.add_attendee(BOB, family("bob", "Lee")).attendee

        result = registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.not_going)

        assert result.cascaded_ids == [going_kid.attendee_id]
        assert result.cascaded_count == 1
        assert not result.partial
        assert _status(db, going_kid.attendee_id) == RSVPStatus.not_going
        assert _status(db, pending_kid.attendee_id) == RSVPStatus.pending
        assert _status(db, bobs_kid.attendee_id) == RSVPStatus.going
        assert _going_count(db, event.event_id) == 2

    def test_cascade_failure_is_reported_not_raised(self, db, monkeypatch):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        kid_ok = registry.add_attendee(ALICE, family("alice", "Sam")).attendee
        kid_bad = registry.add_attendee(ALICE, family("alice", "Max")).attendee
        bad_id = kid_bad.attendee_id

        original_update = registry.attendees.update

        def flaky_update(attendee_id, **fields):
            if attendee_id == bad_id:
                raise RuntimeError("store unavailable")
            return original_update(attendee_id, **fields)

        monkeypatch.setattr(registry.attendees, "update", flaky_update)
        result = registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.not_going)

        assert result.effective_status == RSVPStatus.not_going
        assert result.cascaded_ids == [kid_ok.attendee_id]
        assert result.partial
        assert [f.attendee_id for f in result.cascade_failures] == [bad_id]
        assert "store unavailable" in result.cascade_failures[0].message
        assert _status(db, parent.attendee_id) == RSVPStatus.not_going
        assert _status(db, bad_id) == RSVPStatus.going

    def test_cascade_frees_seats_for_waitlist(self, db):
        event = make_event(db, max_attendees=2, waitlist_enabled=True)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        registry.add_attendee(ALICE, family("alice", "Sam"))
        waiting = registry.add_attendee(BOB, primary("bob")).attendee
        assert waiting.rsvp_status == RSVPStatus.waitlisted

        result = registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.not_going)
        assert result.waitlist_promoted_ids == [waiting.attendee_id]
        assert _status(db, waiting.attendee_id) == RSVPStatus.going


class TestRemoveAttendee:
    """remove_attendee rules."""

    def test_primary_not_removable_by_default(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        with pytest.raises(PrimaryNotRemovableError):
            registry.remove_attendee(ALICE, parent.attendee_id)

    def test_primary_removable_when_policy_allows(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id, allow_primary_removal=True)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        registry.remove_attendee(ALICE, parent.attendee_id)
        assert registry.list_attendees() == []
        assert _going_count(db, event.event_id) == 0

    def test_remove_family_member_frees_seat(self, db):
        event = make_event(db, max_attendees=2, waitlist_enabled=True)
        registry = make_registry(db, event.event_id)
        registry.add_attendee(ALICE, primary("alice"))
        kid = registry.add_attendee(ALICE, family("alice", "Sam")).attendee
        waiting = registry.add_attendee(BOB, primary("bob")).attendee

        result = registry.remove_attendee(ALICE, kid.attendee_id)
        assert result.waitlist_promoted_ids == [waiting.attendee_id]
        assert _going_count(db, event.event_id) == 2

    def test_remove_missing_attendee(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        with pytest.raises(NotFoundError):
            registry.remove_attendee(ALICE, "missing")


class TestBulkAdd:
    """bulk_add_attendees reports failures per item."""

    def test_partial_success(self, db):
        event = make_event(db, max_attendees=2)
        registry = make_registry(db, event.event_id)
        result = registry.bulk_add_attendees(ADMIN, [
            primary("alice"),
            family("carol", "Orphan"),
            primary("bob"),
            primary("dave"),
        ])
        assert len(result.created) == 2
        assert [(e.index, e.kind) for e in result.errors] == [
            (1, "PrimaryRequired"),
            (3, "CapacityExceeded"),
        ]
        assert _going_count(db, event.event_id) == 2


class TestMutationLedger:
    """Every registry write is recorded."""

    def test_ledger_entries(self, db):
        event = make_event(db)
        registry = make_registry(db, event.event_id)
        parent = registry.add_attendee(ALICE, primary("alice")).attendee
        kid = registry.add_attendee(ALICE, family("alice", "Sam")).attendee
        registry.update_attendee_status(ALICE, parent.attendee_id, RSVPStatus.not_going)

        rows = db.query(AttendeeMutation).filter(AttendeeMutation.event_id == event.event_id).all()
        actions = sorted((r.attendee_id, r.action_type) for r in rows)
        assert actions == sorted([
            (parent.attendee_id, ActionType.create),
            (kid.attendee_id, ActionType.create),
            (parent.attendee_id, ActionType.status_change),
            (kid.attendee_id, ActionType.cascade),
        ])
        cascade = next(r for r in rows if r.action_type == ActionType.cascade)
        assert cascade.before_snapshot["rsvp_status"] == "going"
        assert cascade.after_snapshot["rsvp_status"] == "not-going"
        assert cascade.actor_user_id == "alice"


class TestPolicyFromSettings:
    def test_pending_can_be_disabled(self):
        from app.config import Settings

        policy = RegistryPolicy.from_settings(Settings(RSVP_PENDING_ENABLED=False))
        assert RSVPStatus.pending not in policy.enabled_statuses
        assert RSVPStatus.waitlisted in policy.enabled_statuses
