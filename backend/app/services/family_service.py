"""Family profile service: reusable, user-owned attendee templates.

Profiles are never owned by an event. Attendees reference them through
``family_member_id`` and resolve their display name from them while the
profile exists.
"""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.attendee import AgeGroup
from app.models.family_member import FamilyMember
from app.services.errors import InvalidFamilyProfileError, NotFoundError, PermissionDeniedError
from app.services.sql_stores import SqlFamilyProfileStore

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50


def validate_profile_name(name: Optional[str]) -> str:
    """Return the trimmed name, or raise with every problem found."""
    errors = []
    trimmed = (name or "").strip()
    if not trimmed:
        errors.append("Name is required")
    elif len(trimmed) < NAME_MIN_LENGTH:
        errors.append(f"Name must be at least {NAME_MIN_LENGTH} characters long")
    elif len(trimmed) > NAME_MAX_LENGTH:
        errors.append(f"Name must be less than {NAME_MAX_LENGTH} characters")
    if errors:
        raise InvalidFamilyProfileError(errors)
    return trimmed


def _check_owner(actor_user_id: str, user_id: str, is_admin: bool) -> None:
    if actor_user_id != user_id and not is_admin:
        raise PermissionDeniedError("You can only manage your own family members.")


def list_members(db: Session, user_id: str) -> list[FamilyMember]:
    return SqlFamilyProfileStore(db).list(user_id)


def create_member(
    db: Session,
    user_id: str,
    actor_user_id: str,
    name: str,
    age_group: Optional[AgeGroup] = None,
    is_default_member: bool = False,
    is_admin: bool = False,
) -> FamilyMember:
    _check_owner(actor_user_id, user_id, is_admin)
    clean_name = validate_profile_name(name)
    member = SqlFamilyProfileStore(db).create(user_id, clean_name, age_group, is_default_member)
    db.commit()
    db.refresh(member)
    logger.info("Created family member %s (%s) for user %s", member.family_member_id, clean_name, user_id)
    return member


def update_member(
    db: Session,
    user_id: str,
    family_member_id: str,
    actor_user_id: str,
    updates: dict[str, Any],
    is_admin: bool = False,
) -> FamilyMember:
    """Partial update; linked attendees pick the new values up on their next read."""
    _check_owner(actor_user_id, user_id, is_admin)
    if "name" in updates:
        updates["name"] = validate_profile_name(updates["name"])
    store = SqlFamilyProfileStore(db)
    if store.get(user_id, family_member_id) is None:
        raise NotFoundError.of("Family member", family_member_id)
    member = store.update(user_id, family_member_id, **updates)
    db.commit()
    db.refresh(member)
    logger.info("Updated family member %s for user %s", family_member_id, user_id)
    return member


def delete_member(
    db: Session,
    user_id: str,
    family_member_id: str,
    actor_user_id: str,
    is_admin: bool = False,
) -> None:
    """Delete the profile. Linked attendees fall back to their own stored name."""
    _check_owner(actor_user_id, user_id, is_admin)
    SqlFamilyProfileStore(db).delete(user_id, family_member_id)
    db.commit()
    logger.info("Deleted family member %s for user %s", family_member_id, user_id)
