"""Family profile API routes."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_actor
from app.schemas.family_member import FamilyMemberCreate, FamilyMemberUpdate, FamilyMemberOut
from app.services import family_service
from app.services.attendee_registry import Actor
from app.services.sql_stores import SqlFamilyProfileStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[FamilyMemberOut])
def list_family_members(user_id: str, db: Session = Depends(get_db)):
    """List a user's saved family members."""
    return family_service.list_members(db, user_id)


@router.post("/", response_model=FamilyMemberOut, status_code=status.HTTP_201_CREATED)
def create_family_member(
    user_id: str,
    payload: FamilyMemberCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Save a reusable family member for quick RSVPs."""
    return family_service.create_member(
        db,
        user_id=user_id,
        actor_user_id=actor.user_id,
        name=payload.name,
        age_group=payload.age_group,
        is_default_member=payload.is_default_member,
        is_admin=actor.is_admin,
    )


@router.get("/{family_member_id}", response_model=FamilyMemberOut)
def get_family_member(user_id: str, family_member_id: str, db: Session = Depends(get_db)):
    """Fetch a single family member."""
    member = SqlFamilyProfileStore(db).get(user_id, family_member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Family member not found")
    return member


@router.patch("/{family_member_id}", response_model=FamilyMemberOut)
def update_family_member(
    user_id: str,
    family_member_id: str,
    payload: FamilyMemberUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Update a family member (partial update)."""
    return family_service.update_member(
        db,
        user_id=user_id,
        family_member_id=family_member_id,
        actor_user_id=actor.user_id,
        updates=payload.model_dump(exclude_unset=True),
        is_admin=actor.is_admin,
    )


@router.delete("/{family_member_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_family_member(
    user_id: str,
    family_member_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Delete a family member; linked attendees keep their own stored name."""
    family_service.delete_member(
        db,
        user_id=user_id,
        family_member_id=family_member_id,
        actor_user_id=actor.user_id,
        is_admin=actor.is_admin,
    )
