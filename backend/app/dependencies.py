"""FastAPI dependencies shared by the routers."""
from fastapi import Depends, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.attendee_registry import Actor, AttendeeRegistry, RegistryPolicy
from app.services.sql_stores import SqlAttendeeStore, SqlEventDescriptorProvider, SqlFamilyProfileStore


def get_actor(actor_user_id: str = Query(..., description="ID of the user performing the request")) -> Actor:
    return Actor(user_id=actor_user_id, is_admin=actor_user_id in settings.admin_user_ids)


def build_registry(db: Session, event_id: str) -> AttendeeRegistry:
    return AttendeeRegistry(
        event_id=event_id,
        attendees=SqlAttendeeStore(db),
        events=SqlEventDescriptorProvider(db),
        profiles=SqlFamilyProfileStore(db),
        policy=RegistryPolicy.from_settings(settings),
    )


def get_registry(event_id: str, db: Session = Depends(get_db)) -> AttendeeRegistry:
    return build_registry(db, event_id)
