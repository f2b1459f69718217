"""AttendeeMutation ORM model: append-only ledger of registry writes."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON, Enum as SAEnum
from sqlalchemy.sql import func
from app.database import Base


class ActionType(str, enum.Enum):
    create = "create"
    status_change = "status_change"
    cascade = "cascade"
    promote = "promote"
    link = "link"
    rename = "rename"
    delete = "delete"


class AttendeeMutation(Base):
    __tablename__ = "attendee_mutations"

    mutation_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    attendee_id = Column(String(36), nullable=False, index=True)
    actor_user_id = Column(String(36), nullable=True)
    action_type = Column(SAEnum(ActionType), nullable=False)
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
