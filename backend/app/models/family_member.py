"""FamilyMember ORM model: reusable, user-owned attendee template."""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from app.database import Base
from app.models.attendee import AgeGroup, _values


class FamilyMember(Base):
    __tablename__ = "family_members"

    family_member_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    age_group = Column(SAEnum(AgeGroup, values_callable=_values), nullable=True)
    is_default_member = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
