"""Event ORM model: descriptor consumed by the RSVP engine."""
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Boolean, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("going_count >= 0", name="ck_events_going_count_non_negative"),
    )

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    max_attendees = Column(Integer, nullable=True)
    waitlist_enabled = Column(Boolean, nullable=False, default=False)
    waitlist_limit = Column(Integer, nullable=True)
    # Seat counter; only ever changed through conditional updates.
    going_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    attendees = relationship("Attendee", back_populates="event", cascade="all, delete-orphan")
