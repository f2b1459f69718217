"""Attendee ORM model: one RSVP slot for one event."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum as SAEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class RSVPStatus(str, enum.Enum):
    going = "going"
    not_going = "not-going"
    pending = "pending"
    waitlisted = "waitlisted"


class AttendeeType(str, enum.Enum):
    primary = "primary"
    family_member = "family_member"


class Relationship(str, enum.Enum):
    self_ = "self"
    spouse = "spouse"
    child = "child"
    guest = "guest"


class AgeGroup(str, enum.Enum):
    infant = "0-2"
    preschool = "3-5"
    child = "6-10"
    preteen = "11+"
    teen = "teen"
    adult = "adult"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Attendee(Base):
    __tablename__ = "attendees"
    __table_args__ = (
        # One primary per (event, user); NULL user ids (imports) never collide.
        Index(
            "uq_attendees_primary_per_user",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("attendee_type = 'primary'"),
            postgresql_where=text("attendee_type = 'primary'"),
        ),
        Index("ix_attendees_event_status", "event_id", "rsvp_status"),
    )

    attendee_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id"), nullable=False)
    user_id = Column(String(36), nullable=True)
    attendee_type = Column(SAEnum(AttendeeType, values_callable=_values), nullable=False)
    relationship_ = Column(
        "relationship",
        SAEnum(Relationship, values_callable=_values),
        nullable=False,
        default=Relationship.self_,
    )
    name = Column(String(100), nullable=False)
    age_group = Column(SAEnum(AgeGroup, values_callable=_values), nullable=False, default=AgeGroup.adult)
    family_member_id = Column(String(36), nullable=True)
    rsvp_status = Column(SAEnum(RSVPStatus, values_callable=_values), nullable=False, default=RSVPStatus.pending)
    waitlist_joined_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="attendees")

    @property
    def is_primary(self) -> bool:
        return self.attendee_type == AttendeeType.primary

    def __repr__(self) -> str:
        return f"<Attendee {self.attendee_id} {self.attendee_type.value}:{self.rsvp_status.value}>"
