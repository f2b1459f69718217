"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str
    start_at: datetime
    max_attendees: Optional[int] = Field(default=None, ge=0)
    waitlist_enabled: bool = False
    waitlist_limit: Optional[int] = Field(default=None, ge=0)


class EventUpdate(BaseModel):
    title: Optional[str] = None
    start_at: Optional[datetime] = None
    max_attendees: Optional[int] = Field(default=None, ge=0)
    waitlist_enabled: Optional[bool] = None
    waitlist_limit: Optional[int] = Field(default=None, ge=0)
    version: int  # required for optimistic locking


class EventOut(BaseModel):
    event_id: str
    title: str
    start_at: datetime
    max_attendees: Optional[int] = None
    waitlist_enabled: bool
    waitlist_limit: Optional[int] = None
    going_count: int
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
