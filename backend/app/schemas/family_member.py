"""Pydantic schemas for family profiles."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from app.models.attendee import AgeGroup


class FamilyMemberCreate(BaseModel):
    name: str
    age_group: Optional[AgeGroup] = None
    is_default_member: bool = False


class FamilyMemberUpdate(BaseModel):
    name: Optional[str] = None
    age_group: Optional[AgeGroup] = None
    is_default_member: Optional[bool] = None


class FamilyMemberOut(BaseModel):
    family_member_id: str
    user_id: str
    name: str
    age_group: Optional[AgeGroup] = None
    is_default_member: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
