"""Pydantic models for domains and member profiles."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DomainRead(BaseModel):
    id: int
    code: str
    name: str
    color: Optional[str] = None
    description: Optional[str] = None


class PrimaryRole(BaseModel):
    position: str
    domain_id: Optional[int] = None


class MemberRole(BaseModel):
    position: str
    domain_id: Optional[int] = None
    is_active: bool = True
    start_date: Optional[datetime] = None


class MemberRead(BaseModel):
    """A member profile as listed in the admin console."""

    id: int
    user_id: int
    display_name: str
    primary_role: Optional[PrimaryRole] = None
    roles: List[MemberRole] = Field(default_factory=list)
