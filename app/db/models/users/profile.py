# app/db/models/users/profile.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
from ....core.timeutils import utcnow

class Profile(SQLModel, table=True):
    __tablename__ = "profiles"
    identity_id: str = Field(foreign_key="identities.id", primary_key=True)
    phone: Optional[str] = Field(max_length=20, default=None)
    first_name: Optional[str] = Field(max_length=100, default=None)
    last_name: Optional[str] = Field(max_length=100, default=None)
    email: Optional[str] = Field(max_length=100, default=None)
    country: Optional[str] = Field(max_length=100, default=None)
    is_verified: bool = Field(default=False)
    verification_date: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
