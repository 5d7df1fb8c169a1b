# app/db/models/users/identity.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
from ....core.timeutils import utcnow
import uuid

class Identity(SQLModel, table=True):
    __tablename__ = "identities"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    identifier: str = Field(max_length=64, unique=True, index=True)
    phone: Optional[str] = Field(max_length=20, default=None, index=True)
    disambiguated_from: Optional[str] = Field(max_length=20, default=None)
    created_at: datetime = Field(default_factory=utcnow)
