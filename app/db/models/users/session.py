# app/db/models/users/session.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from ....core.timeutils import utcnow
import uuid

class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    identity_id: str = Field(index=True)
    token: str = Field(max_length=1000)
    refresh_token: str = Field(max_length=1000)
    # id of the bootstrap credential this session was redeemed from; unique so it redeems once
    grant_id: str = Field(max_length=64, unique=True)
    revoked: bool = Field(default=False)
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
