# app/db/models/auth/otp.py
from sqlmodel import SQLModel, Field
from datetime import datetime
from ....core.timeutils import utcnow

class OTPRecord(SQLModel, table=True):
    __tablename__ = "otp_records"
    # "<purpose>:<identifier>"; one row per slot, overwritten by every issuance
    slot: str = Field(max_length=280, primary_key=True)
    id: str = Field(max_length=36, index=True)
    identifier: str = Field(max_length=255, index=True)
    purpose: str = Field(max_length=20, default="login")
    code: str = Field(max_length=10)
    consumed: bool = Field(default=False)
    issued_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(index=True)
