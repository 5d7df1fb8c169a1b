# app/schemas/auth/auth.py
from pydantic import BaseModel, Field, validator
from typing import Optional


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class SendOTPRequest(BaseModel):
    identifier: str = Field(..., description="Phone number in E.164 format, e.g. +15551234567")

    @validator('identifier')
    def strip_identifier(cls, v):
        return _strip(v)


class SendOTPResponse(BaseModel):
    ok: bool = True
    expires_in: int


class VerifyOTPRequest(BaseModel):
    identifier: str = Field(..., description="Phone number the OTP was sent to")
    code: str = Field(..., description="OTP received by SMS")

    @validator('identifier', 'code')
    def strip_fields(cls, v):
        return _strip(v)


class SessionPayload(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class VerifyOTPResponse(BaseModel):
    ok: bool = True
    identity_id: str
    is_new_identity: bool
    profile_complete: bool = False
    session: SessionPayload


class SessionStatusResponse(BaseModel):
    ok: bool = True
    identity_id: str


class LogoutResponse(BaseModel):
    ok: bool = True


class EmailOTPRequest(BaseModel):
    email: str = Field(..., description="Email address to verify")

    @validator('email')
    def strip_email(cls, v):
        return _strip(v)


class EmailOTPVerifyRequest(BaseModel):
    email: str
    code: str = Field(..., description="OTP received by email")

    @validator('email', 'code')
    def strip_fields(cls, v):
        return _strip(v)


class EmailOTPVerifyResponse(BaseModel):
    ok: bool = True
    email: str
    verified: bool = True
