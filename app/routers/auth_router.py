import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..dependencies import AuthServices, get_auth_services
from ..schemas import (
    SendOTPRequest, SendOTPResponse, VerifyOTPRequest, VerifyOTPResponse, SessionPayload,
    SessionStatusResponse, LogoutResponse, EmailOTPRequest, EmailOTPVerifyRequest, EmailOTPVerifyResponse,
    ErrorResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)

oauth2_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> str:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    return credentials.credentials


@router.post("/otp/send", response_model=SendOTPResponse)
async def send_otp(body: SendOTPRequest, services: AuthServices = Depends(get_auth_services)):
    issued = await services.issuance.issue(body.identifier)
    return SendOTPResponse(expires_in=issued.expires_in)


@router.post("/otp/verify", response_model=VerifyOTPResponse)
async def verify_otp(body: VerifyOTPRequest, services: AuthServices = Depends(get_auth_services)):
    result = await services.verification.verify(body.identifier, body.code)
    return VerifyOTPResponse(
        identity_id=result.identity_id,
        is_new_identity=result.is_new_identity,
        profile_complete=result.profile_complete,
        session=SessionPayload(
            access_token=result.session.access_token,
            refresh_token=result.session.refresh_token,
        ),
    )


@router.get("/session", response_model=SessionStatusResponse)
async def get_session_status(token: str = Depends(get_bearer_token), services: AuthServices = Depends(get_auth_services)):
    identity_id = await services.sessions.validate(token)
    if identity_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return SessionStatusResponse(identity_id=identity_id)


@router.post("/logout", response_model=LogoutResponse)
async def logout(token: str = Depends(get_bearer_token), services: AuthServices = Depends(get_auth_services)):
    await services.sessions.invalidate(token)
    return LogoutResponse()


@router.post("/email-otp/send", response_model=SendOTPResponse)
async def send_email_otp(body: EmailOTPRequest, services: AuthServices = Depends(get_auth_services)):
    issued = await services.contact.issue(body.email)
    return SendOTPResponse(expires_in=issued.expires_in)


@router.post("/email-otp/verify", response_model=EmailOTPVerifyResponse)
async def verify_email_otp(body: EmailOTPVerifyRequest, services: AuthServices = Depends(get_auth_services)):
    email = await services.contact.verify(body.email, body.code)
    return EmailOTPVerifyResponse(email=email)
