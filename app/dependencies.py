import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from .core.config import Settings, settings
from .database import engine
from .application.identifiers import validate_email
from .application.ports.otp_store import OTPStore
from .application.ports.session_provider import SessionProvider
from .application.services.contact_verification_service import ContactVerificationService
from .application.services.identity_resolver import IdentityResolver
from .application.services.issuance_service import OTPIssuanceService
from .application.services.session_minter import SessionMinter
from .application.services.verification_service import OTPVerificationService
from .infrastructure.audit.std_logger import StdAuditLogger

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    issuance: OTPIssuanceService
    verification: OTPVerificationService
    contact: ContactVerificationService
    sessions: SessionProvider
    store: OTPStore


def build_otp_store(cfg: Settings) -> OTPStore:
    if cfg.OTP_STORE == "redis":
        from .infrastructure.otp.redis_otp_store import RedisOTPStore

        if not cfg.REDIS_URL:
            raise RuntimeError("OTP_STORE=redis requires REDIS_URL")
        return RedisOTPStore.from_url(cfg.REDIS_URL, prefix=cfg.REDIS_OTP_PREFIX, retention_minutes=cfg.OTP_RETENTION_MINUTES)

    from .infrastructure.otp.sql_otp_store import SqlOTPStore

    return SqlOTPStore(engine)


def build_identity_backend(cfg: Settings):
    """Identity store, profile repository and session provider for the configured backend."""
    from .infrastructure.persistence.sqlalchemy.repositories.profile_repository_sql import SqlProfileRepository

    profiles = SqlProfileRepository(engine)

    if cfg.IDENTITY_BACKEND == "firebase":
        from .infrastructure.firebase.app import get_firebase_app
        from .infrastructure.firebase.firebase_identity_store import FirebaseIdentityStore
        from .infrastructure.firebase.firebase_session_provider import FirebaseSessionProvider

        fb_app = get_firebase_app()
        identities = FirebaseIdentityStore(app=fb_app, domain=cfg.PHONE_LOGIN_EMAIL_DOMAIN)
        sessions = FirebaseSessionProvider(cfg.FIREBASE_WEB_API_KEY, app=fb_app, timeout=cfg.EXTERNAL_CALL_TIMEOUT_SECONDS)
        return identities, profiles, sessions

    from .infrastructure.persistence.sqlalchemy.repositories.identity_repository_sql import SqlIdentityStore
    from .infrastructure.sessions.jwt_session_provider import JwtSessionProvider
    from .infrastructure.sessions.tokens import TokenCodec

    if cfg.SECRET_KEY == "change-me-in-prod":
        logger.warning("JWT_SECRET_KEY is not set; sessions are signed with the default key")
    sessions = JwtSessionProvider(
        engine,
        TokenCodec(cfg.SECRET_KEY, cfg.ALGORITHM),
        access_expires=timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_expires=timedelta(days=cfg.REFRESH_TOKEN_EXPIRE_DAYS),
        bootstrap_expires=timedelta(seconds=cfg.BOOTSTRAP_TOKEN_EXPIRE_SECONDS),
    )
    return SqlIdentityStore(engine), profiles, sessions


def build_auth_services(cfg: Settings) -> AuthServices:
    from .infrastructure.otp.email_channel import EmailChannel
    from .infrastructure.otp.twilio_sms_channel import TwilioSmsChannel

    timeout = cfg.EXTERNAL_CALL_TIMEOUT_SECONDS
    audit = StdAuditLogger()
    store = build_otp_store(cfg)
    identities, profiles, sessions = build_identity_backend(cfg)

    issuance = OTPIssuanceService(
        store=store,
        channel=TwilioSmsChannel(expiry_minutes=cfg.OTP_EXPIRY_MINUTES, timeout=timeout),
        audit=audit,
        code_length=cfg.OTP_LENGTH,
        expiry_minutes=cfg.OTP_EXPIRY_MINUTES,
        timeout_seconds=timeout,
    )
    resolver = IdentityResolver(
        identities=identities,
        profiles=profiles,
        page_size=cfg.IDENTITY_PAGE_SIZE,
        recovery_extra_pages=cfg.IDENTITY_RECOVERY_EXTRA_PAGES,
        timeout_seconds=timeout,
    )
    verification = OTPVerificationService(
        store=store,
        resolver=resolver,
        minter=SessionMinter(sessions, timeout_seconds=timeout),
        audit=audit,
        timeout_seconds=timeout,
    )
    email_issuance = OTPIssuanceService(
        store=store,
        channel=EmailChannel(
            port=cfg.SMTP_PORT,
            use_tls=cfg.SMTP_USE_TLS,
            expiry_minutes=cfg.OTP_EXPIRY_MINUTES,
        ),
        audit=audit,
        purpose="contact",
        code_length=cfg.OTP_LENGTH,
        expiry_minutes=cfg.OTP_EXPIRY_MINUTES,
        timeout_seconds=timeout,
        validate=validate_email,
    )
    contact = ContactVerificationService(issuer=email_issuance, store=store, audit=audit, timeout_seconds=timeout)
    return AuthServices(issuance=issuance, verification=verification, contact=contact, sessions=sessions, store=store)


@lru_cache()
def get_auth_services() -> AuthServices:
    return build_auth_services(settings)
