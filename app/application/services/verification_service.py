import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ...core.timeutils import utcnow
from ..calls import bounded
from ..errors import AuthError, OTPExpired, OTPMismatch, OTPNotFound, ResolutionFailure, SessionFailure, StoreFailure
from ..identifiers import validate_phone
from ..ports.audit_logger import AuditLogger
from ..ports.otp_store import OTPRecordDto, OTPStore
from ..ports.session_provider import SessionTokens
from .identity_resolver import IdentityResolver
from .session_minter import SessionMinter

logger = logging.getLogger(__name__)


async def consume_otp(store: OTPStore, identifier: str, code: str, purpose: str, now: datetime, timeout: float) -> OTPRecordDto:
    """Check ``code`` against the live record for ``identifier`` and consume it.

    Raises OTPNotFound when there is no live record (or another caller consumed
    it first), OTPExpired past ``expires_at`` and OTPMismatch on a wrong code.
    A mismatch leaves the record usable.
    """
    record = await bounded(store.latest_unconsumed(identifier, purpose), timeout, StoreFailure, "OTP lookup")
    if record is None:
        raise OTPNotFound()

    if record.is_expired(now):
        raise OTPExpired()

    if not hmac.compare_digest(record.code.encode(), (code or "").encode()):
        raise OTPMismatch()

    consumed = await bounded(store.consume(record), timeout, StoreFailure, "OTP consume")
    if not consumed:
        logger.info(f"OTP {record.id} was consumed or replaced concurrently")
        raise OTPNotFound("OTP already used. Please request a new OTP.")
    return record.as_consumed()


@dataclass(frozen=True)
class VerificationResult:
    identity_id: str
    session: SessionTokens
    is_new_identity: bool
    profile_complete: bool = False


@dataclass
class OTPVerificationService:
    store: OTPStore
    resolver: IdentityResolver
    minter: SessionMinter
    audit: Optional[AuditLogger] = None
    purpose: str = "login"
    timeout_seconds: float = 10.0
    validate: Callable[[str], str] = validate_phone
    clock: Callable[[], datetime] = utcnow

    async def verify(self, identifier: str, code: str) -> VerificationResult:
        identifier = self.validate(identifier)
        try:
            await consume_otp(self.store, identifier, code, self.purpose, self.clock(), self.timeout_seconds)
        except AuthError as e:
            self._audit("otp_verify_failed", identifier, success=False, details={"error": e.code})
            raise

        # From here on the code is spent: a retry needs a fresh OTP
        try:
            resolution = await self.resolver.resolve(identifier)
        except ResolutionFailure as e:
            self._audit("identity_resolution_failed", identifier, success=False, details={"error": e.code})
            raise
        except AuthError as e:
            self._audit("identity_resolution_failed", identifier, success=False, details={"error": e.code})
            raise ResolutionFailure() from e

        try:
            tokens = await self.minter.mint(resolution)
        except SessionFailure as e:
            self._audit("session_mint_failed", identifier, resolution.identity_id, success=False, details={"error": e.code})
            raise

        self._audit(
            "otp_verified",
            identifier,
            resolution.identity_id,
            details={"is_new_identity": resolution.is_new_identity},
        )
        return VerificationResult(
            identity_id=resolution.identity_id,
            session=tokens,
            is_new_identity=resolution.is_new_identity,
            profile_complete=resolution.profile_complete,
        )

    def _audit(self, action: str, identifier: str, identity_id: Optional[str] = None, success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, identifier, identity_id=identity_id, success=success, details=details)
