from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ...core.timeutils import utcnow
from ..errors import AuthError
from ..identifiers import validate_email
from ..ports.audit_logger import AuditLogger
from ..ports.otp_store import OTPStore
from .issuance_service import IssuedOTP, OTPIssuanceService
from .verification_service import consume_otp


@dataclass
class ContactVerificationService:
    """Email ownership check for dealer applications: no identity, no session."""

    issuer: OTPIssuanceService
    store: OTPStore
    audit: Optional[AuditLogger] = None
    timeout_seconds: float = 10.0
    clock: Callable[[], datetime] = utcnow

    async def issue(self, email: str) -> IssuedOTP:
        return await self.issuer.issue(email)

    async def verify(self, email: str, code: str) -> str:
        email = validate_email(email)
        try:
            await consume_otp(self.store, email, code, self.issuer.purpose, self.clock(), self.timeout_seconds)
        except AuthError as e:
            if self.audit is not None:
                self.audit.log("contact_verify_failed", email, success=False, details={"error": e.code})
            raise
        if self.audit is not None:
            self.audit.log("contact_verified", email)
        return email
