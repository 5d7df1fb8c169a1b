import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ...core.timeutils import utcnow
from ..calls import bounded
from ..errors import AuthError, DispatchFailure, StoreFailure
from ..identifiers import generate_code, validate_phone
from ..ports.audit_logger import AuditLogger
from ..ports.dispatch_channel import DispatchChannel
from ..ports.otp_store import OTPRecordDto, OTPStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedOTP:
    identifier: str
    expires_at: datetime
    expires_in: int


@dataclass
class OTPIssuanceService:
    store: OTPStore
    channel: DispatchChannel
    audit: Optional[AuditLogger] = None
    purpose: str = "login"
    code_length: int = 6
    expiry_minutes: int = 10
    timeout_seconds: float = 10.0
    validate: Callable[[str], str] = validate_phone
    clock: Callable[[], datetime] = utcnow

    async def issue(self, identifier: str) -> IssuedOTP:
        identifier = self.validate(identifier)

        now = self.clock()
        record = OTPRecordDto(
            id=str(uuid.uuid4()),
            identifier=identifier,
            code=generate_code(self.code_length),
            purpose=self.purpose,
            issued_at=now,
            expires_at=now + timedelta(minutes=self.expiry_minutes),
        )

        try:
            # Replacing supersedes whatever code was live, including one whose dispatch failed
            await bounded(self.store.replace_active(record), self.timeout_seconds, StoreFailure, "OTP store write")
            await bounded(self.channel.send(identifier, record.code), self.timeout_seconds, DispatchFailure, "OTP dispatch")
        except AuthError as e:
            self._audit("otp_issue_failed", identifier, success=False, details={"error": e.code})
            raise

        self._audit("otp_issued", identifier, details={"purpose": self.purpose, "otp_id": record.id})
        return IssuedOTP(identifier=identifier, expires_at=record.expires_at, expires_in=self.expiry_minutes * 60)

    def _audit(self, action: str, identifier: str, success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, identifier, success=success, details=details)
