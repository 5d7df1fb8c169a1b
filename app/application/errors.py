from enum import Enum
from typing import Dict, Optional, Type


class ErrorCategory(str, Enum):
    """User-visible buckets every auth failure falls into."""

    RETRY_WITH_NEW_CODE = "retry_with_new_code"
    TRY_AGAIN_LATER = "try_again_later"
    CONTACT_SUPPORT = "contact_support"


class AuthError(Exception):
    code = "auth_error"
    status_code = 500
    category = ErrorCategory.TRY_AGAIN_LATER
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidIdentifier(AuthError):
    code = "invalid_identifier"
    status_code = 400
    category = ErrorCategory.RETRY_WITH_NEW_CODE
    default_message = "Invalid phone number format. Must include country code (e.g., +15551234567)"


class DispatchFailure(AuthError):
    code = "dispatch_failure"
    status_code = 502
    default_message = "Failed to send OTP"


class StoreFailure(AuthError):
    code = "store_failure"
    status_code = 503
    default_message = "OTP store unavailable"


class OTPNotFound(AuthError):
    code = "not_found"
    status_code = 400
    category = ErrorCategory.RETRY_WITH_NEW_CODE
    default_message = "No OTP found. Please request a new OTP."


class OTPExpired(AuthError):
    code = "expired"
    status_code = 400
    category = ErrorCategory.RETRY_WITH_NEW_CODE
    default_message = "OTP has expired. Please request a new one."


class OTPMismatch(AuthError):
    code = "mismatch"
    status_code = 400
    category = ErrorCategory.RETRY_WITH_NEW_CODE
    default_message = "Invalid OTP. Please try again."


class ResolutionFailure(AuthError):
    code = "resolution_failure"
    default_message = "Failed to resolve user account"


class RecoveryFailure(ResolutionFailure):
    code = "recovery_failure"
    category = ErrorCategory.CONTACT_SUPPORT
    default_message = "Failed to create user account"


class SessionFailure(AuthError):
    code = "session_failure"
    default_message = "Failed to create session"


class MintFailure(SessionFailure):
    code = "mint_failure"


_ERRORS_BY_CODE: Dict[str, Type[AuthError]] = {
    cls.code: cls
    for cls in (
        InvalidIdentifier,
        DispatchFailure,
        StoreFailure,
        OTPNotFound,
        OTPExpired,
        OTPMismatch,
        ResolutionFailure,
        RecoveryFailure,
        SessionFailure,
        MintFailure,
    )
}


def error_for_code(code: Optional[str], message: Optional[str] = None) -> AuthError:
    """Rebuild a typed error from its wire ``code`` (unknown codes become a plain AuthError)."""
    cls = _ERRORS_BY_CODE.get(code or "", AuthError)
    return cls(message)
