# Models package (re-export feature modules for stable imports)
from .auth.otp import OTPRecord
from .users.identity import Identity
from .users.profile import Profile
from .users.session import UserSession

__all__ = [
    "OTPRecord",
    "Identity",
    "Profile",
    "UserSession",
]
