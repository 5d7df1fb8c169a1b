import hashlib
import re
import secrets
import string

from .errors import InvalidIdentifier

PHONE_PATTERN = re.compile(r'^\+\d{10,15}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_phone(identifier: str) -> str:
    """Basic E.164 shape check: a leading '+' followed by 10-15 digits."""
    if not isinstance(identifier, str) or not PHONE_PATTERN.match(identifier):
        raise InvalidIdentifier()
    return identifier


def validate_email(identifier: str) -> str:
    if not isinstance(identifier, str):
        raise InvalidIdentifier("Invalid email format")
    email = identifier.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise InvalidIdentifier("Invalid email format")
    return email


def generate_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP of the given length."""
    return ''.join(secrets.choice(string.digits) for _ in range(length))


def disambiguate(identifier: str) -> str:
    """Derive a unique login key variant for an identifier the store reports as taken."""
    return f"{identifier}-{secrets.token_hex(4)}"


def hash_identifier(identifier: str) -> str:
    """One-way hash used wherever an identifier ends up in logs."""
    return hashlib.sha256(identifier.encode()).hexdigest()


def login_email_for(identifier: str, domain: str = "phone.user") -> str:
    """Synthetic email login key for phone identities, e.g. 15551234567@phone.user."""
    return f"{identifier.replace('+', '')}@{domain}"
