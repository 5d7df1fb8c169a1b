from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from ...core.timeutils import utcnow


class TokenCodec:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def encode(self, data: Dict[str, Any], expires_in: timedelta, token_type: str) -> str:
        to_encode = data.copy()
        now = utcnow()
        to_encode.update({"iat": now, "exp": now + expires_in, "type": token_type})
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def decode(self, token: str, token_type: str) -> Optional[Dict[str, Any]]:
        """Decode and verify a token of the given type; None if invalid or expired."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            return None
        if payload.get("type") != token_type:
            return None
        return payload
