from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class SessionDto:
    id: str
    identity_id: str
    token: str
    refresh_token: str
    grant_id: str
    revoked: bool
    expires_at: datetime
    created_at: datetime


class SessionRepository:
    def create(self, session_id: str, identity_id: str, token: str, refresh_token: str, grant_id: str, expires_at: datetime) -> SessionDto:
        ...

    def get(self, session_id: str) -> Optional[SessionDto]:
        ...

    def revoke(self, session_id: str) -> None:
        ...
