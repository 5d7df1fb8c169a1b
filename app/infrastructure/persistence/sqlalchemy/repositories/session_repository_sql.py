from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from .....core.timeutils import as_utc
from .....db.models import UserSession
from .....application.ports.session_repo import SessionRepository, SessionDto


class SqlSessionRepository(SessionRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, rec: UserSession) -> SessionDto:
        return SessionDto(
            id=rec.id,
            identity_id=rec.identity_id,
            token=rec.token,
            refresh_token=rec.refresh_token,
            grant_id=rec.grant_id,
            revoked=bool(rec.revoked),
            expires_at=as_utc(rec.expires_at),
            created_at=as_utc(rec.created_at),
        )

    def create(self, session_id: str, identity_id: str, token: str, refresh_token: str, grant_id: str, expires_at: datetime) -> SessionDto:
        rec = UserSession(
            id=session_id,
            identity_id=identity_id,
            token=token,
            refresh_token=refresh_token,
            grant_id=grant_id,
            expires_at=expires_at,
        )
        self.session.add(rec)
        self.session.commit()
        self.session.refresh(rec)
        return self._to_dto(rec)

    def get(self, session_id: str) -> Optional[SessionDto]:
        rec = self.session.exec(select(UserSession).where(UserSession.id == session_id)).first()
        return self._to_dto(rec) if rec else None

    def revoke(self, session_id: str) -> None:
        rec = self.session.exec(select(UserSession).where(UserSession.id == session_id)).first()
        if not rec:
            return
        rec.revoked = True
        self.session.add(rec)
        self.session.commit()
