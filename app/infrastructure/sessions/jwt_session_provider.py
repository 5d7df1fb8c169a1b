import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from ...core.timeutils import utcnow
from ...application.errors import MintFailure
from ...application.ports.session_provider import SessionProvider, SessionTokens
from ..persistence.sqlalchemy.repositories.session_repository_sql import SqlSessionRepository
from .tokens import TokenCodec

logger = logging.getLogger(__name__)


class JwtSessionProvider(SessionProvider):
    """Self-hosted sessions: signed JWTs backed by a ``user_sessions`` row.

    A bootstrap credential is a short-lived JWT whose ``jti`` becomes the
    session's ``grant_id``; the unique constraint on that column is what makes
    the credential redeemable once.
    """

    def __init__(
        self,
        engine,
        codec: TokenCodec,
        access_expires: timedelta = timedelta(minutes=60),
        refresh_expires: timedelta = timedelta(days=30),
        bootstrap_expires: timedelta = timedelta(seconds=60),
    ):
        self.engine = engine
        self.codec = codec
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self.bootstrap_expires = bootstrap_expires

    async def mint_bootstrap_credential(self, identity_id: str, login_key: str) -> str:
        return self.codec.encode(
            {"sub": identity_id, "login": login_key, "jti": uuid.uuid4().hex},
            self.bootstrap_expires,
            "bootstrap",
        )

    async def redeem(self, credential: str) -> SessionTokens:
        claims = self.codec.decode(credential, "bootstrap")
        if claims is None:
            raise MintFailure("Bootstrap credential invalid or expired")
        return await run_in_threadpool(self._open_session, claims["sub"], claims["jti"])

    async def invalidate(self, access_token: str) -> None:
        claims = self.codec.decode(access_token, "access")
        if claims is None:
            return
        await run_in_threadpool(self._revoke, claims["sid"])

    async def validate(self, access_token: str) -> Optional[str]:
        claims = self.codec.decode(access_token, "access")
        if claims is None:
            return None
        return await run_in_threadpool(self._live_identity, claims["sid"], claims["sub"])

    def _open_session(self, identity_id: str, grant_id: str) -> SessionTokens:
        session_id = str(uuid.uuid4())
        claims = {"sub": identity_id, "sid": session_id}
        access_token = self.codec.encode(claims, self.access_expires, "access")
        refresh_token = self.codec.encode(claims, self.refresh_expires, "refresh")
        with Session(self.engine) as session:
            repo = SqlSessionRepository(session)
            try:
                repo.create(
                    session_id=session_id,
                    identity_id=identity_id,
                    token=access_token,
                    refresh_token=refresh_token,
                    grant_id=grant_id,
                    expires_at=utcnow() + self.refresh_expires,
                )
            except IntegrityError as e:
                session.rollback()
                raise MintFailure("Bootstrap credential already redeemed") from e
        logger.info(f"Session {session_id} opened for identity {identity_id}")
        return SessionTokens(access_token=access_token, refresh_token=refresh_token)

    def _revoke(self, session_id: str) -> None:
        with Session(self.engine) as session:
            SqlSessionRepository(session).revoke(session_id)
        logger.info(f"Session {session_id} revoked")

    def _live_identity(self, session_id: str, identity_id: str) -> Optional[str]:
        with Session(self.engine) as session:
            record = SqlSessionRepository(session).get(session_id)
        if record is None or record.revoked or record.expires_at < utcnow():
            return None
        if record.identity_id != identity_id:
            return None
        return record.identity_id
