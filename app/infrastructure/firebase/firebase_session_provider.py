import logging
from typing import Optional

import aiohttp
from firebase_admin import auth as fb_auth
from starlette.concurrency import run_in_threadpool

from ...application.errors import MintFailure
from ...application.ports.session_provider import SessionProvider, SessionTokens

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithCustomToken"


class FirebaseSessionProvider(SessionProvider):
    """Sessions issued by Firebase Auth: a custom token is exchanged for an ID/refresh token pair."""

    def __init__(self, api_key: str, app=None, auth=fb_auth, http_session_factory=aiohttp.ClientSession, timeout: float = 10.0):
        self.api_key = api_key
        self.app = app
        self.auth = auth
        self.http_session_factory = http_session_factory
        self.timeout = timeout

    async def mint_bootstrap_credential(self, identity_id: str, login_key: str) -> str:
        token = await run_in_threadpool(self.auth.create_custom_token, identity_id, app=self.app)
        return token.decode() if isinstance(token, bytes) else token

    async def redeem(self, credential: str) -> SessionTokens:
        if not self.api_key:
            raise MintFailure("Firebase web API key not configured")
        async with self.http_session_factory(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={"token": credential, "returnSecureToken": True},
            ) as response:
                data = await response.json()
                if response.status != 200:
                    message = (data.get("error") or {}).get("message", "unknown error")
                    logger.error(f"Custom token sign-in rejected ({response.status}): {message}")
                    raise MintFailure()
        return SessionTokens(access_token=data["idToken"], refresh_token=data["refreshToken"])

    async def invalidate(self, access_token: str) -> None:
        uid = await self._verified_uid(access_token, check_revoked=False)
        if uid is None:
            return
        await run_in_threadpool(self.auth.revoke_refresh_tokens, uid, app=self.app)
        logger.info(f"Refresh tokens revoked for {uid}")

    async def validate(self, access_token: str) -> Optional[str]:
        return await self._verified_uid(access_token, check_revoked=True)

    async def _verified_uid(self, access_token: str, check_revoked: bool) -> Optional[str]:
        try:
            claims = await run_in_threadpool(
                self.auth.verify_id_token, access_token, app=self.app, check_revoked=check_revoked
            )
        except (ValueError, self.auth.UserDisabledError) as e:
            logger.info(f"ID token rejected: {e}")
            return None
        return claims.get("uid") or claims.get("sub")
