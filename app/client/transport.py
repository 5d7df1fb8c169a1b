import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import aiohttp

from ..application.calls import bounded
from ..application.errors import AuthError, SessionFailure, error_for_code
from ..dependencies import AuthServices
from .events import SessionEvent, SessionEvents
from .storage import ClientSession

logger = logging.getLogger(__name__)


class AuthApi(Protocol):
    async def issue(self, identifier: str) -> int:
        """Request an OTP; returns its lifetime in seconds."""
        ...

    async def verify(self, identifier: str, code: str) -> ClientSession:
        ...

    async def validate(self, access_token: str) -> Optional[str]:
        ...

    async def invalidate(self, access_token: str) -> None:
        ...


class LocalAuthApi(AuthApi):
    """Drive the auth services in-process (tests, CLI tools, server-side rendering).

    Every call is bounded by ``timeout``; anything that is not already an
    ``AuthError`` surfaces as one.
    """

    def __init__(self, services: AuthServices, events: Optional[SessionEvents] = None, timeout: float = 15.0):
        self.services = services
        self.events = events
        self.timeout = timeout

    async def issue(self, identifier: str) -> int:
        issued = await bounded(self.services.issuance.issue(identifier), self.timeout, AuthError, "OTP request")
        return issued.expires_in

    async def verify(self, identifier: str, code: str) -> ClientSession:
        result = await bounded(self.services.verification.verify(identifier, code), self.timeout, AuthError, "OTP verification")
        return ClientSession(
            access_token=result.session.access_token,
            refresh_token=result.session.refresh_token,
            identity_id=result.identity_id,
            is_new_identity=result.is_new_identity,
            profile_complete=result.profile_complete,
        )

    async def validate(self, access_token: str) -> Optional[str]:
        identity_id = await bounded(self.services.sessions.validate(access_token), self.timeout, SessionFailure, "Session check")
        if identity_id is None and self.events is not None:
            self.events.emit(SessionEvent.REVOKED, access_token=access_token)
        return identity_id

    async def invalidate(self, access_token: str) -> None:
        await bounded(self.services.sessions.invalidate(access_token), self.timeout, SessionFailure, "Session invalidation")


class HttpAuthApi(AuthApi):
    """Talk to the auth endpoints over HTTP."""

    def __init__(
        self,
        base_url: str,
        events: Optional[SessionEvents] = None,
        timeout: float = 15.0,
        session_factory=aiohttp.ClientSession,
    ):
        self.base_url = base_url.rstrip("/")
        self.events = events
        self.timeout = timeout
        self.session_factory = session_factory

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None, token: Optional[str] = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            async with self.session_factory(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.request(method, f"{self.base_url}{path}", json=json, headers=headers) as response:
                    try:
                        payload = await response.json()
                    except (aiohttp.ContentTypeError, ValueError):
                        payload = {}
                    return response.status, payload
        except asyncio.TimeoutError as e:
            logger.error(f"{method} {path} timed out after {self.timeout}s")
            raise AuthError("Request timed out") from e
        except aiohttp.ClientError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise AuthError("Network error") from e

    @staticmethod
    def _raise_for_payload(payload: Dict[str, Any]) -> None:
        if payload.get("ok"):
            return
        error = payload.get("error") or {}
        raise error_for_code(error.get("code"), error.get("message"))

    async def issue(self, identifier: str) -> int:
        _, payload = await self._request("POST", "/auth/otp/send", json={"identifier": identifier})
        self._raise_for_payload(payload)
        return int(payload.get("expires_in", 0))

    async def verify(self, identifier: str, code: str) -> ClientSession:
        _, payload = await self._request("POST", "/auth/otp/verify", json={"identifier": identifier, "code": code})
        self._raise_for_payload(payload)
        session = payload["session"]
        return ClientSession(
            access_token=session["access_token"],
            refresh_token=session["refresh_token"],
            identity_id=payload["identity_id"],
            is_new_identity=bool(payload.get("is_new_identity")),
            profile_complete=bool(payload.get("profile_complete")),
        )

    async def validate(self, access_token: str) -> Optional[str]:
        status, payload = await self._request("GET", "/auth/session", token=access_token)
        if status == 401:
            if self.events is not None:
                self.events.emit(SessionEvent.TOKEN_EXPIRED, access_token=access_token)
            return None
        self._raise_for_payload(payload)
        return payload.get("identity_id")

    async def invalidate(self, access_token: str) -> None:
        _, payload = await self._request("POST", "/auth/logout", token=access_token)
        self._raise_for_payload(payload)
