"""Client-side owner of the signed-in state.

One ``ClientSessionManager`` holds the current session and its state
(anonymous, restoring, authenticated) and pushes every change to the listeners
registered with ``subscribe``, so UI code never polls. Sign-in and sign-out
always win over a restore that is still in flight.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from ..application.errors import AuthError, ErrorCategory
from .events import SessionChange, SessionEvent, SessionEvents
from .storage import ClientSession, SessionStorage
from .transport import AuthApi

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"


USER_MESSAGES = {
    ErrorCategory.RETRY_WITH_NEW_CODE: "That code didn't work. Please request a new code and try again.",
    ErrorCategory.TRY_AGAIN_LATER: "Something went wrong on our side. Please try again in a moment.",
    ErrorCategory.CONTACT_SUPPORT: "We couldn't set up your account. Please contact support.",
}


class AuthFlowError(Exception):
    """A failure as the user sees it: a category and a message safe to display."""

    def __init__(self, category: ErrorCategory, message: str):
        self.category = category
        self.message = message
        super().__init__(message)

    @classmethod
    def from_auth_error(cls, error: AuthError) -> "AuthFlowError":
        category = error.category
        # retry-class messages are written for users; the rest may carry internals
        if category == ErrorCategory.RETRY_WITH_NEW_CODE:
            return cls(category, error.message)
        return cls(category, USER_MESSAGES[category])


StateListener = Callable[[SessionState, Optional[ClientSession]], None]


class ClientSessionManager:
    def __init__(self, api: AuthApi, storage: SessionStorage, events: Optional[SessionEvents] = None):
        self.api = api
        self.storage = storage
        self.events = events or SessionEvents()
        self._state = SessionState.ANONYMOUS
        self._session: Optional[ClientSession] = None
        self._listeners: List[StateListener] = []
        self._restore_task: Optional[asyncio.Task] = None
        # bumped by every sign-in, sign-out and pushed change; a restore started
        # under an older generation must not overwrite the newer state
        self._generation = 0
        self._unsubscribe_events = self.events.subscribe(self._on_session_change)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[ClientSession]:
        return self._session

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(state, session)``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> Optional[asyncio.Task]:
        """Begin restoring a persisted session in the background.

        Only an anonymous manager restores; otherwise the running restore (if any) is returned.
        """
        if self._restore_task is not None and not self._restore_task.done():
            return self._restore_task
        if self._state != SessionState.ANONYMOUS:
            return None
        self._set_state(SessionState.RESTORING, None)
        self._restore_task = asyncio.create_task(self._restore(self._generation))
        return self._restore_task

    async def issue(self, identifier: str) -> int:
        try:
            return await self.api.issue(identifier)
        except AuthError as e:
            logger.info(f"OTP request failed: {e.code}")
            raise AuthFlowError.from_auth_error(e) from e
        except Exception as e:
            logger.error(f"OTP request failed unexpectedly: {e}")
            raise AuthFlowError.from_auth_error(AuthError()) from e

    async def verify(self, identifier: str, code: str) -> ClientSession:
        try:
            session = await self.api.verify(identifier, code)
        except AuthError as e:
            logger.info(f"OTP verification failed: {e.code}")
            raise AuthFlowError.from_auth_error(e) from e
        except Exception as e:
            logger.error(f"OTP verification failed unexpectedly: {e}")
            raise AuthFlowError.from_auth_error(AuthError()) from e
        self._adopt(session)
        return session

    async def sign_out(self) -> None:
        session = self._session
        self._generation += 1
        self.storage.clear()
        try:
            if session is not None:
                await self.api.invalidate(session.access_token)
        except AuthError as e:
            logger.warning(f"Remote sign-out failed, local session cleared anyway: {e.code}")
        except Exception as e:
            logger.error(f"Remote sign-out failed unexpectedly, local session cleared anyway: {e}")
        finally:
            self._set_state(SessionState.ANONYMOUS, None)

    async def check_session(self) -> SessionState:
        """Re-validate the current session against the backend."""
        if self._session is None:
            return self._state
        token = self._session.access_token
        try:
            identity_id = await self.api.validate(token)
        except AuthError as e:
            logger.warning(f"Session check failed: {e.code}")
            return self._state
        except Exception as e:
            logger.error(f"Session check failed unexpectedly: {e}")
            return self._state
        if identity_id is None and self._session is not None and self._session.access_token == token:
            self._drop_session()
        return self._state

    def close(self) -> None:
        self._unsubscribe_events()
        if self._restore_task is not None and not self._restore_task.done():
            self._restore_task.cancel()

    async def _restore(self, generation: int) -> None:
        stored = self.storage.load()
        identity_id = None
        if stored is not None:
            try:
                identity_id = await self.api.validate(stored.access_token)
            except Exception as e:
                # restoring always settles; an unreachable backend leaves the user signed out
                logger.warning(f"Session restore failed: {getattr(e, 'code', e)}")
                if generation == self._generation:
                    self._set_state(SessionState.ANONYMOUS, None)
                return

        if generation != self._generation:
            logger.info("Session restore superseded by a newer sign-in or sign-out")
            return

        if stored is not None and identity_id is not None:
            self._set_state(SessionState.AUTHENTICATED, stored)
        else:
            if stored is not None:
                self.storage.clear()
            self._set_state(SessionState.ANONYMOUS, None)

    def _adopt(self, session: ClientSession) -> None:
        self._generation += 1
        self.storage.save(session)
        self._set_state(SessionState.AUTHENTICATED, session)

    def _drop_session(self) -> None:
        self._generation += 1
        self.storage.clear()
        self._set_state(SessionState.ANONYMOUS, None)

    def _on_session_change(self, change: SessionChange) -> None:
        if change.event in (SessionEvent.SIGNED_IN, SessionEvent.TOKEN_REFRESHED):
            if change.session is not None:
                self._adopt(change.session)
            return

        # expiry or revocation: only act on the session we actually hold
        if self._session is None:
            return
        if change.access_token is not None and change.access_token != self._session.access_token:
            return
        logger.info(f"Session ended by {change.event.value} notice")
        self._drop_session()

    def _set_state(self, state: SessionState, session: Optional[ClientSession]) -> None:
        if state == self._state and session == self._session:
            return
        self._state = state
        self._session = session
        for listener in list(self._listeners):
            listener(state, session)
