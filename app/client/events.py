import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .storage import ClientSession

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "signed_in"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_EXPIRED = "token_expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class SessionChange:
    event: SessionEvent
    # token the notice is about; None means "whatever session is current"
    access_token: Optional[str] = None
    session: Optional[ClientSession] = None


Listener = Callable[[SessionChange], None]


class SessionEvents:
    """Session change notices pushed by transports (expiry, external revocation, refresh)."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SessionEvent, access_token: Optional[str] = None, session: Optional[ClientSession] = None) -> None:
        change = SessionChange(event=event, access_token=access_token, session=session)
        logger.debug(f"Session event: {event.value}")
        for listener in list(self._listeners):
            listener(change)
