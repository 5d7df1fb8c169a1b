import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientSession:
    access_token: str
    refresh_token: str
    identity_id: str
    is_new_identity: bool = False
    profile_complete: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientSession":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            identity_id=data["identity_id"],
            is_new_identity=bool(data.get("is_new_identity", False)),
            profile_complete=bool(data.get("profile_complete", False)),
        )


class SessionStorage(Protocol):
    def load(self) -> Optional[ClientSession]:
        ...

    def save(self, session: ClientSession) -> None:
        ...

    def clear(self) -> None:
        ...


class MemorySessionStorage(SessionStorage):
    def __init__(self, session: Optional[ClientSession] = None) -> None:
        self._session = session

    def load(self) -> Optional[ClientSession]:
        return self._session

    def save(self, session: ClientSession) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStorage(SessionStorage):
    """Persist the session as a small JSON file readable only by the owner."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Optional[ClientSession]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return ClientSession.from_dict(json.load(f))
        except (ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def save(self, session: ClientSession) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
