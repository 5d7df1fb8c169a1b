from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str


class SessionProvider(Protocol):
    async def mint_bootstrap_credential(self, identity_id: str, login_key: str) -> str:
        ...

    async def redeem(self, credential: str) -> SessionTokens:
        ...

    async def invalidate(self, access_token: str) -> None:
        ...

    async def validate(self, access_token: str) -> Optional[str]:
        """Identity id owning a live session, or None."""
        ...
