from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class ProfileDto:
    identity_id: str
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    is_verified: bool = False

    @property
    def is_complete(self) -> bool:
        # first name, email and country are the minimum a storefront profile needs
        return all((v or "").strip() for v in (self.first_name, self.email, self.country))


class ProfileRepository(Protocol):
    async def get(self, identity_id: str) -> Optional[ProfileDto]:
        ...

    async def create_stub(self, identity_id: str, phone: str) -> ProfileDto:
        ...
