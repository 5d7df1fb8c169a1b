from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


class IdentityAlreadyExists(Exception):
    """The store refuses to bind an identifier that is already taken."""


@dataclass
class IdentityRecord:
    id: str
    identifier: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class IdentityPage:
    identities: List[IdentityRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None


class IdentityStore(Protocol):
    async def list_page(self, cursor: Optional[str], page_size: int) -> IdentityPage:
        """Read one page; ``cursor`` None means the first page."""
        ...

    async def create(self, identifier: str, attrs: Dict[str, Any]) -> IdentityRecord:
        ...
