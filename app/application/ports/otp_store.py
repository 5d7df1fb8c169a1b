from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Protocol


@dataclass(frozen=True)
class OTPRecordDto:
    id: str
    identifier: str
    code: str
    purpose: str
    issued_at: datetime
    expires_at: datetime
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def as_consumed(self) -> "OTPRecordDto":
        return replace(self, consumed=True)


class OTPStore(Protocol):
    async def replace_active(self, record: OTPRecordDto) -> None:
        """Atomically drop any live record for (identifier, purpose) and store ``record``."""
        ...

    async def latest_unconsumed(self, identifier: str, purpose: str) -> Optional[OTPRecordDto]:
        ...

    async def consume(self, record: OTPRecordDto) -> bool:
        """Compare-and-swap consumed false -> true; False when another caller won or the record was replaced."""
        ...

    async def purge_expired(self, before: datetime) -> int:
        ...
