import logging
from datetime import datetime, timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from ...core.timeutils import as_utc
from ...application.ports.otp_store import OTPRecordDto, OTPStore

logger = logging.getLogger(__name__)


class RedisOTPStore(OTPStore):
    """One hash per (purpose, identifier); Redis key expiry does the garbage collection."""

    def __init__(self, client: "redis.Redis", prefix: str = "otp:", retention_minutes: int = 24 * 60) -> None:
        self.client = client
        self.prefix = prefix
        self.retention = timedelta(minutes=retention_minutes)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisOTPStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, identifier: str, purpose: str) -> str:
        return f"{self.prefix}{purpose}:{identifier}"

    async def replace_active(self, record: OTPRecordDto) -> None:
        key = self._key(record.identifier, record.purpose)
        # MULTI/EXEC: readers never observe the slot empty between delete and write
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping={
                "id": record.id,
                "identifier": record.identifier,
                "purpose": record.purpose,
                "code": record.code,
                "issued_at": record.issued_at.isoformat(),
                "expires_at": record.expires_at.isoformat(),
                "consumed": "0",
            })
            pipe.expireat(key, int(as_utc(record.expires_at + self.retention).timestamp()))
            await pipe.execute()

    async def latest_unconsumed(self, identifier: str, purpose: str) -> Optional[OTPRecordDto]:
        data = await self.client.hgetall(self._key(identifier, purpose))
        if not data or data.get("consumed") == "1":
            return None
        return OTPRecordDto(
            id=data["id"],
            identifier=data["identifier"],
            code=data["code"],
            purpose=data["purpose"],
            issued_at=as_utc(datetime.fromisoformat(data["issued_at"])),
            expires_at=as_utc(datetime.fromisoformat(data["expires_at"])),
        )

    async def consume(self, record: OTPRecordDto) -> bool:
        key = self._key(record.identifier, record.purpose)
        async with self.client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.hgetall(key)
                if not current or current.get("id") != record.id or current.get("consumed") == "1":
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.hset(key, "consumed", "1")
                await pipe.execute()
                return True
            except WatchError:
                logger.info(f"OTP {record.id} changed while consuming")
                return False

    async def purge_expired(self, before: datetime) -> int:
        # keys carry their own EXPIREAT
        return 0
