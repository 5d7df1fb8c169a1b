import calendar
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import WatchError

from app.application.ports.otp_store import OTPRecordDto
from app.infrastructure.otp.redis_otp_store import RedisOTPStore

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []
        self.watched = None
        self.version = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.ops = []
        self.watched = None

    def delete(self, key):
        self.ops.append(("delete", key))
        return self

    def hset(self, key, field=None, value=None, mapping=None):
        self.ops.append(("hset", key, mapping if mapping is not None else {field: value}))
        return self

    def expireat(self, key, when):
        self.ops.append(("expireat", key, when))
        return self

    async def watch(self, key):
        self.watched = key
        self.version = self.redis.versions.get(key, 0)

    async def unwatch(self):
        self.watched = None

    async def hgetall(self, key):
        data = await self.redis.hgetall(key)
        if self.redis.interfere:
            # another client rewrites the slot between WATCH and EXEC
            self.redis.versions[key] = self.redis.versions.get(key, 0) + 1
        return data

    def multi(self):
        pass

    async def execute(self):
        if self.watched is not None and self.redis.versions.get(self.watched, 0) != self.version:
            raise WatchError("watched key changed")
        for op in self.ops:
            kind, key = op[0], op[1]
            if kind == "delete":
                self.redis.hashes.pop(key, None)
            elif kind == "hset":
                self.redis.hashes.setdefault(key, {}).update(op[2])
            elif kind == "expireat":
                self.redis.expiry[key] = op[2]
            self.redis.versions[key] = self.redis.versions.get(key, 0) + 1
        self.ops = []


class FakeRedis:
    def __init__(self):
        self.hashes = {}
        self.expiry = {}
        self.versions = {}
        self.interfere = False

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))


def record(id_, code="123456"):
    return OTPRecordDto(
        id=id_, identifier="+15551234567", code=code, purpose="login",
        issued_at=NOW, expires_at=NOW + timedelta(minutes=10),
    )


@pytest.mark.asyncio
async def test_replace_overwrites_slot_and_sets_retention_expiry():
    redis = FakeRedis()
    store = RedisOTPStore(redis, retention_minutes=60)

    await store.replace_active(record("a", "111111"))
    await store.replace_active(record("b", "222222"))

    live = await store.latest_unconsumed("+15551234567", "login")
    assert live.id == "b" and live.code == "222222"
    assert live.expires_at == NOW + timedelta(minutes=10)
    expected = calendar.timegm((NOW + timedelta(minutes=70)).timetuple())
    assert redis.expiry["otp:login:+15551234567"] == expected


@pytest.mark.asyncio
async def test_consume_once():
    store = RedisOTPStore(FakeRedis())
    await store.replace_active(record("a"))
    live = await store.latest_unconsumed("+15551234567", "login")

    assert await store.consume(live) is True
    assert await store.consume(live) is False
    assert await store.latest_unconsumed("+15551234567", "login") is None


@pytest.mark.asyncio
async def test_consume_of_replaced_record_fails():
    store = RedisOTPStore(FakeRedis())
    await store.replace_active(record("a"))
    stale = await store.latest_unconsumed("+15551234567", "login")
    await store.replace_active(record("b"))
    assert await store.consume(stale) is False


@pytest.mark.asyncio
async def test_concurrent_write_during_consume_loses_the_race():
    redis = FakeRedis()
    store = RedisOTPStore(redis)
    await store.replace_active(record("a"))
    live = await store.latest_unconsumed("+15551234567", "login")

    redis.interfere = True
    assert await store.consume(live) is False
