import asyncio
import json

import pytest

from app.application.errors import AuthError, DispatchFailure, ErrorCategory, OTPMismatch, RecoveryFailure, SessionFailure, StoreFailure
from app.client.events import SessionEvent, SessionEvents
from app.client.session_manager import AuthFlowError, ClientSessionManager, SessionState
from app.client.storage import ClientSession, FileSessionStorage, MemorySessionStorage
from app.client.transport import HttpAuthApi, LocalAuthApi
from app.dependencies import AuthServices

STORED = ClientSession(access_token="stored-access", refresh_token="stored-refresh", identity_id="identity-1")


class FakeApi:
    def __init__(self, valid_tokens=(), validate_gate=None):
        self.valid_tokens = set(valid_tokens)
        self.validate_gate = validate_gate
        self.invalidated = []
        self.invalidate_error = None
        self.verify_error = None
        self.issue_error = None
        self.validate_error = None

    async def issue(self, identifier):
        if self.issue_error:
            raise self.issue_error
        return 600

    async def verify(self, identifier, code):
        if self.verify_error:
            raise self.verify_error
        session = ClientSession(access_token="fresh-access", refresh_token="fresh-refresh", identity_id="identity-2")
        self.valid_tokens.add(session.access_token)
        return session

    async def validate(self, access_token):
        if self.validate_gate is not None:
            await self.validate_gate.wait()
        if self.validate_error:
            raise self.validate_error
        return "identity-1" if access_token in self.valid_tokens else None

    async def invalidate(self, access_token):
        self.invalidated.append(access_token)
        if self.invalidate_error:
            raise self.invalidate_error
        self.valid_tokens.discard(access_token)


class RecordingListener:
    def __init__(self):
        self.states = []

    def __call__(self, state, session):
        self.states.append(state)


@pytest.mark.asyncio
async def test_restore_valid_persisted_session():
    manager = ClientSessionManager(FakeApi(valid_tokens={"stored-access"}), MemorySessionStorage(STORED))
    listener = RecordingListener()
    manager.subscribe(listener)

    await manager.start()

    assert manager.state == SessionState.AUTHENTICATED
    assert manager.session == STORED
    assert listener.states == [SessionState.RESTORING, SessionState.AUTHENTICATED]


@pytest.mark.asyncio
async def test_restore_without_session_goes_anonymous():
    manager = ClientSessionManager(FakeApi(), MemorySessionStorage())
    await manager.start()
    assert manager.state == SessionState.ANONYMOUS


@pytest.mark.asyncio
async def test_restore_of_rejected_session_clears_storage():
    storage = MemorySessionStorage(STORED)
    manager = ClientSessionManager(FakeApi(), storage)
    await manager.start()
    assert manager.state == SessionState.ANONYMOUS
    assert storage.load() is None


@pytest.mark.asyncio
async def test_verify_wins_over_pending_restore():
    gate = asyncio.Event()
    storage = MemorySessionStorage(STORED)
    manager = ClientSessionManager(FakeApi(validate_gate=gate), storage)

    restore = manager.start()
    assert manager.state == SessionState.RESTORING

    session = await manager.verify("+15551234567", "123456")
    assert manager.state == SessionState.AUTHENTICATED

    gate.set()
    await restore
    assert manager.session == session
    assert storage.load() == session


@pytest.mark.asyncio
async def test_sign_out_clears_storage_before_remote_call_and_survives_failure():
    storage = MemorySessionStorage()
    api = FakeApi()
    api.invalidate_error = StoreFailure()
    manager = ClientSessionManager(api, storage)
    await manager.verify("+15551234567", "123456")

    seen_storage = []
    original = api.invalidate

    async def invalidate(token):
        seen_storage.append(storage.load())
        await original(token)

    api.invalidate = invalidate
    await manager.sign_out()

    assert seen_storage == [None]
    assert manager.state == SessionState.ANONYMOUS
    assert manager.session is None


@pytest.mark.asyncio
async def test_failures_are_mapped_to_categories():
    api = FakeApi()
    manager = ClientSessionManager(api, MemorySessionStorage())

    api.verify_error = OTPMismatch()
    with pytest.raises(AuthFlowError) as exc:
        await manager.verify("+15551234567", "000000")
    assert exc.value.category == ErrorCategory.RETRY_WITH_NEW_CODE
    assert exc.value.message == "Invalid OTP. Please try again."

    api.verify_error = RecoveryFailure("create failed: duplicate key on auth.users")
    with pytest.raises(AuthFlowError) as exc:
        await manager.verify("+15551234567", "123456")
    assert exc.value.category == ErrorCategory.CONTACT_SUPPORT
    assert "auth.users" not in exc.value.message

    api.issue_error = DispatchFailure("Twilio error 21608")
    with pytest.raises(AuthFlowError) as exc:
        await manager.issue("+15551234567")
    assert exc.value.category == ErrorCategory.TRY_AGAIN_LATER
    assert "21608" not in exc.value.message
    assert manager.state == SessionState.ANONYMOUS


@pytest.mark.asyncio
async def test_revocation_notice_reaches_every_listener():
    events = SessionEvents()
    manager = ClientSessionManager(FakeApi(), MemorySessionStorage(), events=events)
    first, second = RecordingListener(), RecordingListener()
    manager.subscribe(first)
    unsubscribe = manager.subscribe(second)
    await manager.verify("+15551234567", "123456")

    # a notice about some other token is ignored
    events.emit(SessionEvent.REVOKED, access_token="someone-else")
    assert manager.state == SessionState.AUTHENTICATED

    unsubscribe()
    events.emit(SessionEvent.TOKEN_EXPIRED, access_token="fresh-access")

    assert manager.state == SessionState.ANONYMOUS
    assert first.states == [SessionState.AUTHENTICATED, SessionState.ANONYMOUS]
    assert second.states == [SessionState.AUTHENTICATED]


@pytest.mark.asyncio
async def test_refresh_notice_adopts_new_session():
    events = SessionEvents()
    storage = MemorySessionStorage()
    manager = ClientSessionManager(FakeApi(), storage, events=events)
    refreshed = ClientSession(access_token="next", refresh_token="next-refresh", identity_id="identity-1")

    events.emit(SessionEvent.TOKEN_REFRESHED, session=refreshed)

    assert manager.state == SessionState.AUTHENTICATED
    assert storage.load() == refreshed


@pytest.mark.asyncio
async def test_check_session_drops_externally_revoked_session():
    api = FakeApi()
    manager = ClientSessionManager(api, MemorySessionStorage())
    await manager.verify("+15551234567", "123456")

    api.valid_tokens.clear()
    assert await manager.check_session() == SessionState.ANONYMOUS


def test_file_storage_round_trip(tmp_path):
    path = tmp_path / "auth" / "session.json"
    storage = FileSessionStorage(str(path))
    assert storage.load() is None

    storage.save(STORED)
    assert json.loads(path.read_text())["identity_id"] == "identity-1"
    assert storage.load() == STORED

    storage.clear()
    assert storage.load() is None
    storage.clear()


def test_file_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert FileSessionStorage(str(path)).load() is None


@pytest.mark.asyncio
async def test_restore_settles_anonymous_when_backend_times_out():
    api = FakeApi(valid_tokens={"stored-access"})
    api.validate_error = asyncio.TimeoutError()
    manager = ClientSessionManager(api, MemorySessionStorage(STORED))

    await manager.start()

    assert manager.state == SessionState.ANONYMOUS
    assert manager.session is None


@pytest.mark.asyncio
async def test_untyped_transport_failures_become_try_again_later():
    api = FakeApi()
    manager = ClientSessionManager(api, MemorySessionStorage())

    api.verify_error = asyncio.TimeoutError()
    with pytest.raises(AuthFlowError) as exc:
        await manager.verify("+15551234567", "123456")
    assert exc.value.category == ErrorCategory.TRY_AGAIN_LATER

    api.issue_error = ConnectionResetError("peer closed")
    with pytest.raises(AuthFlowError) as exc:
        await manager.issue("+15551234567")
    assert exc.value.category == ErrorCategory.TRY_AGAIN_LATER
    assert "peer" not in exc.value.message
    assert manager.state == SessionState.ANONYMOUS


@pytest.mark.asyncio
async def test_sign_out_survives_remote_timeout():
    storage = MemorySessionStorage()
    api = FakeApi()
    manager = ClientSessionManager(api, storage)
    await manager.verify("+15551234567", "123456")

    api.invalidate_error = asyncio.TimeoutError()
    await manager.sign_out()

    assert manager.state == SessionState.ANONYMOUS
    assert storage.load() is None


@pytest.mark.asyncio
async def test_start_keeps_live_session():
    manager = ClientSessionManager(FakeApi(), MemorySessionStorage())
    await manager.verify("+15551234567", "123456")

    assert manager.start() is None
    assert manager.state == SessionState.AUTHENTICATED
    assert manager.session.access_token == "fresh-access"


class SlowHttpSession:
    def __init__(self, timeout=None):
        self.timeout = timeout

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def request(self, method, url, json=None, headers=None):
        raise asyncio.TimeoutError()


@pytest.mark.asyncio
async def test_http_timeout_surfaces_as_auth_error():
    api = HttpAuthApi("http://auth.test", timeout=0.2, session_factory=SlowHttpSession)

    with pytest.raises(AuthError) as exc:
        await api.verify("+15551234567", "123456")
    assert exc.value.category == ErrorCategory.TRY_AGAIN_LATER

    manager = ClientSessionManager(api, MemorySessionStorage(STORED))
    await manager.start()
    assert manager.state == SessionState.ANONYMOUS


class BrokenSessions:
    async def validate(self, access_token):
        raise RuntimeError("database is locked")

    async def invalidate(self, access_token):
        await asyncio.sleep(1)


@pytest.mark.asyncio
async def test_local_api_wraps_backend_errors():
    services = AuthServices(issuance=None, verification=None, contact=None, sessions=BrokenSessions(), store=None)
    api = LocalAuthApi(services, timeout=0.05)

    with pytest.raises(SessionFailure):
        await api.validate("any-token")
    with pytest.raises(SessionFailure):
        await api.invalidate("any-token")
