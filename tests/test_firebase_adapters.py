from types import SimpleNamespace

import pytest

pytest.importorskip("firebase_admin")

from app.application.errors import MintFailure
from app.application.ports.identity_store import IdentityAlreadyExists
from app.infrastructure.firebase.firebase_identity_store import FirebaseIdentityStore
from app.infrastructure.firebase.firebase_session_provider import FirebaseSessionProvider


class EmailAlreadyExistsError(Exception):
    pass


class PhoneNumberAlreadyExistsError(Exception):
    pass


class UserDisabledError(Exception):
    pass


class FakeAuth:
    EmailAlreadyExistsError = EmailAlreadyExistsError
    PhoneNumberAlreadyExistsError = PhoneNumberAlreadyExistsError
    UserDisabledError = UserDisabledError

    def __init__(self, users=()):
        self.users = list(users)
        self.revoked = []
        self.list_calls = []

    def list_users(self, page_token=None, max_results=1000, app=None):
        self.list_calls.append(page_token)
        offset = int(page_token or 0)
        end = offset + max_results
        return SimpleNamespace(
            users=self.users[offset:end],
            next_page_token=str(end) if end < len(self.users) else "",
        )

    def create_user(self, app=None, **kwargs):
        for u in self.users:
            if u.email == kwargs.get("email"):
                raise EmailAlreadyExistsError()
            if kwargs.get("phone_number") and u.phone_number == kwargs["phone_number"]:
                raise PhoneNumberAlreadyExistsError()
        user = SimpleNamespace(uid=f"uid-{len(self.users)}", email=kwargs.get("email"), phone_number=kwargs.get("phone_number"))
        self.users.append(user)
        return user

    def create_custom_token(self, uid, app=None):
        return f"custom-{uid}".encode()

    def verify_id_token(self, token, app=None, check_revoked=False):
        if token == "disabled":
            raise UserDisabledError()
        if not token.startswith("id-"):
            raise ValueError("bad token")
        uid = token[len("id-"):]
        if check_revoked and uid in self.revoked:
            raise ValueError("revoked")
        return {"uid": uid}

    def revoke_refresh_tokens(self, uid, app=None):
        self.revoked.append(uid)


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self):
        return self.payload


class FakeHttpSession:
    requests = []
    response = FakeResponse(200, {"idToken": "id-uid-1", "refreshToken": "refresh-1"})

    def __init__(self, timeout=None):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def post(self, url, params=None, json=None):
        FakeHttpSession.requests.append((url, params, json))
        return FakeHttpSession.response


def user(uid, email, phone=None):
    return SimpleNamespace(uid=uid, email=email, phone_number=phone)


@pytest.mark.asyncio
async def test_identity_store_reads_identifiers_from_login_emails():
    auth = FakeAuth([
        user("uid-a", "15551234567@phone.user", "+15551234567"),
        user("uid-b", "15551234567-ab12cd34@phone.user"),
        user("uid-c", "someone@example.com", "+15550000000"),
        user("uid-d", None),
    ])
    store = FirebaseIdentityStore(auth=auth)

    page = await store.list_page(None, 10)

    assert [(i.id, i.identifier) for i in page.identities] == [
        ("uid-a", "+15551234567"),
        ("uid-b", "+15551234567-ab12cd34"),
        ("uid-c", "+15550000000"),
    ]
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_identity_store_pages_with_tokens():
    auth = FakeAuth([user(f"uid-{i}", f"1555000000{i}@phone.user") for i in range(3)])
    store = FirebaseIdentityStore(auth=auth)

    first = await store.list_page(None, 2)
    second = await store.list_page(first.next_cursor, 2)

    assert first.next_cursor == "2"
    assert [i.id for i in second.identities] == ["uid-2"]
    assert second.next_cursor is None


@pytest.mark.asyncio
async def test_identity_store_create_and_conflicts():
    auth = FakeAuth()
    store = FirebaseIdentityStore(auth=auth)

    created = await store.create("+15551234567", {"phone": "+15551234567"})
    assert created.identifier == "+15551234567"
    assert auth.users[0].email == "15551234567@phone.user"
    assert auth.users[0].phone_number == "+15551234567"

    with pytest.raises(IdentityAlreadyExists):
        await store.create("+15551234567", {"phone": "+15551234567"})

    # variants carry no phone number, so they never collide on it
    variant = await store.create("+15551234567-ab12cd34", {"phone": "+15551234567"})
    assert auth.users[-1].phone_number is None
    assert variant.identifier == "+15551234567-ab12cd34"


@pytest.mark.asyncio
async def test_session_provider_exchanges_custom_token():
    FakeHttpSession.requests = []
    FakeHttpSession.response = FakeResponse(200, {"idToken": "id-uid-1", "refreshToken": "refresh-1"})
    provider = FirebaseSessionProvider("web-key", auth=FakeAuth(), http_session_factory=FakeHttpSession)

    credential = await provider.mint_bootstrap_credential("uid-1", "+15551234567")
    tokens = await provider.redeem(credential)

    assert credential == "custom-uid-1"
    assert tokens.access_token == "id-uid-1"
    assert tokens.refresh_token == "refresh-1"
    url, params, body = FakeHttpSession.requests[0]
    assert url.endswith("accounts:signInWithCustomToken")
    assert params == {"key": "web-key"}
    assert body == {"token": "custom-uid-1", "returnSecureToken": True}


@pytest.mark.asyncio
async def test_session_provider_rejected_exchange_is_mint_failure():
    FakeHttpSession.response = FakeResponse(400, {"error": {"message": "INVALID_CUSTOM_TOKEN"}})
    provider = FirebaseSessionProvider("web-key", auth=FakeAuth(), http_session_factory=FakeHttpSession)
    with pytest.raises(MintFailure):
        await provider.redeem("custom-uid-1")


@pytest.mark.asyncio
async def test_session_provider_validate_and_invalidate():
    auth = FakeAuth()
    provider = FirebaseSessionProvider("web-key", auth=auth)

    assert await provider.validate("id-uid-1") == "uid-1"
    await provider.invalidate("id-uid-1")
    assert auth.revoked == ["uid-1"]
    assert await provider.validate("id-uid-1") is None
    assert await provider.validate("garbage") is None
    assert await provider.validate("disabled") is None
