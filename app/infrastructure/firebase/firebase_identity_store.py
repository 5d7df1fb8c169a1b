from typing import Any, Dict, Optional

from firebase_admin import auth as fb_auth
from starlette.concurrency import run_in_threadpool

from ...application.identifiers import PHONE_PATTERN, login_email_for
from ...application.ports.identity_store import IdentityAlreadyExists, IdentityPage, IdentityRecord, IdentityStore


class FirebaseIdentityStore(IdentityStore):
    """Identities as Firebase Auth users.

    Each user carries a synthetic email login key (``15551234567@phone.user``),
    from which the identifier is read back; disambiguated variants keep their
    suffix in the local part and carry no phone number of their own.
    """

    def __init__(self, app=None, domain: str = "phone.user", auth=fb_auth):
        self.app = app
        self.domain = domain
        self.auth = auth

    def _identifier_of(self, user) -> Optional[str]:
        email = user.email or ""
        suffix = f"@{self.domain}"
        if email.endswith(suffix):
            return "+" + email[: -len(suffix)]
        return user.phone_number

    def _to_record(self, user, identifier: str) -> IdentityRecord:
        return IdentityRecord(id=user.uid, identifier=identifier, phone=user.phone_number)

    async def list_page(self, cursor: Optional[str], page_size: int) -> IdentityPage:
        page = await run_in_threadpool(self.auth.list_users, page_token=cursor, max_results=page_size, app=self.app)
        identities = []
        for user in page.users:
            identifier = self._identifier_of(user)
            if identifier:
                identities.append(self._to_record(user, identifier))
        return IdentityPage(identities=identities, next_cursor=page.next_page_token or None)

    async def create(self, identifier: str, attrs: Dict[str, Any]) -> IdentityRecord:
        kwargs = {"email": login_email_for(identifier, self.domain), "email_verified": True}
        if PHONE_PATTERN.match(identifier):
            kwargs["phone_number"] = identifier
        try:
            user = await run_in_threadpool(self.auth.create_user, app=self.app, **kwargs)
        except (self.auth.EmailAlreadyExistsError, self.auth.PhoneNumberAlreadyExistsError) as e:
            raise IdentityAlreadyExists(identifier) from e
        return self._to_record(user, identifier)
