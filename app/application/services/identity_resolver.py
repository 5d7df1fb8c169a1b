"""Map a verified identifier to exactly one durable identity.

The identity store offers no indexed lookup by identifier, only paginated
enumeration, and its ``create`` may report a conflict for an identity that the
first page did not show. Resolution therefore runs as:

1. scan the first page; a match is an existing identity;
2. otherwise create the identity (plus a profile stub);
3. on a create conflict, rescan from the first page across a bounded number
   of extra pages; if the identity still cannot be found, create one under a
   disambiguated login key so the user is never locked out.

Only the final disambiguated create is fatal (``RecoveryFailure``).
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..calls import bounded
from ..errors import RecoveryFailure, StoreFailure
from ..identifiers import disambiguate, hash_identifier
from ..ports.identity_store import IdentityAlreadyExists, IdentityPage, IdentityRecord, IdentityStore
from ..ports.profile_repo import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    identity_id: str
    login_key: str
    is_new_identity: bool
    profile_complete: bool = False


@dataclass
class IdentityResolver:
    identities: IdentityStore
    profiles: ProfileRepository
    page_size: int = 50
    recovery_extra_pages: int = 4
    timeout_seconds: float = 10.0

    async def resolve(self, identifier: str) -> Resolution:
        first_page = await self._list(None)
        existing = self._match(first_page, identifier)
        if existing is not None:
            complete = await self._profile_complete(existing.id)
            logger.info(f"Existing identity found: {existing.id}")
            return Resolution(existing.id, existing.identifier, is_new_identity=False, profile_complete=complete)

        try:
            created = await self._create(identifier, {"phone": identifier})
        except IdentityAlreadyExists:
            logger.warning(f"Identity for {hash_identifier(identifier)[:12]} exists but was not on the first page; widening search")
            return await self._recover(identifier)

        await self._create_profile_stub(created.id, identifier)
        logger.info(f"New identity created: {created.id}")
        return Resolution(created.id, created.identifier, is_new_identity=True)

    async def _recover(self, identifier: str) -> Resolution:
        cursor: Optional[str] = None
        for _ in range(1 + self.recovery_extra_pages):
            page = await self._list(cursor)
            found = self._match(page, identifier)
            if found is not None:
                complete = await self._profile_complete(found.id)
                logger.info(f"Identity {found.id} found during widened search")
                return Resolution(found.id, found.identifier, is_new_identity=not complete, profile_complete=complete)
            cursor = page.next_cursor
            if cursor is None:
                break

        variant = disambiguate(identifier)
        logger.warning(
            f"Identity for {hash_identifier(identifier)[:12]} not found after widened search; "
            f"creating disambiguated identity {hash_identifier(variant)[:12]}"
        )
        # any failure here, conflict included, is terminal
        created = await bounded(
            self.identities.create(variant, {"phone": identifier, "disambiguated_from": identifier}),
            self.timeout_seconds,
            RecoveryFailure,
            "Disambiguated identity create",
        )

        await self._create_profile_stub(created.id, identifier)
        return Resolution(created.id, created.identifier, is_new_identity=True)

    @staticmethod
    def _match(page: IdentityPage, identifier: str) -> Optional[IdentityRecord]:
        for identity in page.identities:
            if identity.identifier == identifier:
                return identity
        return None

    async def _list(self, cursor: Optional[str]) -> IdentityPage:
        return await bounded(
            self.identities.list_page(cursor, self.page_size), self.timeout_seconds, StoreFailure, "Identity listing"
        )

    async def _create(self, identifier: str, attrs: dict) -> IdentityRecord:
        return await bounded(
            self.identities.create(identifier, attrs),
            self.timeout_seconds,
            StoreFailure,
            "Identity create",
            passthrough=(IdentityAlreadyExists,),
        )

    async def _profile_complete(self, identity_id: str) -> bool:
        try:
            profile = await bounded(self.profiles.get(identity_id), self.timeout_seconds, StoreFailure, "Profile lookup")
        except StoreFailure:
            # completeness only shapes onboarding UX, never the resolution itself
            return False
        return bool(profile and profile.is_complete)

    async def _create_profile_stub(self, identity_id: str, phone: str) -> None:
        try:
            await bounded(self.profiles.create_stub(identity_id, phone), self.timeout_seconds, StoreFailure, "Profile create")
        except StoreFailure:
            logger.warning(f"Profile stub creation failed for identity {identity_id}")
