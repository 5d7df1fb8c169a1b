from typing import Optional

from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool

from .....core.timeutils import utcnow
from .....db.models import Profile
from .....application.ports.profile_repo import ProfileDto, ProfileRepository


class SqlProfileRepository(ProfileRepository):
    def __init__(self, engine):
        self.engine = engine

    def _to_dto(self, profile: Profile) -> ProfileDto:
        return ProfileDto(
            identity_id=profile.identity_id,
            phone=profile.phone,
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            country=profile.country,
            is_verified=bool(profile.is_verified),
        )

    async def get(self, identity_id: str) -> Optional[ProfileDto]:
        return await run_in_threadpool(self._get, identity_id)

    async def create_stub(self, identity_id: str, phone: str) -> ProfileDto:
        return await run_in_threadpool(self._create_stub, identity_id, phone)

    def _get(self, identity_id: str) -> Optional[ProfileDto]:
        with Session(self.engine) as session:
            profile = session.exec(select(Profile).where(Profile.identity_id == identity_id)).first()
            return self._to_dto(profile) if profile else None

    def _create_stub(self, identity_id: str, phone: str) -> ProfileDto:
        # the phone was just proven by OTP
        now = utcnow()
        profile = Profile(identity_id=identity_id, phone=phone, is_verified=True, verification_date=now)
        with Session(self.engine) as session:
            session.add(profile)
            session.commit()
            session.refresh(profile)
            return self._to_dto(profile)
