import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool

from ...core.timeutils import as_utc
from ...db.models import OTPRecord
from ...application.ports.otp_store import OTPRecordDto, OTPStore

logger = logging.getLogger(__name__)


def _slot(identifier: str, purpose: str) -> str:
    return f"{purpose}:{identifier}"


class SqlOTPStore(OTPStore):
    def __init__(self, engine):
        self.engine = engine

    def _to_dto(self, row: OTPRecord) -> OTPRecordDto:
        return OTPRecordDto(
            id=row.id,
            identifier=row.identifier,
            code=row.code,
            purpose=row.purpose,
            issued_at=as_utc(row.issued_at),
            expires_at=as_utc(row.expires_at),
            consumed=bool(row.consumed),
        )

    async def replace_active(self, record: OTPRecordDto) -> None:
        await run_in_threadpool(self._replace, record)

    async def latest_unconsumed(self, identifier: str, purpose: str) -> Optional[OTPRecordDto]:
        return await run_in_threadpool(self._latest, identifier, purpose)

    async def consume(self, record: OTPRecordDto) -> bool:
        return await run_in_threadpool(self._consume, record)

    async def purge_expired(self, before: datetime) -> int:
        return await run_in_threadpool(self._purge, before)

    def _replace(self, record: OTPRecordDto, retry: bool = True) -> None:
        slot = _slot(record.identifier, record.purpose)
        with Session(self.engine) as session:
            row = session.exec(select(OTPRecord).where(OTPRecord.slot == slot).with_for_update()).first()
            if row is None:
                row = OTPRecord(slot=slot)
            row.id = record.id
            row.identifier = record.identifier
            row.purpose = record.purpose
            row.code = record.code
            row.consumed = False
            row.issued_at = record.issued_at
            row.expires_at = record.expires_at
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if not retry:
                    raise
                # a concurrent issuance inserted the slot first; overwrite it (last writer wins)
                logger.info(f"Concurrent OTP issuance on slot {record.purpose}, retrying as update")
                self._replace(record, retry=False)

    def _latest(self, identifier: str, purpose: str) -> Optional[OTPRecordDto]:
        with Session(self.engine) as session:
            row = session.exec(
                select(OTPRecord).where(
                    OTPRecord.slot == _slot(identifier, purpose),
                    OTPRecord.consumed == False,  # noqa: E712
                )
            ).first()
            return self._to_dto(row) if row else None

    def _consume(self, record: OTPRecordDto) -> bool:
        stmt = (
            update(OTPRecord)
            .where(
                OTPRecord.slot == _slot(record.identifier, record.purpose),
                OTPRecord.id == record.id,
                OTPRecord.consumed == False,  # noqa: E712
            )
            .values(consumed=True)
        )
        with Session(self.engine) as session:
            result = session.connection().execute(stmt)
            session.commit()
            return result.rowcount == 1

    def _purge(self, before: datetime) -> int:
        with Session(self.engine) as session:
            result = session.connection().execute(delete(OTPRecord).where(OTPRecord.expires_at < before))
            session.commit()
            return result.rowcount or 0
