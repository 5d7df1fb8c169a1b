from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool

from .....core.timeutils import as_utc
from .....db.models import Identity
from .....application.ports.identity_store import IdentityAlreadyExists, IdentityPage, IdentityRecord, IdentityStore


class SqlIdentityStore(IdentityStore):
    """Identity directory on the app database, exposed through the same paged
    enumeration the hosted identity backends offer. The cursor is an offset."""

    def __init__(self, engine):
        self.engine = engine

    def _to_record(self, row: Identity) -> IdentityRecord:
        return IdentityRecord(id=row.id, identifier=row.identifier, phone=row.phone, created_at=as_utc(row.created_at))

    async def list_page(self, cursor: Optional[str], page_size: int) -> IdentityPage:
        return await run_in_threadpool(self._list_page, cursor, page_size)

    async def create(self, identifier: str, attrs: Dict[str, Any]) -> IdentityRecord:
        return await run_in_threadpool(self._create, identifier, attrs)

    def _list_page(self, cursor: Optional[str], page_size: int) -> IdentityPage:
        offset = int(cursor) if cursor else 0
        with Session(self.engine) as session:
            rows = session.exec(
                select(Identity)
                .order_by(Identity.created_at, Identity.id)
                .offset(offset)
                .limit(page_size + 1)
            ).all()
        next_cursor = str(offset + page_size) if len(rows) > page_size else None
        return IdentityPage(identities=[self._to_record(r) for r in rows[:page_size]], next_cursor=next_cursor)

    def _create(self, identifier: str, attrs: Dict[str, Any]) -> IdentityRecord:
        row = Identity(
            identifier=identifier,
            phone=attrs.get("phone"),
            disambiguated_from=attrs.get("disambiguated_from"),
        )
        with Session(self.engine) as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise IdentityAlreadyExists(identifier) from e
            session.refresh(row)
            return self._to_record(row)
