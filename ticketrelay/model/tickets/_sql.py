from __future__ import annotations
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ...errors import StoreError
from ...infra.sql import make_async_engine
from .base import TicketRecord, TicketStore, merge_ticket
from .orm import Base, Ticket


class SqlTicketStore(TicketStore):
    backend = "sql"

    def __init__(
        self, database_url: str, *, pool_size: int = 5,
        max_overflow: int = 5, pool_timeout: int = 30,
    ) -> None:
        self.database_url = database_url
        self._engine_kw = dict(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
        )
        self.engine = None
        self.SessionAsync = None
        self.gated = None

    async def start(self) -> None:
        self.engine, self.SessionAsync, self.gated = make_async_engine(
            self.database_url, **self._engine_kw
        )
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StoreError(f"schema setup failed: {e}", self.backend) from e

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

    def _require_started(self) -> None:
        if self.SessionAsync is None:
            raise StoreError("sql ticket store not started", self.backend)

    async def upsert(
        self, order_id: str, ticket_id: str, status: str, **details: str
    ) -> TicketRecord:
        self._require_started()
        try:
            async with self.gated():
                async with self.SessionAsync() as db:
                    async with db.begin():
                        row = await db.get(Ticket, ticket_id)
                        rec = merge_ticket(
                            row.to_record() if row else None,
                            order_id=order_id, ticket_id=ticket_id,
                            status=status, **details
                        )
                        cols = dict(rec.to_dict(), status_lc=rec.status.lower())
                        if row is None:
                            db.add(Ticket(**cols))
                        else:
                            for k, v in cols.items():
                                setattr(row, k, v)
        except SQLAlchemyError as e:
            raise StoreError(f"upsert {ticket_id} failed: {e}",
                             self.backend) from e
        return rec

    async def _select(self, stmt) -> List[TicketRecord]:
        self._require_started()
        stmt = stmt.order_by(Ticket.updated_at.desc())
        try:
            async with self.gated():
                async with self.SessionAsync() as db:
                    result = await db.execute(stmt)
                    return [t.to_record() for t in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"query failed: {e}", self.backend) from e

    async def find_by_status(
        self, status: Optional[str]
    ) -> List[TicketRecord]:
        stmt = select(Ticket)
        if status is not None:
            stmt = stmt.where(Ticket.status_lc == status.lower())
        return await self._select(stmt)

    async def find_by_order(self, order_id: str) -> List[TicketRecord]:
        return await self._select(
            select(Ticket).where(Ticket.order_id == order_id)
        )
