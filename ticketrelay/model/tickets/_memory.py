from __future__ import annotations
from typing import Dict, List, Optional

from .base import (
    TicketRecord, TicketStore, merge_ticket, newest_first, status_matches
)


class MemoryTicketStore(TicketStore):
    backend = "memory"

    def __init__(self) -> None:
        self.tickets: Dict[str, TicketRecord] = {}

    async def upsert(
        self, order_id: str, ticket_id: str, status: str, **details: str
    ) -> TicketRecord:
        rec = merge_ticket(
            self.tickets.get(ticket_id),
            order_id=order_id, ticket_id=ticket_id, status=status, **details
        )
        self.tickets[ticket_id] = rec
        return rec

    async def find_by_status(
        self, status: Optional[str]
    ) -> List[TicketRecord]:
        return newest_first([
            t for t in self.tickets.values()
            if status_matches(t.status, status)
        ])

    async def find_by_order(self, order_id: str) -> List[TicketRecord]:
        return newest_first([
            t for t in self.tickets.values() if t.order_id == order_id
        ])
