from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional

from ...helpers import now_iso

# free-form details carried next to the (order_id, ticket_id, status) triple
DETAIL_FIELDS = ("issue", "message", "phone", "email", "name", "order_name")


@dataclass
class TicketRecord:
    ticket_id: str
    order_id: str
    status: str
    issue: str = ""
    message: str = ""
    phone: str = ""
    email: str = ""
    name: str = ""
    order_name: str = ""
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TicketRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{
            k: ("" if v is None else str(v))
            for k, v in d.items() if k in known
        })


def merge_ticket(
    prev: Optional[TicketRecord],
    *,
    order_id: str,
    ticket_id: str,
    status: str,
    created_at: str = "",
    now: Optional[str] = None,
    **details: str,
) -> TicketRecord:
    """Apply one upsert on top of the stored record (if any).

    order_id and status always take the new value, details only when the
    new value is non-empty, created_at sticks to the earliest we know of.
    """
    now = now or now_iso()
    rec = TicketRecord(
        ticket_id=ticket_id,
        order_id=order_id,
        status=status,
        created_at=(prev.created_at if prev else "") or created_at or now,
        updated_at=now,
    )
    for f in DETAIL_FIELDS:
        new = details.get(f) or ""
        setattr(rec, f, new or (getattr(prev, f) if prev else ""))
    return rec


def status_matches(status: str, wanted: Optional[str]) -> bool:
    if wanted is None:
        return True
    return (status or "").lower() == wanted.lower()


def newest_first(records: List[TicketRecord]) -> List[TicketRecord]:
    return sorted(records, key=lambda r: r.updated_at, reverse=True)


class TicketStore(ABC):
    backend = "abstract"

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def upsert(
        self, order_id: str, ticket_id: str, status: str, **details: str
    ) -> TicketRecord: ...

    # None -> every record
    @abstractmethod
    async def find_by_status(
        self, status: Optional[str]
    ) -> List[TicketRecord]: ...

    @abstractmethod
    async def find_by_order(self, order_id: str) -> List[TicketRecord]: ...
