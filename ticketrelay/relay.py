from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ValidationError
from .model.tickets import DETAIL_FIELDS, TicketStore

REQUIRED_FIELDS = ("order_id", "ticket_id", "status")


@dataclass(frozen=True)
class AttachTicket:
    order_id: str
    ticket_id: str
    status: str
    details: Dict[str, str] = field(default_factory=dict)

    def echo(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "order_id": self.order_id,
            "ticket_id": self.ticket_id,
            "status": self.status,
        }


def _text(value: Any) -> Optional[str]:
    # bool is an int subclass, but `true` is no order id
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    value = str(value).strip()
    return value or None


def validate_attach_payload(body: Any) -> AttachTicket:
    if not isinstance(body, dict):
        body = {}

    values = {f: _text(body.get(f)) for f in REQUIRED_FIELDS}
    missing = [f for f in REQUIRED_FIELDS if values[f] is None]
    if missing:
        raise ValidationError(missing)

    details = {}
    for f in DETAIL_FIELDS + ("created_at",):
        v = _text(body.get(f))
        if v is not None:
            details[f] = v
    return AttachTicket(details=details, **values)


async def attach_ticket(store: TicketStore, attach: AttachTicket) -> Dict:
    # single attempt; StoreError goes straight back to the caller
    await store.upsert(
        attach.order_id, attach.ticket_id, attach.status, **attach.details
    )
    return attach.echo()
