"""Tickets kept on the storefront's orders, via the Admin GraphQL API.

Every order carries a ``support.tickets`` JSON metafield holding a map of
ticket_id -> ticket. The latest write is mirrored into two plain text
metafields (``support.ticket_id`` / ``support.ticket_status``) so the
storefront admin can filter orders on them.
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ...errors import StoreError
from .base import (
    TicketRecord, TicketStore, merge_ticket, newest_first, status_matches
)

logger = logging.getLogger(__name__)

NAMESPACE = "support"
PAGE_SIZE = 100
MAX_PAGES = 10

Q_GET_ORDER = """
query GetOrder($id: ID!) {
  order(id: $id) {
    id
    name
    metafield(namespace: "support", key: "tickets") { id value }
  }
}
"""

Q_LIST_ORDERS = """
query ListOrders($first: Int!, $after: String) {
  orders(first: $first, after: $after, sortKey: UPDATED_AT, reverse: true) {
    pageInfo { hasNextPage endCursor }
    nodes {
      id
      name
      metafield(namespace: "support", key: "tickets") { value }
    }
  }
}
"""

M_SAVE_TICKETS = """
mutation SaveTickets($ownerId: ID!, $value: String!,
                     $ticketId: String!, $status: String!) {
  metafieldsSet(metafields: [
    { ownerId: $ownerId, namespace: "support", key: "tickets",
      type: "json", value: $value },
    { ownerId: $ownerId, namespace: "support", key: "ticket_id",
      type: "single_line_text_field", value: $ticketId },
    { ownerId: $ownerId, namespace: "support", key: "ticket_status",
      type: "single_line_text_field", value: $status }
  ]) {
    userErrors { field message }
  }
}
"""


def order_gid(order_id: str) -> str:
    return f"gid://shopify/Order/{order_id}"


def _ticket_map(metafield: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    value = (metafield or {}).get("value")
    if not value:
        return {}
    try:
        m = json.loads(value)
    except ValueError:
        # hand-edited metafield; start over rather than fail the write
        logger.warning("unparseable support.tickets metafield, resetting")
        return {}
    return m if isinstance(m, dict) else {}


class ShopifyTicketStore(TicketStore):
    backend = "shopify"

    def __init__(
        self, shop: str, token: str, api_version: str = "2024-10", *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.shop = shop
        self.token = token
        self.api_version = api_version
        self.timeout = timeout
        self.http = client

    @property
    def url(self) -> str:
        return (
            f"https://{self.shop}/admin/api/{self.api_version}/graphql.json"
        )

    async def start(self) -> None:
        if not self.shop or not self.token:
            raise StoreError(
                "SHOPIFY_SHOP and SHOPIFY_ADMIN_TOKEN are required",
                self.backend,
            )
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self.http is not None:
            await self.http.aclose()
            self.http = None

    async def graphql(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self.http is None:
            raise StoreError("shopify ticket store not started", self.backend)
        try:
            r = await self.http.post(
                self.url,
                json={"query": query, "variables": variables or {}},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": self.token,
                },
            )
            body = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"[AdminGraphQL] {e}", self.backend) from e

        if not isinstance(body, dict):
            raise StoreError(
                f"[AdminGraphQL] {r.status_code} unexpected body", self.backend
            )
        errors = body.get("errors")
        if r.is_error or errors:
            msg = r.reason_phrase
            if isinstance(errors, list) and errors:
                msg = errors[0].get("message", msg)
            elif isinstance(errors, str):
                msg = errors
            raise StoreError(
                f"[AdminGraphQL] {r.status_code} {msg}", self.backend
            )
        return body.get("data") or {}

    async def _load_order(
        self, order_id: str
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        data = await self.graphql(Q_GET_ORDER, {"id": order_gid(order_id)})
        order = data.get("order") or {}
        return order, _ticket_map(order.get("metafield"))

    async def upsert(
        self, order_id: str, ticket_id: str, status: str, **details: str
    ) -> TicketRecord:
        order, tickets = await self._load_order(order_id)

        prev = tickets.get(ticket_id)
        details.setdefault("order_name", "")
        details["order_name"] = (
            details["order_name"] or order.get("name") or ""
        )
        rec = merge_ticket(
            TicketRecord.from_dict(prev) if isinstance(prev, dict) else None,
            order_id=order_id, ticket_id=ticket_id, status=status, **details
        )
        tickets[ticket_id] = rec.to_dict()

        data = await self.graphql(M_SAVE_TICKETS, {
            "ownerId": order_gid(order_id),
            "value": json.dumps(tickets),
            "ticketId": ticket_id,
            "status": status,
        })
        user_errors = (data.get("metafieldsSet") or {}).get("userErrors")
        if user_errors:
            raise StoreError(
                f"[metafieldsSet] {user_errors[0].get('message')}",
                self.backend,
            )
        return rec

    async def find_by_order(self, order_id: str) -> List[TicketRecord]:
        _, tickets = await self._load_order(order_id)
        return newest_first([
            TicketRecord.from_dict(t) for t in tickets.values()
            if isinstance(t, dict)
        ])

    async def find_by_status(
        self, status: Optional[str]
    ) -> List[TicketRecord]:
        records: List[TicketRecord] = []
        after = None
        for _ in range(MAX_PAGES):
            data = await self.graphql(
                Q_LIST_ORDERS, {"first": PAGE_SIZE, "after": after}
            )
            page = data.get("orders") or {}
            for node in page.get("nodes") or []:
                for t in _ticket_map(node.get("metafield")).values():
                    if not isinstance(t, dict):
                        continue
                    rec = TicketRecord.from_dict(t)
                    if status_matches(rec.status, status):
                        records.append(rec)
            info = page.get("pageInfo") or {}
            if not info.get("hasNextPage"):
                break
            after = info.get("endCursor")
        else:
            logger.warning(
                "ticket listing truncated after %d pages of orders", MAX_PAGES
            )
        return newest_first(records)
