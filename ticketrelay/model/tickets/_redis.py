from __future__ import annotations
from typing import Dict, List, Optional
import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from ...errors import StoreError
from .base import (
    TicketRecord, TicketStore, merge_ticket, newest_first, status_matches
)


# ---- keys
def k_ticket(ticket_id: str) -> str: return f"ticket:{ticket_id}"
def k_order(order_id: str) -> str: return f"order:{order_id}:tickets"


TICKET_INDEX = "tickets"
WATCH_RETRIES = 5


class RedisTicketStore(TicketStore):
    backend = "redis"

    def __init__(self, url: str = "redis://127.0.0.1:6379", *,
                 max_connections: int = 64,
                 r: Optional[redis.Redis] = None) -> None:
        self.url = url
        self.max_connections = max_connections
        self.r = r

    async def start(self) -> None:
        if self.r is None:
            self.r = redis.from_url(
                self.url,
                decode_responses=True,
                max_connections=self.max_connections,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
                retry_on_timeout=True,
            )

    async def close(self) -> None:
        if self.r is not None:
            await self.r.aclose()
            self.r = None

    async def _get_many(self, ticket_ids) -> List[TicketRecord]:
        pipe = self.r.pipeline()
        for tid in ticket_ids:
            pipe.hgetall(k_ticket(tid))
        rows: List[Dict[str, str]] = await pipe.execute()
        return [TicketRecord.from_dict(h) for h in rows if h]

    async def upsert(
        self, order_id: str, ticket_id: str, status: str, **details: str
    ) -> TicketRecord:
        key = k_ticket(ticket_id)
        try:
            async with self.r.pipeline(transaction=True) as pipe:
                for _ in range(WATCH_RETRIES):
                    try:
                        # a write to the watched hash before EXEC raises WatchError
                        await pipe.watch(key)
                        h = await pipe.hgetall(key)
                        prev = TicketRecord.from_dict(h) if h else None
                        rec = merge_ticket(
                            prev, order_id=order_id, ticket_id=ticket_id,
                            status=status, **details
                        )
                        pipe.multi()
                        pipe.hset(key, mapping=rec.to_dict())
                        pipe.sadd(TICKET_INDEX, ticket_id)
                        if prev is not None and prev.order_id != order_id:
                            pipe.srem(k_order(prev.order_id), ticket_id)
                        pipe.sadd(k_order(order_id), ticket_id)
                        await pipe.execute()
                        return rec
                    except WatchError:
                        continue
        except RedisError as e:
            raise StoreError(f"upsert {ticket_id} failed: {e}",
                             self.backend) from e
        raise StoreError(
            f"upsert {ticket_id} kept conflicting after {WATCH_RETRIES} tries",
            self.backend,
        )

    async def find_by_status(
        self, status: Optional[str]
    ) -> List[TicketRecord]:
        try:
            ids = await self.r.smembers(TICKET_INDEX)
            records = await self._get_many(sorted(ids))
        except RedisError as e:
            raise StoreError(f"query failed: {e}", self.backend) from e
        return newest_first(
            [t for t in records if status_matches(t.status, status)]
        )

    async def find_by_order(self, order_id: str) -> List[TicketRecord]:
        try:
            ids = await self.r.smembers(k_order(order_id))
            records = await self._get_many(sorted(ids))
        except RedisError as e:
            raise StoreError(f"query failed: {e}", self.backend) from e
        return newest_first(
            # index entries can lag behind a concurrent move
            [t for t in records if t.order_id == order_id]
        )
