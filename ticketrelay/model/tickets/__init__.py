# model/tickets/__init__.py
from ...config import Settings
from .base import TicketRecord, TicketStore, DETAIL_FIELDS
from ._memory import MemoryTicketStore


# Factory keeps server.py simple and constructor-agnostic:
def new_store(settings: Settings) -> TicketStore:
    backend = settings.tickets_backend
    if backend == "sql":
        from ._sql import SqlTicketStore
        return SqlTicketStore(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )
    if backend == "redis":
        from ._redis import RedisTicketStore
        return RedisTicketStore(
            settings.redis_url, max_connections=settings.redis_max_conn
        )
    if backend == "shopify":
        from ._shopify import ShopifyTicketStore
        return ShopifyTicketStore(
            settings.shopify_shop,
            settings.shopify_admin_token,
            settings.shopify_api_version,
        )
    if backend == "memory":
        return MemoryTicketStore()
    raise RuntimeError(f"unknown TICKETS_BACKEND {backend!r}")


__all__ = [
    "TicketRecord", "TicketStore", "MemoryTicketStore", "DETAIL_FIELDS",
    "new_store",
]
