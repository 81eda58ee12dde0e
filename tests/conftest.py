from __future__ import annotations

from typing import List, Optional

import pytest
from starlette.testclient import TestClient

from ticketrelay.config import Settings
from ticketrelay.errors import StoreError
from ticketrelay.model.tickets import MemoryTicketStore, TicketStore
from ticketrelay.proxysig import sign_query
from ticketrelay.server import create_app

SECRET = "hush"
ADMIN = ("admin", "s3cret")

PROXY_PARAMS = [
    ("shop", "zuvic-in.myshopify.com"),
    ("logged_in_customer_id", "7301"),
    ("path_prefix", "/apps/tickets"),
    ("timestamp", "1729000000"),
]


class FailingStore(TicketStore):
    """Every call fails the way a real backend outage would."""
    backend = "failing"

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or StoreError("connection refused", "failing")
        self.calls = 0

    async def upsert(self, order_id, ticket_id, status, **details):
        self.calls += 1
        raise self.exc

    async def find_by_status(self, status: Optional[str]) -> List:
        self.calls += 1
        raise self.exc

    async def find_by_order(self, order_id: str) -> List:
        self.calls += 1
        raise self.exc


@pytest.fixture
def settings() -> Settings:
    return Settings(
        proxy_secret=SECRET,
        ui_user=ADMIN[0],
        ui_pass=ADMIN[1],
        rate_limit_max=0,
    )


@pytest.fixture
def store() -> MemoryTicketStore:
    return MemoryTicketStore()


@pytest.fixture
def client(settings, store):
    with TestClient(create_app(settings, store)) as c:
        yield c


@pytest.fixture
def make_client():
    """Build a client for a custom settings/store combination."""
    clients = []

    def _make(settings: Settings, store: TicketStore | None = None):
        c = TestClient(create_app(settings, store or MemoryTicketStore()))
        c.__enter__()
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture
def signed_url(settings):
    def _signed(path: str, extra=(), secret: str | None = None) -> str:
        params = list(PROXY_PARAMS) + list(extra)
        qs = sign_query(params, settings.proxy_secret if secret is None
                        else secret)
        return f"{path}?{qs}"
    return _signed
