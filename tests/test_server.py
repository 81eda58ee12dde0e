"""HTTP surface of the relay."""

from __future__ import annotations

import pytest

from ticketrelay.config import Settings
from ticketrelay.errors import StoreError
from ticketrelay.model.tickets import MemoryTicketStore

from conftest import SECRET, FailingStore

ATTACH = "/tickets/attach-ticket"
GET_TICKETS = "/tickets/get-tickets"
BODY = {"order_id": "1001", "ticket_id": "T-9", "status": "open"}


class TestHealthAndLanding:
    def test_healthz(self, client) -> None:
        r = client.get("/healthz")
        assert r.status_code == 200
        assert r.text == "ok"
        assert r.headers["content-type"].startswith("text/plain")

    def test_landing_page(self, client) -> None:
        r = client.get("/")
        assert r.status_code == 200
        assert "text/html" in r.headers["content-type"]
        assert "/tickets/attach-ticket" in r.text

    def test_security_headers(self, client) -> None:
        r = client.get("/")
        assert "script-src 'self'" in r.headers["content-security-policy"]
        assert r.headers["x-content-type-options"] == "nosniff"

    def test_not_found(self, client) -> None:
        r = client.get("/nope")
        assert r.status_code == 404
        assert r.json() == {"ok": False, "error": "not_found", "path": "/nope"}

    def test_wrong_method_on_fixed_route(self, client) -> None:
        r = client.post("/healthz")
        assert r.status_code == 405
        assert r.json() == {
            "ok": False, "error": "method_not_allowed", "method": "POST",
        }


class TestAttachTicket:
    def test_success(self, client, store, signed_url) -> None:
        r = client.post(signed_url(ATTACH), json=BODY)
        assert r.status_code == 200
        assert r.json() == {
            "ok": True, "order_id": "1001", "ticket_id": "T-9",
            "status": "open",
        }
        assert store.tickets["T-9"].status == "open"

    def test_details_are_stored_not_echoed(
        self, client, store, signed_url
    ) -> None:
        body = dict(BODY, issue="wrong size", email="x@y.io")
        r = client.post(signed_url(ATTACH), json=body)
        assert r.status_code == 200
        assert "issue" not in r.json()
        assert store.tickets["T-9"].issue == "wrong size"
        assert store.tickets["T-9"].email == "x@y.io"

    def test_missing_fields(self, client, signed_url) -> None:
        r = client.post(signed_url(ATTACH), json={"order_id": "1001"})
        assert r.status_code == 400
        assert r.json() == {
            "ok": False,
            "error": "missing_fields",
            "fields": ["ticket_id", "status"],
        }

    @pytest.mark.parametrize("raw", [b"", b"not json", b"[1,2]", b"\xff\xfe"])
    def test_unusable_body_is_all_missing(self, client, signed_url, raw) -> None:
        r = client.post(
            signed_url(ATTACH), content=raw,
            headers={"content-type": "application/json"},
        )
        assert r.status_code == 400
        assert r.json()["fields"] == ["order_id", "ticket_id", "status"]

    def test_missing_signature(self, client, store) -> None:
        r = client.post(ATTACH + "?shop=x.myshopify.com", json=BODY)
        assert r.status_code == 401
        assert r.json() == {"ok": False, "error": "invalid_signature"}
        assert store.tickets == {}

    def test_tampered_query(self, client, store, signed_url) -> None:
        url = signed_url(ATTACH).replace("7301", "7302")
        r = client.post(url, json=BODY)
        assert r.status_code == 401
        assert r.json() == {"ok": False, "error": "invalid_signature"}
        assert store.tickets == {}

    def test_wrong_secret(self, client, signed_url) -> None:
        r = client.post(signed_url(ATTACH, secret="not-" + SECRET), json=BODY)
        assert r.status_code == 401

    def test_signature_checked_before_body(self, client) -> None:
        # an invalid body must not turn a 401 into a 400
        r = client.post(ATTACH + "?signature=00", json={})
        assert r.status_code == 401

    def test_expected_signature_never_leaks(self, signed_url, make_client) -> None:
        c = make_client(Settings(proxy_secret=SECRET, proxy_debug=True,
                                 rate_limit_max=0))
        r = c.post(ATTACH + "?a=1&signature=" + "0" * 64, json=BODY)
        assert r.status_code == 401
        assert r.json() == {"ok": False, "error": "invalid_signature"}

    def test_no_secret_fails_closed(self, signed_url, make_client) -> None:
        c = make_client(Settings(proxy_secret="", rate_limit_max=0))
        r = c.post(signed_url(ATTACH, secret=SECRET), json=BODY)
        assert r.status_code == 401

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
    def test_other_methods(self, client, method) -> None:
        r = client.request(method, ATTACH)
        assert r.status_code == 405
        assert r.json() == {
            "ok": False, "error": "method_not_allowed", "method": method,
        }

    def test_store_failure_is_opaque(self, signed_url, make_client) -> None:
        store = FailingStore(StoreError("password authentication failed",
                                        "sql"))
        c = make_client(Settings(proxy_secret=SECRET, rate_limit_max=0), store)
        r = c.post(signed_url(ATTACH), json=BODY)
        assert r.status_code == 500
        assert r.json() == {"ok": False, "error": "server_error"}
        assert store.calls == 1

    def test_unexpected_failure_is_caught(self, signed_url, make_client) -> None:
        store = FailingStore(RuntimeError("boom"))
        c = make_client(Settings(proxy_secret=SECRET, rate_limit_max=0), store)
        r = c.post(signed_url(ATTACH), json=BODY)
        assert r.status_code == 500
        assert r.json() == {"ok": False, "error": "server_error"}
        # and the process keeps serving
        assert c.get("/healthz").status_code == 200

    def test_body_too_large(self, signed_url, make_client) -> None:
        c = make_client(Settings(proxy_secret=SECRET, rate_limit_max=0,
                                 max_body_bytes=64))
        r = c.post(signed_url(ATTACH), json=dict(BODY, message="x" * 200))
        assert r.status_code == 413
        assert r.json() == {"ok": False, "error": "payload_too_large"}

    def test_custom_mount(self, signed_url, make_client) -> None:
        store = MemoryTicketStore()
        c = make_client(Settings(proxy_secret=SECRET, proxy_mount="/apps/support",
                                 rate_limit_max=0), store)
        assert c.post(signed_url(ATTACH), json=BODY).status_code == 404
        r = c.post(signed_url("/apps/support/attach-ticket"), json=BODY)
        assert r.status_code == 200
        assert "T-9" in store.tickets


class TestGetTickets:
    def test_lists_tickets_of_order(self, client, signed_url) -> None:
        client.post(signed_url(ATTACH), json=BODY)
        client.post(signed_url(ATTACH),
                    json={"order_id": "2002", "ticket_id": "T-1",
                          "status": "closed"})

        r = client.get(signed_url(GET_TICKETS, extra=[("order_id", "1001")]))
        assert r.status_code == 200
        data = r.json()
        assert data["ok"] is True
        assert data["order_id"] == "1001"
        assert [t["ticket_id"] for t in data["tickets"]] == ["T-9"]
        assert data["tickets"][0]["status"] == "open"

    def test_order_id_is_part_of_the_signature(self, client, signed_url) -> None:
        url = signed_url(GET_TICKETS, extra=[("order_id", "1001")])
        r = client.get(url.replace("order_id=1001", "order_id=1002"))
        assert r.status_code == 401

    def test_missing_order_id(self, client, signed_url) -> None:
        r = client.get(signed_url(GET_TICKETS))
        assert r.status_code == 400
        assert r.json() == {
            "ok": False, "error": "missing_fields", "fields": ["order_id"],
        }

    def test_unsigned(self, client) -> None:
        r = client.get(GET_TICKETS + "?order_id=1001")
        assert r.status_code == 401

    def test_post_not_allowed(self, client) -> None:
        assert client.post(GET_TICKETS).status_code == 405

    def test_store_failure(self, signed_url, make_client) -> None:
        c = make_client(Settings(proxy_secret=SECRET, rate_limit_max=0),
                        FailingStore())
        r = c.get(signed_url(GET_TICKETS, extra=[("order_id", "1")]))
        assert r.status_code == 500
        assert r.json() == {"ok": False, "error": "server_error"}
