from __future__ import annotations
import logging
import os
from typing import Optional

import orjson
from fastapi import Depends, FastAPI, Request
from fastapi.responses import (
    HTMLResponse, ORJSONResponse, PlainTextResponse
)
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .adminauth import require_admin
from .config import Settings, load_settings
from .errors import (
    AuthenticationError, MethodError, NotFoundError, RelayError, StoreError,
    ValidationError,
)
from .logging_utils import configure_logging
from .middleware import (
    BodySizeLimitMiddleware, RateLimitMiddleware, SecurityHeadersMiddleware,
    payload_too_large,
)
from .model.tickets import TicketStore, new_store
from .proxysig import ProxyVerifier
from .relay import attach_ticket, validate_attach_payload

logger = logging.getLogger(__name__)

HERE = os.path.dirname(os.path.abspath(__file__))
templates = Jinja2Templates(directory=os.path.join(HERE, "templates"))

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def error_response(err: RelayError) -> ORJSONResponse:
    return ORJSONResponse(status_code=err.status_code, content=err.payload())


def server_error() -> ORJSONResponse:
    return error_response(RelayError())


def status_filter(status: Optional[str]) -> Optional[str]:
    # "", None and any casing of "all" -> no filter
    if not status or status.lower() == "all":
        return None
    return status


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[TicketStore] = None,
) -> FastAPI:
    settings = settings or load_settings()
    store = store if store is not None else new_store(settings)
    verifier = ProxyVerifier(settings.proxy_secret, settings.proxy_debug)
    mount = settings.proxy_mount

    app = FastAPI(
        title="ticketrelay",
        version=__version__,
        default_response_class=ORJSONResponse,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.verifier = verifier
    app.mount("/static", StaticFiles(directory=os.path.join(HERE, "static")),
              name="static")

    # last added runs first; security headers wrap every response
    app.add_middleware(BodySizeLimitMiddleware,
                       max_bytes=settings.max_body_bytes)
    if settings.rate_limit_max > 0:
        app.add_middleware(RateLimitMiddleware,
                           limit=settings.rate_limit_max,
                           window_seconds=settings.rate_limit_window)
    app.add_middleware(SecurityHeadersMiddleware)

    # ---
    # startup / shutdown
    # ---
    @app.on_event("startup")
    async def _say_hello():
        configure_logging(settings.log_level)
        print('=' * 50)
        print(f'ticketrelay {__version__} is starting up...')
        print(f'   - Mount:          {mount}')
        print(f'   - Tickets Backend: {store.backend}')
        print(f'   - Proxy secret:   '
              f'{"set" if settings.proxy_secret else "MISSING (all signed requests will fail)"}')
        print(f'   - Admin auth:     '
              f'{"on" if settings.admin_enabled else "no credentials, admin closed"}')
        print('=' * 50)

    @app.on_event("startup")
    async def _store_start():
        await store.start()

    @app.on_event("shutdown")
    async def _store_stop():
        await store.close()

    # ----------------------------
    # Error mapping
    # ----------------------------
    @app.exception_handler(RelayError)
    async def _relay_error(request: Request, exc: RelayError):
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(NotFoundError(request.url.path))
        if exc.status_code == 405:
            return error_response(MethodError(request.method))
        return ORJSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # ----------------------------
    # Health + landing page
    # ----------------------------
    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        return "ok"

    @app.get("/", response_class=HTMLResponse)
    async def landing_page(request: Request):
        return templates.TemplateResponse(
            request,
            "landing.html",
            {
                "site_name": "ticketrelay",
                "version": __version__,
                "mount": mount,
            },
        )

    # ----------------------------
    # App proxy: attach a ticket to an order
    # ----------------------------
    @app.api_route(f"{mount}/attach-ticket", methods=ALL_METHODS)
    async def attach_ticket_route(request: Request):
        if request.method != "POST":
            raise MethodError(request.method)
        try:
            if not verifier.verify_request(request):
                raise AuthenticationError()

            raw = await request.body()
            if len(raw) > settings.max_body_bytes:
                return payload_too_large()
            try:
                body = orjson.loads(raw) if raw else {}
            except orjson.JSONDecodeError:
                body = {}

            attach = validate_attach_payload(body)
            return await attach_ticket(store, attach)
        except StoreError as e:
            logger.error("[attach-ticket] %s store failed: %s",
                         e.backend or store.backend, e)
            return server_error()
        except RelayError:
            raise
        except Exception:
            logger.exception("[attach-ticket] unexpected failure")
            return server_error()

    # ----------------------------
    # App proxy: read tickets of one order
    # ----------------------------
    @app.api_route(f"{mount}/get-tickets", methods=ALL_METHODS)
    async def get_tickets_route(request: Request):
        if request.method != "GET":
            raise MethodError(request.method)
        try:
            if not verifier.verify_request(request):
                raise AuthenticationError()

            order_id = (request.query_params.get("order_id") or "").strip()
            if not order_id:
                raise ValidationError(["order_id"])

            tickets = await store.find_by_order(order_id)
            return {
                "ok": True,
                "order_id": order_id,
                "tickets": [t.to_dict() for t in tickets],
            }
        except StoreError as e:
            logger.error("[get-tickets] %s store failed: %s",
                         e.backend or store.backend, e)
            return server_error()
        except RelayError:
            raise
        except Exception:
            logger.exception("[get-tickets] unexpected failure")
            return server_error()

    # ----------------------------
    # Admin
    # ----------------------------
    @app.get("/admin/panel", response_class=HTMLResponse)
    async def admin_panel(request: Request,
                          user: str = Depends(require_admin)):
        return templates.TemplateResponse(
            request,
            "admin-panel.html",
            {"site_name": "ticketrelay", "user": user},
        )

    @app.get("/admin/ui/tickets")
    async def admin_tickets(
        status: Optional[str] = None,
        user: str = Depends(require_admin),
    ):
        try:
            tickets = await store.find_by_status(status_filter(status))
        except Exception:
            logger.exception("Error fetching tickets")
            return ORJSONResponse(
                status_code=500, content={"error": "Internal server error"}
            )
        return [t.to_dict() for t in tickets]

    return app


def app_from_env() -> FastAPI:
    """uvicorn factory: ``uvicorn ticketrelay.server:app_from_env --factory``"""
    return create_app(load_settings())
