import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError
from .helpers import as_flag

BACKENDS = ("memory", "sql", "redis", "shopify")


def normalize_mount(mount: Optional[str]) -> str:
    mount = (mount or "").strip() or "/tickets"
    if not mount.startswith("/"):
        mount = "/" + mount
    # "/" on its own would give "//attach-ticket"
    return mount.rstrip("/")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup and never mutated."""
    host: str = "0.0.0.0"
    port: int = 3000
    proxy_secret: str = ""
    proxy_mount: str = "/tickets"
    proxy_debug: bool = False

    ui_user: str = ""
    ui_pass: str = ""

    tickets_backend: str = "memory"
    database_url: str = "sqlite:///./tickets.db"
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_timeout: int = 30
    redis_url: str = "redis://127.0.0.1:6379"
    redis_max_conn: int = 64
    shopify_shop: str = ""
    shopify_admin_token: str = ""
    shopify_api_version: str = "2024-10"

    rate_limit_max: int = 100
    rate_limit_window: int = 15 * 60
    max_body_bytes: int = 512 * 1024
    log_level: str = "INFO"

    @property
    def admin_enabled(self) -> bool:
        return bool(self.ui_user and self.ui_pass)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    backend = env.get("TICKETS_BACKEND", "memory").strip().lower()
    if backend not in BACKENDS:
        raise ConfigError(
            f"TICKETS_BACKEND must be one of {', '.join(BACKENDS)}, "
            f"got {backend!r}"
        )

    return Settings(
        host=env.get("HOST", "0.0.0.0"),
        port=_int(env, "PORT", 3000),
        proxy_secret=env.get("PROXY_SECRET", ""),
        proxy_mount=normalize_mount(env.get("PROXY_MOUNT")),
        proxy_debug=as_flag(env.get("PROXY_DEBUG")),
        ui_user=env.get("UI_USER", ""),
        ui_pass=env.get("UI_PASS", ""),
        tickets_backend=backend,
        database_url=env.get("DATABASE_URL", "sqlite:///./tickets.db"),
        db_pool_size=_int(env, "DB_POOL_SIZE", 5),
        db_max_overflow=_int(env, "DB_MAX_OVERFLOW", 5),
        db_pool_timeout=_int(env, "DB_POOL_TIMEOUT", 30),
        redis_url=env.get("REDIS_URL", "redis://127.0.0.1:6379"),
        redis_max_conn=_int(env, "REDIS_MAX_CONN", 64),
        shopify_shop=env.get("SHOPIFY_SHOP", ""),
        shopify_admin_token=env.get("SHOPIFY_ADMIN_TOKEN", ""),
        shopify_api_version=env.get("SHOPIFY_API_VERSION", "2024-10"),
        rate_limit_max=_int(env, "RATE_LIMIT_MAX", 100),
        rate_limit_window=_int(env, "RATE_LIMIT_WINDOW", 15 * 60),
        max_body_bytes=_int(env, "MAX_BODY_BYTES", 512 * 1024),
        log_level=env.get("LOG_LEVEL", "INFO"),
    )
