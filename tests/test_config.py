from __future__ import annotations

import pytest

from ticketrelay.config import Settings, load_settings, normalize_mount
from ticketrelay.errors import ConfigError


def test_defaults() -> None:
    s = load_settings({})
    assert s == Settings()
    assert s.proxy_mount == "/tickets"
    assert s.proxy_secret == ""
    assert s.proxy_debug is False
    assert s.admin_enabled is False
    assert s.tickets_backend == "memory"


def test_reads_environment() -> None:
    s = load_settings({
        "PORT": "8080",
        "PROXY_SECRET": "hush",
        "PROXY_MOUNT": "apps/support/",
        "PROXY_DEBUG": "yes",
        "UI_USER": "ops",
        "UI_PASS": "pw",
        "TICKETS_BACKEND": "SQL",
        "DATABASE_URL": "postgres://u@db/tickets",
        "RATE_LIMIT_MAX": "0",
    })
    assert s.port == 8080
    assert s.proxy_secret == "hush"
    assert s.proxy_mount == "/apps/support"
    assert s.proxy_debug is True
    assert s.admin_enabled is True
    assert s.tickets_backend == "sql"
    assert s.database_url == "postgres://u@db/tickets"
    assert s.rate_limit_max == 0


@pytest.mark.parametrize("raw,expected", [
    (None, "/tickets"),
    ("", "/tickets"),
    ("  ", "/tickets"),
    ("/tickets", "/tickets"),
    ("tickets", "/tickets"),
    ("/a/b/", "/a/b"),
    ("/", ""),
])
def test_normalize_mount(raw, expected) -> None:
    assert normalize_mount(raw) == expected


@pytest.mark.parametrize("flag", ["0", "false", "no", "off", ""])
def test_debug_off(flag) -> None:
    assert load_settings({"PROXY_DEBUG": flag}).proxy_debug is False


def test_bad_integer() -> None:
    with pytest.raises(ConfigError, match="PORT"):
        load_settings({"PORT": "eighty"})


def test_bad_backend() -> None:
    with pytest.raises(ConfigError, match="TICKETS_BACKEND"):
        load_settings({"TICKETS_BACKEND": "mongo"})


def test_settings_are_frozen() -> None:
    s = Settings()
    with pytest.raises(AttributeError):
        s.proxy_secret = "changed"
