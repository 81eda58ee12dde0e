"""App-proxy signature checks.

The storefront signs every proxied request by sorting the decoded query
parameters (minus ``signature``), gluing them together as ``key=value``
with no separator and taking the hex HMAC-SHA256 of that string. We have to
reproduce that byte for byte, so the input is always the raw query string
of the URL, never a re-serialized parameter map.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode

from starlette.requests import Request

logger = logging.getLogger(__name__)

SIGNATURE_PARAM = "signature"

Pairs = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _pairs(raw_query: Optional[str]) -> List[Tuple[str, str]]:
    # '&' only, '+' -> ' ', keys without '=' get ''
    return parse_qsl(raw_query or "", keep_blank_values=True)


def canonical_message(raw_query: Optional[str]) -> str:
    pairs = [(k, v) for k, v in _pairs(raw_query) if k != SIGNATURE_PARAM]
    # code point order == UTF-8 byte order; ties broken by value
    pairs.sort()
    return "".join(f"{k}={v}" for k, v in pairs)


def expected_signature(raw_query: Optional[str], secret: str) -> str:
    msg = canonical_message(raw_query)
    # surrogateescape gives back the raw bytes of a non-UTF-8 env secret
    return hmac.new(
        secret.encode("utf-8", "surrogateescape"), msg.encode(),
        hashlib.sha256,
    ).hexdigest()


def provided_signature(raw_query: Optional[str]) -> str:
    for k, v in _pairs(raw_query):
        if k == SIGNATURE_PARAM:
            return v
    return ""


def verify(
    raw_query: Optional[str],
    provided: Optional[str],
    secret: Optional[str],
    *,
    debug: bool = False,
) -> bool:
    provided = (provided or "").lower()
    # no secret configured -> nothing can be trusted
    if not secret or not provided:
        if debug:
            logger.warning(
                "proxy signature rejected: secret_set=%s provided=%r qs=%r",
                bool(secret), provided, raw_query,
            )
        return False

    try:
        expected = expected_signature(raw_query, secret)
        ok = hmac.compare_digest(provided.encode(), expected.encode())
    except UnicodeError:
        # lone surrogates cannot be UTF-8 encoded, so they never match
        if debug:
            logger.warning(
                "proxy signature rejected: unencodable input qs=%r",
                raw_query,
            )
        return False
    if not ok and debug:
        logger.warning(
            "proxy signature mismatch: provided=%s expected=%s qs=%r",
            provided, expected, raw_query,
        )
    return ok


def sign_query(params: Pairs, secret: str) -> str:
    """Return ``params`` urlencoded with a valid ``signature`` appended."""
    if isinstance(params, Mapping):
        params = list(params.items())
    qs = urlencode(list(params))
    sig = expected_signature(qs, secret)
    return f"{qs}&{SIGNATURE_PARAM}={sig}" if qs else f"{SIGNATURE_PARAM}={sig}"


@dataclass(frozen=True)
class ProxyVerifier:
    secret: str = field(repr=False)
    debug: bool = False

    def verify_query(self, raw_query: str) -> bool:
        return verify(
            raw_query,
            provided_signature(raw_query),
            self.secret,
            debug=self.debug,
        )

    def verify_request(self, request: Request) -> bool:
        # ASGI hands over the undecoded bytes after the first "?"
        raw = request.scope.get("query_string", b"").decode("utf-8", "replace")
        return self.verify_query(raw)
