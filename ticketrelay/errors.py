from typing import Any, Dict, List, Optional


class ConfigError(Exception):
    """Raised at startup when an environment variable is malformed."""


class RelayError(Exception):
    """Base for every error that maps onto a JSON error response.

    Subclasses pin ``status_code`` and ``code``; ``payload()`` renders the
    body as ``{"ok": false, "error": <code>, ...extra}``.
    """
    status_code = 500
    code = "server_error"

    def __init__(self, message: str = "", **extra: Any) -> None:
        super().__init__(message or self.code)
        self.extra = extra

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": False, "error": self.code}
        body.update(self.extra)
        return body


class AuthenticationError(RelayError):
    # message must never carry the expected signature
    status_code = 401
    code = "invalid_signature"


class ValidationError(RelayError):
    status_code = 400
    code = "missing_fields"

    def __init__(self, fields: List[str]) -> None:
        super().__init__(f"missing fields: {', '.join(fields)}",
                         fields=list(fields))
        self.fields = list(fields)


class MethodError(RelayError):
    status_code = 405
    code = "method_not_allowed"

    def __init__(self, method: str) -> None:
        super().__init__(f"method {method} not allowed", method=method)
        self.method = method


class StoreError(RelayError):
    """Downstream persistence failure.

    The message is for operators only; ``payload()`` never includes it.
    """
    status_code = 500
    code = "server_error"

    def __init__(self, message: str = "ticket store failure",
                 backend: Optional[str] = None) -> None:
        super().__init__(message)
        self.backend = backend


class NotFoundError(RelayError):
    status_code = 404
    code = "not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"no route for {path}", path=path)
        self.path = path
