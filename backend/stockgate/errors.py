"""
Exception classes for the security gate.

Every rejection the gate produces is a ``GateError``; the gate turns them into
plain-text responses in one place so no internal detail reaches the client.
"""

from typing import Dict, Iterable, List, Optional

from starlette.responses import PlainTextResponse, Response


class GateError(Exception):
    """Base exception for gate rejections."""

    status_code: int = 500
    detail: str = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.detail = detail or self.detail
        self.headers: Dict[str, str] = dict(headers or {})
        super().__init__(self.detail)

    def to_response(self) -> Response:
        return PlainTextResponse(self.detail, status_code=self.status_code, headers=self.headers)


class Denied(GateError):
    """Raised when the client identity is on the deny-list."""

    status_code = 403
    detail = "Access Denied"

    def __init__(self, identity: str):
        super().__init__()
        self.identity = identity


class RateLimited(GateError):
    """Raised when an identity has used up its quota for the current window."""

    status_code = 429
    detail = "Too Many Requests"

    def __init__(self, retry_after: int, limit: int):
        super().__init__(
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            }
        )
        self.retry_after = retry_after
        self.limit = limit


class MethodNotAllowed(GateError):
    """Raised when the request method is outside the allowed set."""

    status_code = 405
    detail = "Method Not Allowed"

    def __init__(self, method: str, allowed: Iterable[str]):
        super().__init__(headers={"Allow": ", ".join(sorted(allowed))})
        self.method = method


class SecurityViolation(GateError):
    """Raised when the audit flags a request or its origin is not allowed."""

    status_code = 403
    detail = "Forbidden"

    def __init__(self, issues: List[str]):
        super().__init__()
        self.issues = list(issues)


class Unauthorized(GateError):
    """Raised when a guarded route receives no usable credentials."""

    status_code = 401
    detail = "Unauthorized"


class BadRequest(GateError):
    """Raised when a request body fails validation."""

    status_code = 400
    detail = "Bad Request"


class HandlerError(GateError):
    """Wraps an uncaught exception from a guarded handler."""

    status_code = 500
    detail = "Internal Server Error"

    def __init__(self, original: Optional[BaseException] = None):
        super().__init__()
        self.original = original
