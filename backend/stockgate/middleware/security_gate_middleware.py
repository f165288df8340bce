"""HTTP middleware that puts every route behind the security gate.

Uses the shared ``SecurityGate`` so route guards and the middleware apply the
same policy and rate-limit table.
"""

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from stockgate.middleware.security_gate import SecurityGate, get_security_gate


class SecurityGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, gate: Optional[SecurityGate] = None) -> None:
        super().__init__(app)
        self.gate = gate or get_security_gate()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        return await self.gate.handle(request, call_next)
