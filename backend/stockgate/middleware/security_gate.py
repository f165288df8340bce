"""
Request security gate shared by the HTTP middleware and the route guards.

Each request goes through the same ordered checks; the first failure
short-circuits with a plain-text rejection and the handler is never called:

    identity -> sweep -> deny-list -> method -> rate limit -> audit
             -> origin / preflight -> handler -> decorate
"""

import functools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from starlette.requests import Request
from starlette.responses import Response

from stockgate.errors import (
    Denied,
    GateError,
    HandlerError,
    MethodNotAllowed,
    RateLimited,
    SecurityViolation,
)
from stockgate.logging_config import log_with_context
from stockgate.managers.config.config_manager import ConfigManager, config_manager
from stockgate.managers.config.config_models import SecurityPolicy
from stockgate.middleware.client_identity import resolve_identity
from stockgate.middleware.rate_limiter import RateLimiter
from stockgate.middleware.request_auditor import (
    AuditResult,
    RequestAuditor,
    parse_content_length,
)
from stockgate.middleware.security_headers import (
    allowed_origin,
    apply_cors_headers,
    apply_no_store,
    apply_security_headers,
    is_sensitive_path,
)
from stockgate.middleware.security_utils import generate_request_id

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

INVALID_ORIGIN_ISSUE = "Invalid origin"


@dataclass
class GateContext:
    """What the gate learned about a request that passed screening."""

    identity: str
    request_id: str
    origin: Optional[str] = None
    preflight: bool = False


class SecurityGate:
    """Screens requests against a ``SecurityPolicy`` and decorates responses."""

    def __init__(
        self,
        policy: SecurityPolicy,
        rate_limiter: Optional[RateLimiter] = None,
        auditor: Optional[RequestAuditor] = None,
        request_id_factory: Callable[[], str] = generate_request_id,
    ):
        self.policy = policy
        self.rate_limiter = rate_limiter or RateLimiter.from_policy(policy)
        self.auditor = auditor or RequestAuditor.from_policy(policy)
        self._request_id_factory = request_id_factory

    @classmethod
    def from_config(cls, manager: Optional[ConfigManager] = None) -> "SecurityGate":
        manager = manager or config_manager
        return cls(manager.security_policy)

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def resolve_identity(self, request: Request) -> str:
        return resolve_identity(request, trust_forwarded_for=self.policy.trust_forwarded_for)

    def is_denied(self, identity: str) -> bool:
        return identity in self.policy.denied_identities

    def is_api_path(self, path: str) -> bool:
        return path.startswith(self.policy.api_prefix)

    def requires_auth(self, method: str) -> bool:
        return method.upper() in self.policy.auth_required_methods

    def rate_limit_key(self, identity: str, request: Request) -> str:
        """Bucket per identity, method and path so one busy endpoint cannot drain the rest."""
        return f"{identity}:{request.method.upper()}:{request.url.path}"

    def audit_request(self, request: Request) -> AuditResult:
        return self.auditor.audit(
            str(request.url), request.headers, parse_content_length(request.headers)
        )

    def check_origin(self, request: Request) -> Optional[str]:
        """Return the allowed origin for API requests, raising when it is not allowed.

        Requests without an Origin header pass; they are same-origin or not from a browser.
        """
        origin = request.headers.get("origin")
        if not origin or not self.is_api_path(request.url.path):
            return None
        matched = allowed_origin(origin, self.policy)
        if matched is None:
            raise SecurityViolation([INVALID_ORIGIN_ISSUE])
        return matched

    def screen(self, request: Request) -> GateContext:
        """Run the ordered checks, raising the first ``GateError`` encountered."""
        identity = self.resolve_identity(request)
        method = request.method.upper()

        self.rate_limiter.maybe_sweep()

        if self.is_denied(identity):
            raise Denied(identity)

        if method not in self.policy.allowed_methods:
            raise MethodNotAllowed(method, self.policy.allowed_methods)

        decision = self.rate_limiter.hit(self.rate_limit_key(identity, request))
        if decision.limited:
            raise RateLimited(decision.retry_after, decision.limit)

        audit = self.audit_request(request)
        if not audit.safe:
            raise SecurityViolation(audit.issues)

        origin = self.check_origin(request)

        request_id = self._request_id_factory()
        request.state.request_id = request_id
        request.state.client_identity = identity

        return GateContext(
            identity=identity,
            request_id=request_id,
            origin=origin,
            preflight=method == "OPTIONS" and origin is not None,
        )

    def decorate(self, request: Request, response: Response, context: GateContext) -> Response:
        apply_security_headers(response, self.policy, context.request_id)
        if context.origin is not None:
            apply_cors_headers(response, context.origin, self.policy, preflight=context.preflight)
        if is_sensitive_path(request.url.path, self.policy):
            apply_no_store(response)
        return response

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def handle(self, request: Request, call_next: Handler) -> Response:
        """Screen the request, await the handler once and decorate its response."""
        started = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            context = self.screen(request)
        except GateError as exc:
            self._log_rejection(request, exc)
            return exc.to_response()

        if self.is_api_path(path):
            logger.info(f"API request: {method} {path} from {context.identity}")

        if context.preflight:
            return self.decorate(request, Response(status_code=204), context)

        # CancelledError propagates; a cancelled request is never decorated.
        try:
            response = await call_next(request)
        except GateError as exc:
            response = exc.to_response()
        except Exception as exc:
            log_with_context(
                logger,
                logging.ERROR,
                "Unhandled error in guarded handler",
                exc_info=exc,
                method=method,
                path=path,
                identity=context.identity,
                request_id=context.request_id,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            return HandlerError(exc).to_response()

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{method} {path} completed in {elapsed_ms:.1f}ms")
        return self.decorate(request, response, context)

    def wrap(self, handler: Handler) -> Handler:
        """Return ``handler`` guarded by this gate."""

        @functools.wraps(handler)
        async def guarded(request: Request) -> Response:
            return await self.handle(request, handler)

        return guarded

    def _log_rejection(self, request: Request, exc: GateError) -> None:
        identity = self.resolve_identity(request)
        if isinstance(exc, SecurityViolation):
            logger.warning(f"Security violation from {identity}: {exc.issues}")
        elif isinstance(exc, RateLimited):
            logger.warning(f"Rate limit exceeded for {identity}")
        elif isinstance(exc, Denied):
            logger.warning(f"Denied request from {identity}")
        else:
            logger.warning(
                f"Rejected {request.method} {request.url.path} from {identity}: {exc.detail}"
            )


_default_gate: Optional[SecurityGate] = None


def get_security_gate() -> SecurityGate:
    """Return the process-wide gate, building it from configuration on first use."""
    global _default_gate
    if _default_gate is None:
        _default_gate = SecurityGate.from_config()
    return _default_gate


def set_security_gate(gate: Optional[SecurityGate]) -> None:
    """Replace the process-wide gate; None resets it to lazy construction."""
    global _default_gate
    _default_gate = gate
