"""Request security gate: middleware, route guards and their building blocks."""

from .rate_limiter import InMemoryRateLimitStore, RateLimitDecision, RateLimiter, RateLimitStore
from .request_auditor import AuditResult, RequestAuditor
from .route_guards import with_auth, with_cors, with_full_security, with_security, with_validation
from .security_gate import SecurityGate, get_security_gate, set_security_gate
from .security_gate_middleware import SecurityGateMiddleware

__all__ = [
    "AuditResult",
    "InMemoryRateLimitStore",
    "RateLimitDecision",
    "RateLimitStore",
    "RateLimiter",
    "RequestAuditor",
    "SecurityGate",
    "SecurityGateMiddleware",
    "get_security_gate",
    "set_security_gate",
    "with_auth",
    "with_cors",
    "with_full_security",
    "with_security",
    "with_validation",
]
