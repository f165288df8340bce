"""Shared fixtures for gate tests."""

from typing import Dict, Optional

import pytest
from starlette.requests import Request

from stockgate.managers.config.config_models import SecurityPolicy
from stockgate.middleware.rate_limiter import RateLimiter
from stockgate.middleware.security_gate import SecurityGate, set_security_gate

DENIED_IP = "203.0.113.66"


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    """Small quota so limits are reachable in a few requests."""
    return SecurityPolicy(
        max_requests=3,
        window_ms=60_000,
        sweep_probability=0.0,
        denied_identities=frozenset({DENIED_IP}),
    )


@pytest.fixture
def gate(policy, clock):
    limiter = RateLimiter.from_policy(policy, clock=clock, rng=lambda: 1.0)
    return SecurityGate(policy, rate_limiter=limiter)


@pytest.fixture(autouse=True)
def reset_global_gate():
    yield
    set_security_gate(None)


def make_request(
    path: str = "/api/portfolio",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    client: Optional[str] = "127.0.0.1",
    query_string: str = "",
    body: bytes = b"",
) -> Request:
    """Build a starlette Request without a running server."""
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "root_path": "",
        "query_string": query_string.encode("latin-1"),
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ],
        "client": (client, 50000) if client else None,
        "server": ("testserver", 80),
    }
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


@pytest.fixture
def request_factory():
    return make_request
