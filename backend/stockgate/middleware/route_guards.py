"""
Composable guards for individual route handlers.

Each guard takes an ``async (Request) -> Response`` handler and returns one
with the same signature, so they stack in any order. ``with_full_security``
fixes the order: validation runs innermost, then auth, then CORS, and the
gate's base checks run outermost, each exactly once.
"""

import functools
import json
import logging
from typing import Collection, Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

from stockgate.errors import BadRequest, GateError, Unauthorized
from stockgate.middleware.security_gate import Handler, SecurityGate, get_security_gate
from stockgate.middleware.security_headers import allowed_origin, apply_cors_headers
from stockgate.middleware.security_utils import VALIDATORS, validate_input

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def with_security(handler: Handler, gate: Optional[SecurityGate] = None) -> Handler:
    """Guard a handler with the gate's full check chain and response decoration.

    Without ``gate`` the process-wide gate is looked up on each request.
    """
    if gate is not None:
        return gate.wrap(handler)

    @functools.wraps(handler)
    async def secured(request: Request) -> Response:
        return await get_security_gate().handle(request, handler)

    return secured


def has_credentials(request: Request, gate: SecurityGate) -> bool:
    return bool(
        request.headers.get("authorization")
        or request.cookies.get(gate.policy.session_cookie_name)
    )


def check_credentials(request: Request, gate: SecurityGate) -> None:
    """Require an Authorization header or session cookie.

    Only presence and shape are checked; token verification belongs to the
    auth provider and the handler.
    """
    auth_header = request.headers.get("authorization")
    if not has_credentials(request, gate):
        raise Unauthorized()
    if auth_header and not auth_header.startswith(BEARER_PREFIX):
        raise Unauthorized("Invalid authorization header")


def with_auth(
    handler: Handler,
    gate: Optional[SecurityGate] = None,
    methods: Optional[Collection[str]] = None,
) -> Handler:
    """Reject requests without credentials.

    Args:
        handler: Route handler to guard.
        gate: Gate supplying the policy; defaults to the process-wide gate.
        methods: Only enforce for these methods; None enforces for every method.
    """
    enforced = {m.upper() for m in methods} if methods is not None else None

    @functools.wraps(handler)
    async def authenticated(request: Request) -> Response:
        active_gate = gate or get_security_gate()
        if enforced is None or request.method.upper() in enforced:
            try:
                check_credentials(request, active_gate)
            except GateError as exc:
                logger.warning(f"Authentication failed for {request.url.path}: {exc.detail}")
                return exc.to_response()
        return await handler(request)

    return authenticated


def with_auth_for_policy_methods(handler: Handler, gate: Optional[SecurityGate] = None) -> Handler:
    """Require credentials only for the active policy's auth-required methods."""
    authenticated = with_auth(handler, gate=gate)

    @functools.wraps(handler)
    async def policy_authenticated(request: Request) -> Response:
        active_gate = gate or get_security_gate()
        if active_gate.requires_auth(request.method):
            return await authenticated(request)
        return await handler(request)

    return policy_authenticated


async def read_json_body(request: Request, max_body_bytes: int) -> Dict:
    """Parse the JSON object body; an empty body reads as ``{}``."""
    body = await request.body()
    if len(body) > max_body_bytes:
        raise BadRequest("Request body too large")
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except (ValueError, RecursionError):
        raise BadRequest("Invalid request body")
    if not isinstance(data, dict):
        raise BadRequest("Invalid request body")
    return data


def with_validation(
    handler: Handler,
    validation_schema: Dict[str, str],
    gate: Optional[SecurityGate] = None,
) -> Handler:
    """Validate named body fields before calling the handler.

    Args:
        handler: Route handler to guard.
        validation_schema: Field name -> validator name (``email``, ``password``,
            ``stock_symbol``, ``username``, ``phone``). Absent or empty fields
            are not checked.
        gate: Gate supplying the body size limit.

    Raises:
        ValueError: if the schema names an unknown validator.
    """
    unknown = set(validation_schema.values()) - set(VALIDATORS)
    if unknown:
        raise ValueError(f"Unknown validation types: {sorted(unknown)}")

    @functools.wraps(handler)
    async def validated(request: Request) -> Response:
        active_gate = gate or get_security_gate()
        try:
            data = await read_json_body(request, active_gate.policy.max_body_bytes)
            for field_name, kind in validation_schema.items():
                value = data.get(field_name)
                if value and not validate_input(value, kind):
                    raise BadRequest(f"Invalid {field_name} format")
        except BadRequest as exc:
            logger.warning(f"Validation failed for {request.url.path}: {exc.detail}")
            return exc.to_response()
        return await handler(request)

    return validated


def with_cors(handler: Handler, gate: Optional[SecurityGate] = None) -> Handler:
    """Add CORS headers to responses for allowed origins."""

    @functools.wraps(handler)
    async def cors(request: Request) -> Response:
        active_gate = gate or get_security_gate()
        response = await handler(request)
        origin = allowed_origin(request.headers.get("origin"), active_gate.policy)
        if origin is not None:
            apply_cors_headers(response, origin, active_gate.policy)
        return response

    return cors


def with_full_security(
    handler: Handler,
    require_auth: Optional[bool] = None,
    validation_schema: Optional[Dict[str, str]] = None,
    enable_cors: bool = False,
    gate: Optional[SecurityGate] = None,
) -> Handler:
    """Compose the guards in their fixed order.

    ``require_auth=None`` requires credentials only for the policy's
    auth-required methods; True requires them always; False never.
    """
    wrapped = handler

    if validation_schema:
        wrapped = with_validation(wrapped, validation_schema, gate=gate)

    if require_auth is None:
        wrapped = with_auth_for_policy_methods(wrapped, gate=gate)
    elif require_auth:
        wrapped = with_auth(wrapped, gate=gate)

    if enable_cors:
        wrapped = with_cors(wrapped, gate=gate)

    return with_security(wrapped, gate=gate)
