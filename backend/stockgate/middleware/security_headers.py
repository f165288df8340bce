"""Response decoration: fixed security headers, CORS headers and no-store caching."""

from typing import Dict, Optional

from starlette.responses import Response

from stockgate.managers.config.config_models import SecurityPolicy

REQUEST_ID_HEADER = "X-Request-ID"

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def security_headers(policy: SecurityPolicy) -> Dict[str, str]:
    """Headers the gate sets on every response it lets through."""
    return {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": policy.frame_options,
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": policy.referrer_policy,
    }


def cors_headers(origin: str, policy: SecurityPolicy, preflight: bool = False) -> Dict[str, str]:
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": policy.cors_allow_methods,
        "Access-Control-Allow-Headers": policy.cors_allow_headers,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }
    if preflight:
        headers["Access-Control-Max-Age"] = str(policy.cors_max_age)
    return headers


def allowed_origin(origin: Optional[str], policy: SecurityPolicy) -> Optional[str]:
    """Return the origin when it is on the allow-list, else None."""
    if not origin:
        return None
    normalized = origin.rstrip("/")
    return normalized if normalized in policy.allowed_origins else None


def is_sensitive_path(path: str, policy: SecurityPolicy) -> bool:
    return any(path.startswith(prefix) for prefix in policy.sensitive_path_prefixes)


def apply_security_headers(
    response: Response, policy: SecurityPolicy, request_id: str
) -> Response:
    for name, value in security_headers(policy).items():
        response.headers[name] = value
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def apply_cors_headers(
    response: Response, origin: str, policy: SecurityPolicy, preflight: bool = False
) -> Response:
    for name, value in cors_headers(origin, policy, preflight=preflight).items():
        response.headers[name] = value
    return response


def apply_no_store(response: Response) -> Response:
    """Force no-store caching, replacing whatever the handler set."""
    for name, value in NO_STORE_HEADERS.items():
        response.headers[name] = value
    return response
