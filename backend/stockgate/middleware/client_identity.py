"""Client identity resolution for rate limiting and deny-list checks.

Behind a reverse proxy request.client.host is the proxy address, so the
first X-Forwarded-For entry (or X-Real-IP) is used when trust_forwarded_for
is on. Only enable that when the proxy strips client-supplied forwarding
headers; otherwise a client can pick its own rate-limit bucket.
"""

from starlette.requests import HTTPConnection

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"
UNKNOWN_IDENTITY = "unknown"


def get_forwarded_for(connection: HTTPConnection) -> str:
    """Return the first address of the X-Forwarded-For chain, or an empty string."""
    header = connection.headers.get(FORWARDED_FOR_HEADER, "")
    return header.split(",")[0].strip()


def get_real_ip(connection: HTTPConnection) -> str:
    return connection.headers.get(REAL_IP_HEADER, "").strip()


def get_client_host(connection: HTTPConnection) -> str:
    """Return the direct peer address, or an empty string when the server did not provide one."""
    client = getattr(connection, "client", None)
    if not client:
        return ""
    return getattr(client, "host", "") or ""


def resolve_identity(connection: HTTPConnection, trust_forwarded_for: bool = True) -> str:
    """Resolve the string used to key rate limits and deny-list lookups.

    Never fails: degrades to ``"unknown"`` when no address is available.
    """
    if trust_forwarded_for:
        forwarded = get_forwarded_for(connection) or get_real_ip(connection)
        if forwarded:
            return forwarded

    return get_client_host(connection) or UNKNOWN_IDENTITY
