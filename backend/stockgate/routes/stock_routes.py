"""StockAgent API routes.

Every route sits behind ``SecurityGateMiddleware``; routes that need
credentials or body validation add the matching guard.
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from stockgate.errors import BadRequest
from stockgate.middleware.route_guards import has_credentials, with_auth, with_validation
from stockgate.middleware.security_gate import get_security_gate
from stockgate.middleware.security_headers import REQUEST_ID_HEADER, security_headers
from stockgate.middleware.security_utils import sanitize_input, validate_input

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["health"])
api_router = APIRouter(prefix="/api", tags=["api"])

SAMPLE_PORTFOLIO = [
    {"symbol": "AAPL", "shares": 10, "average_cost": 172.5},
    {"symbol": "MSFT", "shares": 5, "average_cost": 318.2},
    {"symbol": "NVDA", "shares": 3, "average_cost": 455.0},
]

SAMPLE_WATCHLIST = ["AMZN", "GOOGL", "TSLA"]

NOTIFICATION_SCHEMA = {"email": "email", "symbol": "stock_symbol"}


@health_router.get("/health")
async def health_check():
    return JSONResponse({"status": "healthy"})


@api_router.get("/portfolio")
async def get_portfolio(request: Request):
    """Return holdings, optionally filtered to one ticker symbol."""
    symbol = request.query_params.get("symbol")
    holdings = SAMPLE_PORTFOLIO
    if symbol is not None:
        if not validate_input(symbol, "stock_symbol"):
            raise BadRequest("Invalid symbol format")
        holdings = [h for h in SAMPLE_PORTFOLIO if h["symbol"] == symbol]
    return JSONResponse({"holdings": holdings})


@api_router.get("/watchlist")
async def get_watchlist(request: Request):
    return JSONResponse({"symbols": SAMPLE_WATCHLIST})


async def send_notification(request: Request):
    """Queue a price alert for a symbol."""
    payload = json.loads(await request.body() or b"{}")
    message = sanitize_input(payload.get("message", ""))
    logger.info(f"Notification queued for {payload.get('symbol')}")
    return JSONResponse(
        {
            "queued": True,
            "email": payload.get("email"),
            "symbol": payload.get("symbol"),
            "message": message,
        },
        status_code=202,
    )


api_router.add_api_route(
    "/notifications/send",
    with_auth(with_validation(send_notification, NOTIFICATION_SCHEMA)),
    methods=["POST"],
)


@api_router.get("/user/profile")
@with_auth
async def get_user_profile(request: Request):
    return JSONResponse({"username": "demo_user", "plan": "pro"})


@api_router.get("/auth/session")
async def get_session(request: Request):
    authenticated = has_credentials(request, get_security_gate())
    return JSONResponse(
        {
            "authenticated": authenticated,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }
    )


@api_router.get("/security/headers")
async def get_security_headers(request: Request):
    """Report the security headers the gate applies to responses."""
    policy = get_security_gate().policy
    return JSONResponse(
        {
            "headers": security_headers(policy),
            "request_id_header": REQUEST_ID_HEADER,
            "request_id": getattr(request.state, "request_id", None),
        }
    )
