"""HTTP routes served behind the security gate."""

from .stock_routes import api_router, health_router

__all__ = ["api_router", "health_router"]
