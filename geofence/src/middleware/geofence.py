"""
Proximity-based geofencing middleware.

Restricts access to requests whose client address is geographically near
the configured reference location.

When installed:
- Private/loopback addresses pass when allow_private_ip_addresses is set
- Allowlisted addresses pass without a provider lookup
- Nearby addresses pass; others receive the configured status (default 403)
- Exempt paths (default /health) always pass
- Lookup failures are not denials: the error propagates and the server
  answers 500
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from geofence.src.services.engine import GeofenceEngine
from geofence.src.utils.logging_config import get_logger


logger = get_logger("api")

DENIED_DETAIL = "Access denied based on geographic restrictions"


class GeofenceMiddleware(BaseHTTPMiddleware):
    """
    Middleware that blocks requests from clients that are not nearby.

    Args:
        app: ASGI application
        engine: Decision engine built from the validated configuration
    """

    def __init__(self, app, engine: GeofenceEngine):
        super().__init__(app)
        self.engine = engine

    async def dispatch(self, request: Request, call_next):
        # Skip WebSocket connections
        if request.scope.get("type") == "websocket":
            return await call_next(request)

        if request.url.path in self.engine.config.exempt_paths:
            return await call_next(request)

        result = await self.engine.decide(self._get_peer_address(request))

        if result.allowed:
            return await call_next(request)

        logger.warning(
            "Geofence: Blocked request from %s (path: %s)",
            result.address,
            request.url.path,
        )
        return self._denied_response(result.status_code)

    @staticmethod
    def _get_peer_address(request: Request) -> str:
        """
        Rebuild the ``host:port`` peer address of the connection.

        IPv6 hosts are bracketed. Connections without a client (Unix
        sockets) yield an empty string, which the engine rejects as
        malformed.

        Args:
            request: Starlette Request object

        Returns:
            Peer address string
        """
        if not request.client:
            return ""
        host, port = request.client.host, request.client.port
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{port}"

    @staticmethod
    def _denied_response(status_code: int) -> Response:
        """Return the rejection response for blocked requests."""
        if status_code in (204, 304):
            return Response(status_code=status_code)
        return JSONResponse(status_code=status_code, content={"detail": DENIED_DETAIL})
