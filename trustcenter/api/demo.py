# =============================================================================
# Demo Mode Middleware
# =============================================================================
#
# Active only when settings.demo_mode is true:
#   - every response carries `X-Demo-Mode: true`
#   - POST /api/auth/signup is refused (demo has fixed admin accounts)
#   - write requests are logged for monitoring
#
# The document upload cap lives in the upload route, where the count is
# available.
# =============================================================================

from __future__ import annotations

import logging
import re

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from trustcenter.config import settings

logger = logging.getLogger(__name__)

_BLOCKED_ROUTES: list[tuple[str, re.Pattern[str], str]] = [
    (
        "POST",
        re.compile(r"^/api/auth/signup/?$"),
        "Signup is disabled in demo mode. Use the demo admin credentials to log in.",
    ),
]

_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class DemoModeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.demo_mode:
            return await call_next(request)

        for method, pattern, message in _BLOCKED_ROUTES:
            if request.method == method and pattern.match(request.url.path):
                return JSONResponse(
                    {"error": message, "demoMode": True},
                    status_code=403,
                    headers={"X-Demo-Mode": "true"},
                )

        if request.method in _WRITE_METHODS:
            client = request.client.host if request.client else "-"
            logger.info("[DEMO] %s %s by %s", request.method, request.url.path, client)

        response = await call_next(request)
        response.headers["X-Demo-Mode"] = "true"
        return response
