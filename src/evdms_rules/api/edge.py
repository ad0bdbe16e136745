"""
evdms_rules.api.edge

Edge routing guard for page paths.

Responsibilities:
- Redirect page requests without a session cookie away from protected paths.
- Redirect page requests with a session cookie away from login-only paths.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.status import HTTP_307_TEMPORARY_REDIRECT

from evdms_rules.auth.guard import evaluate
from evdms_rules.auth.routes import DEFAULT_ROUTE_TABLE
from evdms_rules.observability.logging import get_logger
from evdms_rules.settings import Settings

log = get_logger(__name__)


class EdgeGuardMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        # The cookie is only a hint; role checks happen where the token is verified.
        has_session = bool(request.cookies.get(self._settings.cookie_name))
        decision = evaluate(
            request.url.path,
            has_session=has_session,
            role=None,
            table=getattr(request.app.state, "route_table", DEFAULT_ROUTE_TABLE),
            settings=self._settings,
        )
        if decision.allowed:
            return await call_next(request)
        log.info("edge_redirect", location=decision.location, has_session=has_session)
        return RedirectResponse(decision.location or "/", status_code=HTTP_307_TEMPORARY_REDIRECT)
