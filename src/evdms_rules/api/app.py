"""
evdms_rules.api.app

FastAPI app factory for the EV dealer-network rules service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Initialize and dispose shared infrastructure (DB engine/session factory).
- Load the route permission table once, failing fast on a malformed table.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from evdms_rules import __version__
from evdms_rules.api.edge import EdgeGuardMiddleware
from evdms_rules.api.errors import install_error_handlers
from evdms_rules.api.routers.dealers import router as dealers_router
from evdms_rules.api.routers.dev_auth import router as dev_auth_router
from evdms_rules.api.routers.health import router as health_router
from evdms_rules.api.routers.navigation import router as navigation_router
from evdms_rules.api.routers.orders import router as orders_router
from evdms_rules.api.routers.pricing import router as pricing_router
from evdms_rules.api.routers.quotations import router as quotations_router
from evdms_rules.auth.routes import DEFAULT_ROUTE_TABLE, load_route_table
from evdms_rules.db.init_db import init_db
from evdms_rules.db.session import create_engine, create_sessionmaker
from evdms_rules.observability.logging import configure_logging, get_logger
from evdms_rules.observability.middleware import RequestContextMiddleware
from evdms_rules.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level, env=settings.env)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        # Create the async DB engine and session factory once and stash them on app.state.
        # Routers obtain sessions via dependencies (see `evdms_rules.api.deps`).
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod should use Alembic migrations.
            await init_db(engine)
        try:
            yield
        finally:
            # Dispose the engine to close pools/FDs gracefully.
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="EV Dealer Network Rules Service",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.route_table = (
        load_route_table(settings.route_table_path)
        if settings.route_table_path is not None
        else DEFAULT_ROUTE_TABLE
    )

    install_error_handlers(app)
    app.add_middleware(EdgeGuardMiddleware, settings=settings)
    # Added last so it wraps the edge guard and redirects carry a request id.
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(navigation_router)
    app.include_router(pricing_router)
    app.include_router(orders_router)
    app.include_router(quotations_router)
    app.include_router(dealers_router)

    return app


# --- Module Notes -----------------------------------------------------------
# App composition stays here; rule decisions live in auth/lifecycle/finance and
# transaction boundaries in services.
