"""FastAPI application for MedPath.

Exposes the graph, routing and referral operations to the external
renderer. Access control is expected in front of this service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from medpath import __version__
from medpath.core.config import Settings
from medpath.core.errors import MedPathError
from medpath.db.engine import DatabaseManager
from medpath.governance.audit import AuditLogger
from medpath.graph.store import GraphStore
from medpath.referrals.workflow import RequestWorkflow
from medpath.repositories.sql.graph import SqlGraphRepository
from medpath.repositories.sql.referrals import SqlReferralRepository
from medpath.routing.service import RouteService
from medpath.web.graph_router import router as graph_router
from medpath.web.referral_router import router as referral_router
from medpath.web.routing_router import router as routing_router

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str = __version__
    backend: str


async def _handle_domain_error(request: Request, exc: MedPathError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Settings | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances.
    With ``settings.db.database_url`` set, the SQL repositories are used and
    tables are created at startup; otherwise everything lives in memory.

    Args:
        settings: Application settings. Defaults to Settings().
        audit_logger: Optional pre-built AuditLogger. One is created from
            ``settings.audit`` when auditing is enabled.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()

    logging.getLogger("medpath").setLevel(settings.log_level)

    if audit_logger is None and settings.audit.enabled:
        audit_logger = AuditLogger(config=settings.audit)

    db_manager: DatabaseManager | None = None
    if settings.db.database_url:
        db_manager = DatabaseManager(
            settings.db.database_url,
            echo=settings.db.echo,
            pool_size=settings.db.pool_size,
        )
        graph_store = SqlGraphRepository(db_manager, config=settings.graph, audit_logger=audit_logger)
        route_service = RouteService(graph_store, config=settings.routing)
        referral_workflow = SqlReferralRepository(
            db_manager,
            graph_store,
            routes=route_service,
            config=settings.referral,
            audit_logger=audit_logger,
        )
        backend = "sql"
    else:
        graph_store = GraphStore(config=settings.graph, audit_logger=audit_logger)
        route_service = RouteService(graph_store, config=settings.routing)
        referral_workflow = RequestWorkflow(
            graph_store,
            routes=route_service,
            config=settings.referral,
            audit_logger=audit_logger,
        )
        backend = "memory"

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if db_manager is not None:
            await db_manager.create_all()
        logger.info("MedPath started with %s backend", backend)
        yield
        if db_manager is not None:
            await db_manager.close()

    app = FastAPI(
        title="MedPath",
        description="Hospital route finder and emergency referral workflow",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(MedPathError, _handle_domain_error)

    # Store on app state for access in route handlers
    app.state.settings = settings
    app.state.audit_logger = audit_logger
    app.state.db_manager = db_manager
    app.state.graph_store = graph_store
    app.state.route_service = route_service
    app.state.referral_workflow = referral_workflow

    app.include_router(graph_router)
    app.include_router(routing_router)
    app.include_router(referral_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", service="medpath", backend=backend)

    return app
