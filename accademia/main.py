"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from accademia.core.config import settings
from accademia.core.middleware import setup_middleware
from accademia.core.exceptions import AccademiaError
from accademia.core.authorization import AuthMiddleware
from accademia.core.permissions import PermissionEngine
from accademia.services.audit_service import AuditService
from accademia.services.matrix_service import RoleMatrixStore, SqlMatrixBackend
from accademia.services.notification_service import NotificationService, notification_service

from accademia.api.auth import router as auth_router
from accademia.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("accademia")


def create_app(
    matrix_store: Optional[RoleMatrixStore] = None,
    audit_sink=None,
    notifier: Optional[NotificationService] = None,
) -> FastAPI:
    """Build the API with its RBAC collaborators.

    Defaults use the configured database and Redis; tests pass their own.
    """
    if notifier is None:
        notifier = notification_service
    if matrix_store is None or audit_sink is None:
        from accademia.db.session import SessionLocal
        if matrix_store is None:
            matrix_store = RoleMatrixStore(SqlMatrixBackend(SessionLocal), notifier=notifier)
        if audit_sink is None:
            audit_sink = AuditService(SessionLocal)

    engine = PermissionEngine(store=matrix_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("Starting %s API", settings.APP_NAME)
        if not matrix_store.is_loaded:
            matrix_store.load()
        if not matrix_store.is_available:
            logger.warning("Role matrix unavailable; non-super-admin checks will deny")
        if notifier.cache is not None:
            if notifier.cache.health_check():
                logger.info("Alert channel connected")
            else:
                logger.warning("Redis not available; alerts stay in the local buffer")

        yield

        logger.info("Shutting down %s API", settings.APP_NAME)

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Role-based access control for the Accademia training platform",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.matrix_store = matrix_store
    app.state.engine = engine
    app.state.notifier = notifier
    app.state.authz = AuthMiddleware(engine, audit_sink=audit_sink, notifier=notifier)

    # Middleware
    setup_middleware(app)

    @app.exception_handler(AccademiaError)
    async def accademia_exception_handler(request: Request, exc: AccademiaError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
        )

    # Register routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": "0.1.0",
            "docs": "/docs",
        }

    @app.get("/api/health")
    async def health():
        """Quick health check endpoint."""
        return {
            "status": "ok" if matrix_store.is_available else "degraded",
            "role_matrix": "ok" if matrix_store.is_available else "unavailable",
        }

    return app


app = create_app()
