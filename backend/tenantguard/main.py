"""
TenantGuard — FastAPI Authorization Service
=============================================
Main entry point: multi-tenant authorization decisions with row-scoping
predicates, plus role and policy administration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tenantguard.admin.service import PolicyAdministration
from tenantguard.api.routes import authorize, health, policies, roles
from tenantguard.config import settings
from tenantguard.core.errors import (
    AuthorizationDenied,
    AuthzError,
    ConflictError,
    NotFoundError,
    PolicyValidationError,
)
from tenantguard.db import session
from tenantguard.db.session import init_db
from tenantguard.repository.sql import SqlDirectory, SqlPolicyRepository
from tenantguard.security.engine import DecisionEngine

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level)
    ),
)
logger = structlog.get_logger()

API_PREFIX = "/api/v1"

ERROR_STATUS = {
    PolicyValidationError: 400,
    AuthorizationDenied: 403,
    NotFoundError: 404,
    ConflictError: 409,
}


def create_app(database_url: Optional[str] = None, policy_file: Optional[str] = None) -> FastAPI:
    """Build the application; arguments override the configured database and policy file."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        logger.info("Starting TenantGuard", version=settings.app_version)

        db_engine = create_async_engine(database_url, echo=False) if database_url else session.engine
        session_factory = (
            async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
            if database_url
            else session.async_session
        )
        await init_db(db_engine)

        repository = SqlPolicyRepository(session_factory)
        await repository.load()
        admin = PolicyAdministration(repository)

        path = policy_file or settings.policy_file
        if path:
            if settings.reset_domain_zero_on_startup:
                await admin.delete_policies_for_domain_zero()
            await admin.import_file(path, skip_header=settings.policy_file_has_header)

        directory = SqlDirectory(session_factory)
        app.state.db_engine = db_engine
        app.state.admin = admin
        app.state.engine = DecisionEngine(
            policies=repository,
            actors=directory,
            resources=directory,
            relationships=directory,
        )
        yield
        await db_engine.dispose()
        logger.info("Shutting down TenantGuard")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Multi-tenant authorization decisions with row-scoping predicates, "
            "role assignment and policy administration."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    @app.exception_handler(AuthzError)
    async def authz_error_handler(request: Request, exc: AuthzError):
        status_code = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
            500,
        )
        if status_code == 500:
            logger.error("Unhandled authorization error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    app.include_router(health.router, tags=["Health"])
    app.include_router(authorize.router, prefix=API_PREFIX, tags=["Authorization"])
    app.include_router(roles.router, prefix=API_PREFIX, tags=["Roles"])
    app.include_router(policies.router, prefix=API_PREFIX, tags=["Policies"])

    @app.get("/")
    async def root():
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


app = create_app()
