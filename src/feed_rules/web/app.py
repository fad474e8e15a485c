# ABOUTME: FastAPI application factory with database lifespan and error mapping.
# ABOUTME: Main entry point for the feed-rules JSON API.

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feed_rules.db.session import close_db, get_session_factory, init_db
from feed_rules.errors import (
    DuplicateNameError,
    InfrastructureError,
    NotFoundError,
    RuleEngineError,
    RuleValidationError,
)
from feed_rules.services import RuleServices, build_services

logger = structlog.get_logger()

ERROR_STATUS = {
    NotFoundError: 404,
    RuleValidationError: 422,
    DuplicateNameError: 409,
    InfrastructureError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context for database setup/teardown."""
    logger.info("app_startup")
    await init_db()
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_session_factory())
    yield
    logger.info("app_shutdown")
    await close_db()


async def rule_engine_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    body: dict = {"detail": str(exc)}
    if isinstance(exc, RuleValidationError):
        body["errors"] = exc.errors
    if status >= 500:
        logger.error("request_failed", error=str(exc), status=status)
    return JSONResponse(body, status_code=status)


def create_app(services: RuleServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="feed-rules",
        description="Rule evaluation and action dispatch for feed articles",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.add_exception_handler(RuleEngineError, rule_engine_error_handler)

    from feed_rules.web.routes import router

    app.include_router(router)

    return app


app = create_app()
