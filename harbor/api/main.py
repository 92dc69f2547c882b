"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from harbor import __version__
from harbor.api.v1 import router as v1_router
from harbor.config import Settings, get_settings
from harbor.drivers import DockerDriver, Driver
from harbor.errors import HarborError, ValidationError
from harbor.log_config import configure_logging
from harbor.managers.container import ContainerOrchestrator
from harbor.managers.session import IdleSessionReaper, SessionManager

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the idle reaper; tear every container down on shutdown."""
    reaper: IdleSessionReaper = app.state.reaper
    await reaper.start()
    logger.info("harbor.started", version=__version__)
    try:
        yield
    finally:
        await reaper.stop()
        results = await app.state.orchestrator.cleanup_all()
        if results:
            logger.info("harbor.containers_cleaned", count=len(results))
        await app.state.driver.close()
        logger.info("harbor.stopped")


async def harbor_error_handler(request: Request, exc: HarborError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "api.error",
            path=request.url.path,
            code=exc.code,
            message=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": jsonable_encoder(exc.to_dict())},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = ValidationError(
        "Invalid request",
        details={
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in exc.errors()
            ]
        },
    )
    return await harbor_error_handler(request, error)


def create_app(
    settings: Settings | None = None,
    *,
    driver: Driver | None = None,
) -> FastAPI:
    """Build the application and its services.

    Services are created eagerly and kept on ``app.state`` so they exist
    even when the ASGI lifespan is not run (tests).
    """
    settings = settings or get_settings()
    configure_logging(settings.logging)

    driver = driver or DockerDriver(settings.docker)
    orchestrator = ContainerOrchestrator(driver, settings)
    sessions = SessionManager(orchestrator, settings)

    app = FastAPI(
        title="Harbor",
        description="Per-session execution, workspace and version history",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.driver = driver
    app.state.orchestrator = orchestrator
    app.state.sessions = sessions
    app.state.reaper = IdleSessionReaper(settings.session, sessions)

    app.add_exception_handler(HarborError, harbor_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(v1_router, prefix="/v1")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
