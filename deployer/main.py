"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from deployer import __version__
from deployer.api.middleware import RequestContextMiddleware
from deployer.api.v1.router import router as v1_router
from deployer.config import settings
from deployer.core.exceptions import (
    DeployerError,
    DeploymentNotFoundError,
    InvalidDeploymentRequest,
)
from deployer.core.registry import get_registry
from deployer.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

# How often expired deployments and analysis sessions are swept
CLEANUP_INTERVAL_SECONDS = 3600


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    return {"error": {"code": code, "message": message, "details": details or {}}}


async def _cleanup_loop() -> None:
    registry = get_registry()
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        removed = await registry.cleanup_expired()
        if removed:
            logger.info("registry.cleanup", removed=removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    settings.builds_root.mkdir(parents=True, exist_ok=True)
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        deploy_target=settings.deploy_target,
    )
    cleanup_task = asyncio.create_task(_cleanup_loop())

    yield

    # Shutdown
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task
    logger.info("application.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Deployer API",
        description="Turns GitHub repositories, ZIP archives and inline HTML into hosted static sites",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    # Register exception handlers
    @app.exception_handler(DeployerError)
    async def deployer_error_handler(request: Request, exc: DeployerError) -> JSONResponse:
        """Handle application-specific errors."""
        if isinstance(exc, DeploymentNotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
        elif isinstance(exc, InvalidDeploymentRequest):
            status_code = status.HTTP_400_BAD_REQUEST
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        return JSONResponse(
            status_code=status_code,
            content=_error_body(type(exc).__name__.upper(), exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies as 400."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                "VALIDATION_ERROR",
                "Invalid request body",
                {"errors": jsonable_errors(exc)},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        message = str(exc) if settings.is_development else "An unexpected error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("INTERNAL_ERROR", message),
        )

    # Include routers
    app.include_router(v1_router)

    # Locally published apps
    settings.static_root.mkdir(parents=True, exist_ok=True)
    app.mount("/apps", StaticFiles(directory=settings.static_root, html=True), name="apps")

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deployer.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
