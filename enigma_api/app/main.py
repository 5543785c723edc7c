"""
Main entrypoint for the Enigma API.

This module assembles the FastAPI application, sets up logging and
includes versioned routers.  The ``create_app`` function builds and
configures the app, which is then instantiated at module import time
as ``app``, e.g.::

    uvicorn enigma_api.app.main:app

Nothing touches the database at import or startup.  The app may run on
a request-triggered platform where processes are created and reused at
will, so the first request of each process prepares the database and
seeds the administrator through the bootstrap gate.  Every app instance
owns its own process state and rate-limit windows on ``app.state``.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.v1.router import IDENTITY_PATHS, router as v1_router
from .core.bootstrap import BootstrapGate, ProcessState
from .core.config import Settings, settings as default_settings
from .core.db import Database
from .core.logging_config import setup_logging
from .core.middleware import (
    access_log_middleware,
    bootstrap_middleware,
    rate_limit_middleware,
    security_headers_middleware,
)
from .core.rate_limit import AdmissionController
from .services.seed_service import SeedService

API_PREFIX = "/api/v1"

logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """Create and configure a FastAPI application.

    Parameters
    ----------
    config : Optional[Settings]
        Settings for this instance.  The module-level settings, read
        from the environment, are used when omitted.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.
    """
    config = config or default_settings
    # Initialise logging before anything else so that the setup below
    # can safely log messages.
    setup_logging(config.log_level)

    app = FastAPI(title=config.project_name, version=config.api_version)

    db = Database(config.database_url)

    async def seed() -> None:
        await SeedService.seed_admin(db, config)

    app.state.settings = config
    app.state.db = db
    app.state.process_state = ProcessState()
    app.state.bootstrap = BootstrapGate(
        app.state.process_state,
        connect=db.connect,
        seed=seed,
        timeout=config.bootstrap_timeout_seconds,
    )
    app.state.admission = AdmissionController(
        config.rate_limit_basic,
        config.rate_limit_auth,
        identity_paths=[f"{API_PREFIX}{path}" for path in IDENTITY_PATHS],
    )

    # Middleware added last runs first: CORS wraps everything so that
    # 429 and 503 responses still carry CORS headers.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(bootstrap_middleware)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(access_log_middleware)
    if config.is_production:
        origins = [config.frontend_url] if config.frontend_url else []
    else:
        origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router, prefix=API_PREFIX)

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        return {
            "message": "Welcome to Enigma Backend API",
            "version": config.api_version,
            "status": "Running",
        }

    _register_exception_handlers(app, config)
    return app


def _register_exception_handlers(app: FastAPI, config: Settings) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Validation failed", "errors": errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            return JSONResponse(status_code=exc.status_code, content={"message": "Route not found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "Something went wrong!",
                "error": {} if config.is_production else str(exc),
            },
        )


# Create the application instance at import time so that tools such as
# uvicorn can discover it without calling create_app manually.
app = create_app()
