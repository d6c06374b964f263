"""
FastAPI application factory. No business logic; only wiring, startup checks and error mapping.

Run with: uvicorn finance_app.main:create_app --factory
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finance_app.api.v1 import router as v1_router
from finance_app.core.config import Settings, get_settings
from finance_app.core.database import (
    create_engine_from_settings,
    create_session_factory,
    unit_of_work,
)
from finance_app.core.errors import (
    ConflictError,
    ErrorKind,
    FinanceAppError,
    UnauthorizedError,
)
from finance_app.core.security import AuthConfig, PasswordHasher
from finance_app.services.permissions import ensure_system_roles

logger = logging.getLogger(__name__)

# Transport mapping for every error kind the core can raise.
ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.CONFLICT: 400,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.INVALID_OPERATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFIGURATION: 500,
}


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    # Timestamps carry a Z suffix, so render them in UTC.
    logging.Formatter.converter = time.gmtime


async def handle_app_error(request: Request, exc: FinanceAppError) -> JSONResponse:
    """Translate a core error into a JSON response; the kind alone decides the status."""
    content: dict[str, str] = {"message": exc.message}
    if isinstance(exc, ConflictError) and exc.field:
        content["field"] = exc.field
    if isinstance(exc, UnauthorizedError):
        logger.info("%s %s -> 401 (%s)", request.method, request.url.path, exc.reason.value)
    return JSONResponse(status_code=ERROR_STATUS_CODES[exc.kind], content=content)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the engine and seed system roles unless a session factory was injected."""
    engine = None
    if getattr(app.state, "session_factory", None) is None:
        engine = create_engine_from_settings(app.state.settings)
        app.state.session_factory = create_session_factory(engine)
    async with app.state.session_factory() as session:
        async with unit_of_work(session):
            await ensure_system_roles(session)
    try:
        yield
    finally:
        if engine is not None:
            await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the API. Signing configuration is validated here so a missing
    JWT_SECRET stops the process at startup with ConfigurationError.
    """
    if settings is None:
        load_dotenv()
        settings = get_settings()
    configure_logging(settings)
    auth_config = AuthConfig.from_settings(settings)

    app = FastAPI(
        title="Finance App API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_config = auth_config
    app.state.password_hasher = PasswordHasher(settings.BCRYPT_ROUNDS)
    app.state.session_factory = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FinanceAppError, handle_app_error)
    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": "Finance App API"}

    return app
