"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered with their URL prefixes.
  4. Exception handlers render every failure as {code, message, details?}.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assistant_platform.api.routes import (
    admin,
    auth,
    chat,
    companies,
    conversations,
    feedback,
    usage,
)
from assistant_platform.core.config import settings
from assistant_platform.core.errors import AppError
from assistant_platform.core.logging import configure_logging, get_logger
from assistant_platform.db.session import dispose_engine, get_session_factory
from assistant_platform.services.mlflow_service import setup_mlflow

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging
      - Initialise MLflow tracking when MLFLOW_TRACKING_URI is set

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    setup_mlflow()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
    )
    yield
    logger.info("Shutting down, disposing DB engine")
    await dispose_engine()


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant AI assistant backend: streaming chat completions, "
            "per-company chatbots, conversations, feedback and usage."
        ),
        version="1.2.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Conversation-ID", "X-Is-New-Conversation"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(chat.router)
    app.include_router(conversations.router)
    app.include_router(feedback.router)
    app.include_router(companies.router)
    app.include_router(usage.router)
    app.include_router(admin.router)

    # ── Exception Handlers ────────────────────────────────────────────────────

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            code=exc.code,
            status_code=exc.status_code,
            error=exc.message,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": "VALIDATION_ERROR",
                "message": _validation_message(exc),
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/api/health", tags=["Health"], summary="Service health check")
    async def health(
        session_factory: Annotated[
            async_sessionmaker[AsyncSession], Depends(get_session_factory)
        ],
    ) -> dict:
        database = "ok"
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("Health check database query failed", error=str(exc))
            database = "error"
        return {
            "status": "ok" if database == "ok" else "degraded",
            "app": settings.APP_NAME,
            "env": settings.APP_ENV,
            "database": database,
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Pydantic error dicts minus the parts that are not JSON-serialisable."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


app = create_application()
