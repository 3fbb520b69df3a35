"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.dependencies import get_api_key
from app.routes import rewards, rules
from app.routes.health import get_db_info
from app.schemas.common import HealthResponse
from cardpoints.services._types import DbInfoDict
from cardpoints.services.errors import (
    AuthenticationError,
    InvalidRuleError,
    RecordNotFoundError,
    RepositoryError,
    ValidationError,
)
from config import Settings, get_settings
from db.connection import init_db

logger: logging.Logger = logging.getLogger(__name__)


def _status_for(exc: RepositoryError) -> int:
    match exc:
        case AuthenticationError():
            return 401
        case ValidationError():
            return 422
        case RecordNotFoundError():
            return 404
        case _:
            return 500


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RepositoryError)
    async def _on_repository_error(request: Request, exc: RepositoryError) -> JSONResponse:
        status: int = _status_for(exc)
        if status >= 500:
            logger.error("Repository failure in %s: %s", exc.operation, exc, exc_info=exc.cause)
        content: dict[str, str] = {
            "detail": exc.message,
            "type": type(exc).__name__,
            "operation": exc.operation,
        }
        if isinstance(exc, ValidationError):
            content["field"] = exc.field
        return JSONResponse(status_code=status, content=content)

    @app.exception_handler(InvalidRuleError)
    async def _on_invalid_rule(request: Request, exc: InvalidRuleError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "problems": exc.problems,
            },
        )

    @app.exception_handler(Exception)
    async def _on_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__},
        )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = get_settings()
    logger.info("DB: %s", settings.database.db_info_for_logging())

    init_db()
    yield


def create_app() -> FastAPI:
    app: FastAPI = FastAPI(
        title="Card Points Reward Engine",
        version="0.1.0",
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    register_error_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/health/db", dependencies=[Depends(get_api_key)])
    def health_db() -> DbInfoDict:
        return get_db_info()

    app.include_router(rules.router)
    app.include_router(rewards.router)

    return app


app: FastAPI = create_app()


def start() -> None:
    """Entry point for cardpoints-api."""
    project_root: Path = Path(__file__).resolve().parent.parent
    os.chdir(project_root)

    for candidate in (project_root / ".env", project_root.parent / ".env"):
        if candidate.exists():
            load_dotenv(candidate, override=False)

    reload: bool = os.environ.get("CARDPOINTS_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=reload,
    )
