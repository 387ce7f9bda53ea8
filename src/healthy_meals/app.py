"""FastAPI application factory for Healthy Meals."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from healthy_meals.common.config import get_settings
from healthy_meals.common.exceptions import StorageError
from healthy_meals.common.logging import setup_logging
from healthy_meals.common.schemas import HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from healthy_meals.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        from healthy_meals.deps import close_clients
        await close_clients()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": exc.code},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "STORAGE_ERROR"},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from healthy_meals.tokens.router import admin_router, router as tokens_router
    from healthy_meals.recipes.router import router as recipes_router
    from healthy_meals.payments.router import router as payments_router

    prefix = settings.api_prefix
    app.include_router(tokens_router, prefix=prefix, tags=["tokens"])
    app.include_router(admin_router, prefix=prefix)
    app.include_router(payments_router, prefix=prefix)
    app.include_router(recipes_router, prefix=prefix, tags=["recipes"])

    return app
