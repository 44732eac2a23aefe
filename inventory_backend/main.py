import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from inventory_backend.core.config import DATABASE_URL, IS_DEV
from inventory_backend.core.database import Base, engine
from inventory_backend.core.logging_setup import configure_logging
from inventory_backend.deps import get_auth_service
from inventory_backend.middleware.observability import ObservabilityMiddleware
import inventory_backend.models  # registers the ORM tables on Base.metadata
from inventory_backend.routers.auth import router as auth_router
from inventory_backend.routers.users import router as users_router
from inventory_backend.services.errors import AuthError

logger = logging.getLogger(__name__)


def _startup_tasks() -> None:
    if IS_DEV and DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ensured for development")
    deleted = get_auth_service().cleanup_expired_sessions()
    logger.info("Startup session cleanup finished: deleted=%s", deleted)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error("Auth error on %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Inventory Auth API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.add_middleware(ObservabilityMiddleware)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "inventory_backend.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
