"""
FastAPI application entry point for the EcoTrack backend.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecotrack.config import Settings, get_settings
from ecotrack.db import DbClient
from ecotrack.dependencies import connect_db_client
from ecotrack.errors import EcoTrackError
from ecotrack.routes import router

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(stream=sys.stdout, level=level, format=fmt)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database before serving and close it on shutdown."""
    owns_client = app.state.db_client is None
    if owns_client:
        # Retries sleep, so keep them off the event loop. Errors abort startup.
        app.state.db_client = await run_in_threadpool(
            connect_db_client, app.state.settings
        )
    yield
    if owns_client:
        app.state.db_client.close()
        app.state.db_client = None
    logger.info("Shutting down.")


async def handle_app_error(request: Request, exc: EcoTrackError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"error": "Invalid request body", "details": details}
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None, db_client: Optional[DbClient] = None
) -> FastAPI:
    """
    Build the application. Passing ``db_client`` skips the startup
    connection, which is how tests run against the in-memory database.
    """
    settings = settings or get_settings()
    setup_logging(settings.debug)

    app = FastAPI(title="EcoTrack Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db_client = db_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(EcoTrackError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("ecotrack.app:app", host=settings.host, port=settings.port)
