"""
TimelineForge API

FastAPI server for the investigation backend:
- function endpoints under /functions/v1 (orchestrator, evidence search,
  vision, hypothesis testing, monitor sweep)
- timeline CRUD and the change stream under /api
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from timelineforge.api.investigations import router as investigations_router
from timelineforge.api.routes import router as functions_router
from timelineforge.config import settings
from timelineforge.errors import GENERIC_ERROR_MESSAGE, TimelineForgeError, ValidationError
from timelineforge.storage.change_feed import install as install_change_feed
from timelineforge.storage.db import init_db

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DB_UNAVAILABLE_MESSAGE = "Database temporarily unavailable. Please retry later."


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting TimelineForge API...")
    # Best-effort table creation for local/dev runs.
    # If DATABASE_URL points at an unreachable DB, the API can still start.
    try:
        init_db()
    except SQLAlchemyError:
        logger.warning("Database initialisation failed; continuing without it", exc_info=True)
    yield
    logger.info("Shutting down TimelineForge API...")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def handle_app_error(request: Request, exc: TimelineForgeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc)
    return _error_response(exc.status_code, exc.public_message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.errors())
    return _error_response(400, ValidationError.public_message)


async def handle_db_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s database failure", request.method, request.url.path, exc_info=exc)
    return _error_response(503, DB_UNAVAILABLE_MESSAGE)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_response(500, GENERIC_ERROR_MESSAGE)


def create_app() -> FastAPI:
    app = FastAPI(
        title="TimelineForge API",
        description="Evidence collection, narrative branching and hypothesis testing",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-scheduler-token"],
    )

    app.add_exception_handler(TimelineForgeError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_db_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    install_change_feed()

    @app.get("/health", tags=["Health"])
    def health() -> dict:
        return {"status": "ok"}

    app.include_router(functions_router, tags=["Functions"])
    app.include_router(investigations_router, tags=["Investigations"])

    return app


app = create_app()


def main():
    """Run the server."""
    import uvicorn

    uvicorn.run(
        "timelineforge.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()
