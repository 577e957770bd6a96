"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from anchor_agent.api.router import api_router
from anchor_agent.config import Settings, get_settings
from anchor_agent.core.errors import TurnFailedError
from anchor_agent.db.client import get_supabase_client
from anchor_agent.storage.media_store import get_media_store
from anchor_agent.utils.logging import setup_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("anchor.starting", port=settings.port, frontend=settings.serve_frontend)

    try:
        get_supabase_client()
    except Exception as e:
        # Persona reads fall back to an empty list; the API still serves.
        logger.error("anchor.supabase_unavailable", error=str(e))

    # Logged only; uploads fail per turn and degrade to no audio.
    await get_media_store().test_connection()

    yield

    logger.info("anchor.shutdown")


app = FastAPI(
    title="Anchor Agent",
    description="Voice chat with news-anchor personas",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(TurnFailedError)
async def turn_failed_handler(request: Request, exc: TurnFailedError) -> JSONResponse:
    logger.error("chat.turn_failed", stage=exc.stage, error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "An error occurred processing your request", "details": str(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.failed", path=request.url.path)
    return JSONResponse(
        status_code=500, content={"error": "Internal server error", "details": str(exc)}
    )


app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "anchor-agent", "version": VERSION}


def mount_frontend(app: FastAPI, settings: Settings) -> None:
    """Serve the built single-page client; unknown paths get index.html."""
    dist = Path(settings.frontend_dist).resolve()
    index = dist / "index.html"

    @app.get("/{full_path:path}", include_in_schema=False)
    async def frontend(full_path: str):
        if full_path.startswith("api/"):
            return JSONResponse(status_code=404, content={"error": "Not found"})
        candidate = (dist / full_path).resolve()
        if full_path and candidate.is_file() and candidate.is_relative_to(dist):
            return FileResponse(candidate)
        return FileResponse(index)


if get_settings().serve_frontend:
    mount_frontend(app, get_settings())
else:

    @app.get("/")
    async def root():
        """Service info endpoint."""
        return {"service": "anchor-agent", "version": VERSION}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("anchor_agent.main:app", host="0.0.0.0", port=get_settings().port, log_level="info")
