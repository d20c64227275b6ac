"""
SeatFinder HTTP API
===================

FastAPI application exposing the lookup engine:

    GET /seating?ra=&date=         single JSON payload
    GET /seating-stream?ra=&date=  Server-Sent Events, one event per campus
    GET /cache-status              cache, directory and admission diagnostics
    GET /health                    liveness

Run with:
    seatfinder serve
    # or
    uvicorn seatfinder.app.api:create_app --factory
"""

import asyncio
from contextlib import aclosing, asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from seatfinder import __version__
from seatfinder.admission.guard import AdmissionController, RequestInfo
from seatfinder.seating.service import SeatingService
from seatfinder.seating.streaming import StreamEvent
from seatfinder.shared.config import Settings, get_settings
from seatfinder.shared.errors import AdmissionRejected, ValidationError
from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import SeatingQuery
from seatfinder.shared.utils import normalize_identifier

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _request_info(request: Request) -> RequestInfo:
    peer = request.client.host if request.client else None
    return RequestInfo.from_headers(request.headers, peer)


def _admit_and_validate(request: Request, ra: Optional[str], date: Optional[str]) -> tuple[SeatingQuery, RequestInfo]:
    """Admission first, then input validation."""
    info = _request_info(request)
    admission: AdmissionController = request.app.state.admission
    admission.check(info, normalize_identifier(ra)).raise_for_rejection()

    if not normalize_identifier(ra):
        raise ValidationError("RA number is required")
    return SeatingQuery(identifier=ra, date=date), info


async def _sweep_periodically(admission: AdmissionController, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        admission.sweep()


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────


def create_app(
    service: Optional[SeatingService] = None,
    admission: Optional[AdmissionController] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Lookup engine (built from settings if None)
        admission: Admission controller (built from settings if None)
        settings: Settings to use (global settings if None)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(
            _sweep_periodically(app.state.admission, settings.admission.sweep_interval_seconds)
        )
        logger.info(f"SeatFinder API started with {len(settings.campuses)} campus(es)")
        try:
            yield
        finally:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
            app.state.service.close()

    app = FastAPI(
        title="SeatFinder API",
        version=__version__,
        description="Exam seat lookup across campus seating reports",
        lifespan=lifespan,
    )
    app.state.service = service or SeatingService.from_settings(settings)
    app.state.admission = admission or AdmissionController(settings.admission)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # ─────────────────────────────────────────────────────────────────────
    # Error handlers
    # ─────────────────────────────────────────────────────────────────────

    @app.exception_handler(AdmissionRejected)
    async def admission_rejected_handler(request: Request, exc: AdmissionRejected):
        headers = {}
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "status": "error",
                "error": "Too many requests",
                "message": exc.reason or "Too many requests. Please try again later.",
                "retryAfter": exc.retry_after,
            },
            headers=headers,
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"status": "error", "error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return JSONResponse(
                status_code=405,
                content={"status": "error", "error": "Method not allowed"},
                headers={"Allow": "GET, OPTIONS"},
            )
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "error": "Internal server error",
                "message": "Failed to fetch seating information",
            },
        )

    # ─────────────────────────────────────────────────────────────────────
    # Endpoints
    # ─────────────────────────────────────────────────────────────────────

    @app.get("/seating")
    async def seating(request: Request, ra: Optional[str] = None, date: Optional[str] = None):
        """Look up a register number across all campuses."""
        query, info = _admit_and_validate(request, ra, date)
        service: SeatingService = request.app.state.service
        response = await service.lookup(query, caller=info.caller, user_agent=info.user_agent)
        return JSONResponse(response.model_dump(mode="json", by_alias=True))

    @app.get("/seating-stream")
    async def seating_stream(
        request: Request, ra: Optional[str] = None, date: Optional[str] = None
    ):
        """Stream per-campus results as Server-Sent Events."""
        query, info = _admit_and_validate(request, ra, date)
        service: SeatingService = request.app.state.service

        async def events():
            yield StreamEvent.connected().to_sse()
            async with aclosing(
                service.stream(query, caller=info.caller, user_agent=info.user_agent)
            ) as stream:
                async for event in stream:
                    yield event.to_sse()

        return StreamingResponse(events(), media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/cache-status")
    async def cache_status(request: Request):
        """Cache, directory and admission state."""
        service: SeatingService = request.app.state.service
        admission: AdmissionController = request.app.state.admission
        return {
            "status": "success",
            **service.cache_status(),
            "admission": admission.status(),
        }

    @app.get("/health")
    async def health(request: Request):
        """Liveness check."""
        service: SeatingService = request.app.state.service
        return {
            "status": "ok",
            "version": __version__,
            "campuses": [campus.name for campus in service.campuses],
        }

    return app
