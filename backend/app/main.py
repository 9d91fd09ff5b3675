import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.room_scan import router as room_scan_router
from app.core.config import get_settings
from app.services.room_scan.errors import QuotaExceededError, RoomScanError

settings = get_settings()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Room Scan API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(room_scan_router, prefix="/api/v1", tags=["room-scan"])


@app.exception_handler(RoomScanError)
async def _room_scan_exception_handler(request: Request, exc: RoomScanError):
    headers = {}
    if isinstance(exc, QuotaExceededError) and exc.retry_after_seconds:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    detail = exc.message
    # Upstream/internal failures keep their code but hide provider text in production.
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        detail = "Room scan failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": exc.code},
        headers=headers or None,
    )


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500 and not get_settings().expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if get_settings().expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


@app.get("/health")
async def health():
    return {"status": "ok"}
