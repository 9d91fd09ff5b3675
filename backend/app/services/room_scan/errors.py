"""Room scan error taxonomy.

Every error carries a short ``code`` for clients and the HTTP status the API
layer should answer with.  Errors raised before the scan session exists leave
no session row behind; errors raised afterwards are also recorded on the
session (status FAILED) by ``service.run_room_scan``.
"""

from __future__ import annotations

from typing import Optional


class RoomScanError(Exception):
    status_code: int = 500
    code: str = "ROOM_SCAN_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


# --- pre-session (validation / admission) ---


class RoomScanValidationError(RoomScanError):
    status_code = 400
    code = "ROOM_SCAN_VALIDATION_ERROR"


class UploadValidationError(RoomScanValidationError):
    pass


class RoomNotFoundError(RoomScanValidationError):
    status_code = 404
    code = "ROOM_NOT_FOUND"


class QuotaExceededError(RoomScanError):
    status_code = 429
    code = "ROOM_SCAN_DAILY_LIMIT"

    def __init__(self, message: str, *, code: Optional[str] = None, retry_after_seconds: int = 0) -> None:
        super().__init__(message, code=code)
        self.retry_after_seconds = retry_after_seconds


# --- post-session ---


class ImageProcessingError(RoomScanValidationError):
    code = "ROOM_SCAN_IMAGE_UNREADABLE"


class ProviderError(RoomScanError):
    status_code = 502
    code = "ROOM_SCAN_PROVIDER_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message, code=code)
        self.status = status


class ProviderTransientError(ProviderError):
    """Rate limit / unavailable / timeout. Retried by ``call_with_retry``."""

    status_code = 503
    code = "ROOM_SCAN_PROVIDER_UNAVAILABLE"


class ProviderFatalError(ProviderError):
    pass


class ModelUnsupportedError(ProviderFatalError):
    """The requested model id is unknown to the backend; the next candidate is tried."""

    code = "ROOM_SCAN_MODEL_UNSUPPORTED"


class ProviderRetryExhaustedError(ProviderFatalError):
    code = "ROOM_SCAN_PROVIDER_EXHAUSTED"

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PersistenceError(RoomScanError):
    status_code = 500
    code = "ROOM_SCAN_PERSISTENCE_ERROR"


class ArchivalError(RoomScanError):
    """Best-effort image archival failed. Logged, never surfaced."""

    status_code = 502
    code = "ROOM_SCAN_ARCHIVAL_FAILED"


# --- query / review ---


class SessionNotFoundError(RoomScanError):
    status_code = 404
    code = "ROOM_SCAN_SESSION_NOT_FOUND"


class DraftNotFoundError(RoomScanError):
    status_code = 404
    code = "DRAFT_NOT_FOUND"


class DraftStateError(RoomScanError):
    status_code = 409
    code = "DRAFT_NOT_PENDING"
