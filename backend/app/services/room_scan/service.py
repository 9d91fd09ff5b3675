"""Room scan pipeline: photos in, reviewable draft inventory items out.

``run_room_scan`` is the only writer of ``RoomScanSession.status``.  A session
is created in PROCESSING once the request has passed validation and the daily
caps, and leaves it exactly once: COMPLETE together with all of its drafts in
one transaction, or FAILED with no drafts.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, get_settings
from app.core.image_processing import compress_for_scan, is_image
from app.core.storage import archive_scan_images
from app.models.inventory import InventoryDraftItem, RoomScanSession
from app.schemas.room_scan import (
    DraftSource,
    DraftStatus,
    InventoryCategory,
    RoomScanSessionOut,
    ScanSessionStatus,
)
from app.services.ai.common.providers import VisionExtraction, VisionProvider, get_provider
from app.services.ai.common.retry import RetryPolicy, call_with_retry
from app.services.ai.room_scan.contracts import CandidateItem
from app.services.room_scan.dedupe import dedupe_candidates
from app.services.room_scan.errors import (
    ArchivalError,
    PersistenceError,
    QuotaExceededError,
    RoomNotFoundError,
    RoomScanError,
    SessionNotFoundError,
    UploadValidationError,
)
from app.services.room_scan.inventory_lookup import find_room, list_match_candidates
from app.services.room_scan.matcher import DuplicateMatch, find_duplicate_match
from app.services.room_scan.quota import PROPERTY_DAILY_CAP, check_scan_quota

logger = logging.getLogger(__name__)

RAW_TEXT_SNAPSHOT_CHARS = 4000
TEXT_PREVIEW_CHARS = 500
ERROR_MESSAGE_CHARS = 500

_ALLOWED_CATEGORIES = {c.value for c in InventoryCategory}


@dataclass
class UploadedImage:
    content: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None
    # Declared upload size; may exceed len(content) when the read was cut short.
    size: Optional[int] = None

    @property
    def byte_size(self) -> int:
        return max(self.size or 0, len(self.content))


@dataclass
class RoomScanResult:
    session_id: str
    drafts: list[InventoryDraftItem]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def normalize_category(value: Optional[str]) -> Optional[str]:
    """Map a free-text provider category onto the inventory enum (unknown -> OTHER)."""
    up = str(value or "").upper().strip()
    if not up:
        return None
    return up if up in _ALLOWED_CATEGORIES else InventoryCategory.OTHER.value


def validate_uploads(uploads: list[UploadedImage], settings: Settings) -> None:
    if not uploads:
        raise UploadValidationError("At least one image is required", code="ROOM_SCAN_IMAGES_REQUIRED")
    if len(uploads) > settings.room_scan_max_images:
        raise UploadValidationError(
            f"Too many images. Max allowed is {settings.room_scan_max_images}.",
            code="ROOM_SCAN_TOO_MANY_IMAGES",
        )
    max_bytes = settings.room_scan_max_image_mb * 1024 * 1024
    for upload in uploads:
        if not is_image(upload.content_type, upload.filename):
            raise UploadValidationError("Only image uploads are allowed", code="ROOM_SCAN_IMAGE_ONLY")
        if upload.byte_size > max_bytes:
            raise UploadValidationError(
                f"Image too large ({upload.byte_size / 1024 / 1024:.1f}MB). "
                f"Max is {settings.room_scan_max_image_mb}MB.",
                code="ROOM_SCAN_IMAGE_TOO_LARGE",
            )
        if not upload.content:
            raise UploadValidationError("Empty image upload", code="ROOM_SCAN_IMAGES_REQUIRED")


def _short_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.CancelledError):
        return "Scan cancelled"
    if isinstance(exc, RoomScanError):
        message = f"{exc.code}: {exc.message}"
    else:
        message = str(exc) or exc.__class__.__name__
    return message[:ERROR_MESSAGE_CHARS]


def _mark_failed(db: Session, session_id: uuid.UUID, exc: BaseException) -> None:
    try:
        db.rollback()
        session = db.get(RoomScanSession, session_id)
        if session is None or session.status != ScanSessionStatus.PROCESSING.value:
            return
        session.status = ScanSessionStatus.FAILED.value
        session.error = _short_error(exc)
        session.updated_at = _utcnow()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not mark room scan session %s as FAILED", session_id)


async def _archive_best_effort(
    *,
    property_id: str,
    room_id: str,
    session_id: str,
    images: list[bytes],
) -> Optional[dict]:
    try:
        archived = await run_in_threadpool(
            archive_scan_images,
            property_id=property_id,
            room_id=room_id,
            session_id=session_id,
            images=images,
        )
    except ArchivalError:
        logger.warning("Room scan image archival failed session_id=%s", session_id, exc_info=True)
        return None
    return archived.as_dict() if archived else None


def _log_budget(
    *,
    session_id: str,
    provider: VisionProvider,
    property_id: str,
    room_id: str,
    room_type: Optional[str],
    images_count: int,
    bytes_total: int,
    latency_ms: float,
    extraction: Optional[VisionExtraction],
    outcome: str,
) -> None:
    raw = extraction.raw if extraction else None
    logger.info(
        "Room scan budget session_id=%s outcome=%s provider=%s model=%s property_id=%s room_id=%s "
        "room_type=%s images=%d bytes_total=%d avg_bytes=%d latency_ms=%.0f "
        "prompt_tokens=%s candidate_tokens=%s total_tokens=%s",
        session_id,
        outcome,
        provider.name,
        raw.model if raw else None,
        property_id,
        room_id,
        room_type,
        images_count,
        bytes_total,
        round(bytes_total / images_count) if images_count else 0,
        latency_ms,
        raw.prompt_tokens if raw else None,
        raw.completion_tokens if raw else None,
        raw.total_tokens if raw else None,
    )


def _build_draft(
    session: RoomScanSession,
    item: CandidateItem,
    match: Optional[DuplicateMatch],
    now: datetime,
) -> InventoryDraftItem:
    category = normalize_category(item.category)
    confidence: dict[str, float] = {"name": item.confidence}
    if category:
        confidence["category"] = item.confidence

    detection_meta = None
    if item.boxes or item.explanation:
        detection_meta = {
            "boxes": [box.model_dump() for box in item.boxes],
            "explanation": item.explanation.model_dump() if item.explanation else None,
        }

    return InventoryDraftItem(
        id=uuid.uuid4(),
        property_id=session.property_id,
        room_id=session.room_id,
        user_id=session.user_id,
        scan_session_id=session.id,
        status=DraftStatus.DRAFT.value,
        source=DraftSource.ROOM_PHOTO_AI.value,
        name=item.label,
        category=category,
        confidence=confidence,
        duplicate_match=match.as_dict() if match else None,
        detection_meta=detection_meta,
        created_at=now,
        updated_at=now,
    )


async def run_room_scan(
    db: Session,
    *,
    property_id: str,
    room_id: str,
    user_id: str,
    uploads: list[UploadedImage],
    provider: Optional[VisionProvider] = None,
    now: Optional[datetime] = None,
    settings: Settings | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RoomScanResult:
    """Run one synchronous room scan and return the created drafts.

    Validation, room lookup and the daily caps run before any session row
    exists.  After that every failure (including cancellation) marks the
    session FAILED and is re-raised.
    """
    settings = settings or get_settings()
    property_id, user_id = str(property_id), str(user_id)

    validate_uploads(uploads, settings)

    room_uuid = parse_uuid(room_id)
    room = find_room(db, property_id=property_id, room_id=room_uuid) if room_uuid else None
    if room is None:
        raise RoomNotFoundError("Room not found")

    decision = check_scan_quota(db, user_id=user_id, property_id=property_id, now=now, settings=settings)
    if not decision.allowed:
        code = (
            "ROOM_SCAN_PROPERTY_DAILY_LIMIT"
            if decision.cap_name == PROPERTY_DAILY_CAP
            else "ROOM_SCAN_USER_DAILY_LIMIT"
        )
        raise QuotaExceededError(
            decision.reason or "Daily room scan limit reached",
            code=code,
            retry_after_seconds=decision.retry_after_seconds,
        )

    provider = provider or get_provider(settings=settings)
    created_at = now or _utcnow()
    session = RoomScanSession(
        id=uuid.uuid4(),
        property_id=property_id,
        room_id=room.id,
        user_id=user_id,
        status=ScanSessionStatus.PROCESSING.value,
        provider=provider.name,
        images_count=len(uploads),
        expires_at=created_at + timedelta(days=settings.room_scan_session_ttl_days),
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(session)
    db.commit()
    session_id = session.id
    sid = str(session_id)
    room_key = str(room.id)

    images_count = len(uploads)
    bytes_total = 0
    extraction: Optional[VisionExtraction] = None
    t0 = time.monotonic()
    try:
        images = await run_in_threadpool(
            compress_for_scan,
            [upload.content for upload in uploads],
            target_width=settings.room_scan_target_width,
            quality=settings.room_scan_jpeg_quality,
        )
        bytes_total = sum(len(img) for img in images)

        image_refs = await _archive_best_effort(
            property_id=property_id,
            room_id=room_key,
            session_id=sid,
            images=images,
        )

        t0 = time.monotonic()
        extraction = await call_with_retry(
            provider.extract_items,
            images,
            room_type=room.room_type,
            policy=RetryPolicy.from_settings(settings),
            sleep=sleep,
            context={"session_id": sid},
        )
        latency_ms = (time.monotonic() - t0) * 1000
        _log_budget(
            session_id=sid,
            provider=provider,
            property_id=property_id,
            room_id=room_key,
            room_type=room.room_type,
            images_count=images_count,
            bytes_total=bytes_total,
            latency_ms=latency_ms,
            extraction=extraction,
            outcome="ok",
        )

        if not extraction.items:
            logger.warning(
                "Room scan returned no items session_id=%s provider=%s room_type=%s images=%d latency_ms=%.0f preview=%r",
                sid,
                provider.name,
                room.room_type,
                images_count,
                latency_ms,
                None if settings.is_production else extraction.raw.text[:TEXT_PREVIEW_CHARS],
            )

        candidates = dedupe_candidates(extraction.items)

        pool = []
        if candidates and settings.room_scan_duplicate_matching_enabled:
            pool = list_match_candidates(db, property_id=property_id, room_id=room.id)

        completed_at = _utcnow()
        drafts = [
            _build_draft(
                session,
                item,
                find_duplicate_match(item.label, room_key, pool) if pool else None,
                completed_at,
            )
            for item in candidates
        ]

        try:
            db.add_all(drafts)
            session.status = ScanSessionStatus.COMPLETE.value
            session.image_refs = image_refs
            session.result_meta = {
                "model": extraction.raw.model,
                "token_usage": extraction.raw.usage or None,
                "raw_text": extraction.raw.text[:RAW_TEXT_SNAPSHOT_CHARS],
                "latency_ms": round(latency_ms, 2),
                "items_extracted": len(extraction.items),
                "items_kept": len(drafts),
            }
            session.updated_at = completed_at
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Failed to save draft items") from exc

        logger.info(
            "Room scan complete session_id=%s drafts=%d duplicates_flagged=%d",
            sid,
            len(drafts),
            sum(1 for d in drafts if d.duplicate_match),
        )
        return RoomScanResult(session_id=sid, drafts=drafts)

    except asyncio.CancelledError as exc:
        logger.warning("Room scan cancelled session_id=%s", sid)
        _mark_failed(db, session_id, exc)
        raise
    except Exception as exc:
        if extraction is None:
            _log_budget(
                session_id=sid,
                provider=provider,
                property_id=property_id,
                room_id=room_key,
                room_type=room.room_type,
                images_count=images_count,
                bytes_total=bytes_total,
                latency_ms=(time.monotonic() - t0) * 1000,
                extraction=None,
                outcome="error",
            )
        logger.exception("Room scan failed session_id=%s", sid)
        _mark_failed(db, session_id, exc)
        raise


def get_session(
    db: Session,
    *,
    property_id: str,
    room_id: str,
    session_id: str,
    user_id: str,
) -> RoomScanSessionOut:
    """Status summary for polling clients; ``draft_count`` is read live."""
    session_uuid, room_uuid = parse_uuid(session_id), parse_uuid(room_id)
    session = None
    if session_uuid and room_uuid:
        session = db.execute(
            select(RoomScanSession).where(
                RoomScanSession.id == session_uuid,
                RoomScanSession.property_id == str(property_id),
                RoomScanSession.room_id == room_uuid,
                RoomScanSession.user_id == str(user_id),
            )
        ).scalar_one_or_none()
    if session is None:
        raise SessionNotFoundError("Scan session not found")

    draft_count = db.execute(
        select(func.count(InventoryDraftItem.id)).where(
            InventoryDraftItem.scan_session_id == session.id,
            InventoryDraftItem.status == DraftStatus.DRAFT.value,
        )
    ).scalar_one()

    return RoomScanSessionOut(
        session_id=str(session.id),
        status=session.status,
        provider=session.provider,
        error=session.error,
        created_at=session.created_at,
        updated_at=session.updated_at,
        draft_count=int(draft_count),
    )
