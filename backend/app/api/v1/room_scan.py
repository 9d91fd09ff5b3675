"""Room scan endpoints: run a scan, poll its session, review the drafts it produced."""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.config import get_settings
from app.core.dependencies import get_db
from app.schemas.room_scan import (
    ConfirmDraftResponse,
    DraftItemOut,
    DraftListResponse,
    RoomScanResponse,
    RoomScanSessionOut,
)
from app.services.room_scan import drafts as draft_service
from app.services.room_scan.service import UploadedImage, get_session, run_room_scan

router = APIRouter()


def _ensure_room_scan_enabled() -> None:
    settings = get_settings()
    if not settings.enable_room_scan:
        raise HTTPException(404, "Not found")


async def _to_uploaded_image(upload: UploadFile, max_bytes: int, *, read_body: bool) -> UploadedImage:
    """Buffer at most ``max_bytes + 1`` of an upload; oversize images are rejected by validation."""
    content = b""
    if read_body and (upload.size is None or upload.size <= max_bytes):
        content = await upload.read(max_bytes + 1)
    return UploadedImage(
        content=content,
        filename=upload.filename,
        content_type=upload.content_type,
        size=upload.size,
    )


@router.post(
    "/properties/{property_id}/rooms/{room_id}/scans",
    response_model=RoomScanResponse,
    status_code=201,
    summary="Scan room photos into draft inventory items",
)
async def create_room_scan(
    property_id: str,
    room_id: str,
    images: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _ensure_room_scan_enabled()

    settings = get_settings()
    files = images or []
    read_bodies = len(files) <= settings.room_scan_max_images
    max_bytes = settings.room_scan_max_image_mb * 1024 * 1024
    uploads = [await _to_uploaded_image(f, max_bytes, read_body=read_bodies) for f in files]
    result = await run_room_scan(
        db,
        property_id=property_id,
        room_id=room_id,
        user_id=user.id,
        uploads=uploads,
    )
    return RoomScanResponse(
        session_id=result.session_id,
        drafts=[draft_service.draft_to_out(d) for d in result.drafts],
    )


@router.get(
    "/properties/{property_id}/rooms/{room_id}/scans/{session_id}",
    response_model=RoomScanSessionOut,
)
def get_room_scan_session(
    property_id: str,
    room_id: str,
    session_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _ensure_room_scan_enabled()
    return get_session(
        db,
        property_id=property_id,
        room_id=room_id,
        session_id=session_id,
        user_id=user.id,
    )


@router.get("/properties/{property_id}/drafts", response_model=DraftListResponse)
def list_property_drafts(
    property_id: str,
    scan_session_id: Optional[uuid.UUID] = Query(default=None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _ensure_room_scan_enabled()
    items = draft_service.list_drafts(
        db,
        property_id=property_id,
        user_id=user.id,
        scan_session_id=scan_session_id,
    )
    return DraftListResponse(items=[draft_service.draft_to_out(d) for d in items])


@router.post("/properties/{property_id}/drafts/{draft_id}/dismiss", response_model=DraftItemOut)
def dismiss_property_draft(
    property_id: str,
    draft_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _ensure_room_scan_enabled()
    draft = draft_service.dismiss_draft(db, property_id=property_id, user_id=user.id, draft_id=draft_id)
    return draft_service.draft_to_out(draft)


@router.post("/properties/{property_id}/drafts/{draft_id}/confirm", response_model=ConfirmDraftResponse)
def confirm_property_draft(
    property_id: str,
    draft_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    _ensure_room_scan_enabled()
    draft, item = draft_service.confirm_draft(db, property_id=property_id, user_id=user.id, draft_id=draft_id)
    return ConfirmDraftResponse(draft=draft_service.draft_to_out(draft), inventory_item_id=str(item.id))
