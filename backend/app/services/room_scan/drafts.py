"""Draft review operations consumed by the inventory review workflow."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from app.models.inventory import InventoryDraftItem, InventoryItem
from app.schemas.room_scan import DraftItemOut, DraftStatus
from app.services.room_scan.errors import DraftNotFoundError, DraftStateError

logger = logging.getLogger(__name__)


def draft_to_out(draft: InventoryDraftItem) -> DraftItemOut:
    return DraftItemOut(
        id=str(draft.id),
        property_id=draft.property_id,
        room_id=str(draft.room_id),
        scan_session_id=str(draft.scan_session_id),
        status=draft.status,
        source=draft.source,
        name=draft.name,
        category=draft.category,
        confidence=draft.confidence,
        duplicate_match=draft.duplicate_match,
        detection_meta=draft.detection_meta,
        confirmed_item_id=str(draft.confirmed_item_id) if draft.confirmed_item_id else None,
        created_at=draft.created_at,
    )


def list_drafts(
    db: Session,
    *,
    property_id: str,
    user_id: str,
    scan_session_id: Optional[uuid.UUID] = None,
) -> list[InventoryDraftItem]:
    query = select(InventoryDraftItem).where(
        InventoryDraftItem.property_id == str(property_id),
        InventoryDraftItem.user_id == str(user_id),
        InventoryDraftItem.status == DraftStatus.DRAFT.value,
    )
    if scan_session_id:
        query = query.where(InventoryDraftItem.scan_session_id == scan_session_id)
    return list(db.execute(query.order_by(desc(InventoryDraftItem.created_at))).scalars().all())


def _get_pending_draft(db: Session, *, property_id: str, user_id: str, draft_id: str) -> InventoryDraftItem:
    try:
        draft_uuid = uuid.UUID(str(draft_id))
    except ValueError:
        raise DraftNotFoundError("Draft not found")

    draft = db.execute(
        select(InventoryDraftItem).where(
            InventoryDraftItem.id == draft_uuid,
            InventoryDraftItem.property_id == str(property_id),
            InventoryDraftItem.user_id == str(user_id),
        )
    ).scalar_one_or_none()
    if draft is None:
        raise DraftNotFoundError("Draft not found")
    if draft.status != DraftStatus.DRAFT.value:
        raise DraftStateError(f"Draft is already {draft.status}")
    return draft


def dismiss_draft(db: Session, *, property_id: str, user_id: str, draft_id: str) -> InventoryDraftItem:
    draft = _get_pending_draft(db, property_id=property_id, user_id=user_id, draft_id=draft_id)
    draft.status = DraftStatus.DISMISSED.value
    draft.updated_at = datetime.now(timezone.utc)
    db.commit()
    return draft


def confirm_draft(
    db: Session,
    *,
    property_id: str,
    user_id: str,
    draft_id: str,
) -> tuple[InventoryDraftItem, InventoryItem]:
    """Turn a draft into a permanent inventory item in the draft's room."""
    draft = _get_pending_draft(db, property_id=property_id, user_id=user_id, draft_id=draft_id)
    now = datetime.now(timezone.utc)
    item = InventoryItem(
        id=uuid.uuid4(),
        property_id=draft.property_id,
        room_id=draft.room_id,
        name=draft.name,
        category=draft.category,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    draft.status = DraftStatus.CONFIRMED.value
    draft.confirmed_item_id = item.id
    draft.updated_at = now
    db.commit()
    logger.info("Draft confirmed draft_id=%s inventory_item_id=%s", draft.id, item.id)
    return draft, item
