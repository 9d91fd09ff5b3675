"""Read-only lookups against the inventory subsystem used by room scans."""

from __future__ import annotations

import uuid
from typing import Optional, Union

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from app.models.inventory import InventoryItem, InventoryRoom
from app.services.room_scan.matcher import InventoryItemSummary

ROOM_CANDIDATE_LIMIT = 250
PROPERTY_CANDIDATE_LIMIT = 400


def find_room(db: Session, *, property_id: str, room_id: Union[str, uuid.UUID]) -> Optional[InventoryRoom]:
    """Return the room only if it belongs to *property_id*."""
    return db.execute(
        select(InventoryRoom).where(
            InventoryRoom.id == room_id,
            InventoryRoom.property_id == str(property_id),
        )
    ).scalar_one_or_none()


def _summary(item: InventoryItem) -> InventoryItemSummary:
    return InventoryItemSummary(
        id=str(item.id),
        name=item.name,
        category=item.category,
        room_id=str(item.room_id) if item.room_id else None,
    )


def list_match_candidates(
    db: Session,
    *,
    property_id: str,
    room_id: Union[str, uuid.UUID],
    room_limit: int = ROOM_CANDIDATE_LIMIT,
    property_limit: int = PROPERTY_CANDIDATE_LIMIT,
) -> list[InventoryItemSummary]:
    """Items in the scanned room first, then a recent slice of the whole property.

    Both slices are bounded so matching cost stays flat for large inventories.
    Items already in the room slice are not repeated.
    """
    room_items = db.execute(
        select(InventoryItem)
        .where(InventoryItem.property_id == str(property_id), InventoryItem.room_id == room_id)
        .order_by(desc(InventoryItem.updated_at))
        .limit(room_limit)
    ).scalars().all()

    property_items = db.execute(
        select(InventoryItem)
        .where(InventoryItem.property_id == str(property_id))
        .order_by(desc(InventoryItem.created_at))
        .limit(property_limit)
    ).scalars().all()

    seen: set[str] = set()
    out: list[InventoryItemSummary] = []
    for item in [*room_items, *property_items]:
        summary = _summary(item)
        if summary.id in seen:
            continue
        seen.add(summary.id)
        out.append(summary)
    return out
