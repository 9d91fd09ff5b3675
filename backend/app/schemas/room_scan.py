from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ScanSessionStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class DraftStatus(str, Enum):
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    DISMISSED = "DISMISSED"


class DraftSource(str, Enum):
    ROOM_PHOTO_AI = "ROOM_PHOTO_AI"


class InventoryCategory(str, Enum):
    APPLIANCE = "APPLIANCE"
    ELECTRONICS = "ELECTRONICS"
    FURNITURE = "FURNITURE"
    HVAC = "HVAC"
    PLUMBING = "PLUMBING"
    SECURITY = "SECURITY"
    TOOL = "TOOL"
    DOCUMENT = "DOCUMENT"
    OTHER = "OTHER"


class DuplicateMatchOut(BaseModel):
    existing_item_id: str
    score: float = Field(ge=0.0, le=1.0)
    same_room: bool


class DraftConfidenceOut(BaseModel):
    name: float = Field(ge=0.0, le=1.0)
    category: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DraftItemOut(BaseModel):
    id: str
    property_id: str
    room_id: str
    scan_session_id: str
    status: DraftStatus
    source: DraftSource = DraftSource.ROOM_PHOTO_AI
    name: str
    category: Optional[InventoryCategory] = None
    confidence: DraftConfidenceOut
    duplicate_match: Optional[DuplicateMatchOut] = None
    detection_meta: Optional[Dict[str, Any]] = None
    confirmed_item_id: Optional[str] = None
    created_at: Optional[datetime] = None


class RoomScanResponse(BaseModel):
    session_id: str
    drafts: List[DraftItemOut]


class RoomScanSessionOut(BaseModel):
    session_id: str
    status: ScanSessionStatus
    provider: str
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    draft_count: int


class DraftListResponse(BaseModel):
    items: List[DraftItemOut]


class ConfirmDraftResponse(BaseModel):
    draft: DraftItemOut
    inventory_item_id: str
