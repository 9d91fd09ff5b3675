import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")


class InventoryRoom(Base):
    """Room owned by the inventory subsystem; read here only to scope scans."""

    __tablename__ = "inventory_rooms"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    property_id = Column(String(64), nullable=False)
    name = Column(String(120), nullable=False)
    room_type = Column(String(40))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("idx_inventory_rooms_property", "property_id"),)


class InventoryItem(Base):
    """Permanent inventory entry; only summarised here as duplicate-match candidates."""

    __tablename__ = "inventory_items"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    property_id = Column(String(64), nullable=False)
    room_id = Column(UUID_TYPE, ForeignKey("inventory_rooms.id", ondelete="SET NULL"))
    name = Column(String(200), nullable=False)
    category = Column(String(32))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_inventory_items_property_created", "property_id", "created_at"),
        Index("idx_inventory_items_room", "room_id"),
    )


class RoomScanSession(Base):
    __tablename__ = "room_scan_sessions"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    property_id = Column(String(64), nullable=False)
    room_id = Column(UUID_TYPE, ForeignKey("inventory_rooms.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="PROCESSING", server_default=text("'PROCESSING'"))
    provider = Column(String(32), nullable=False)
    images_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    image_refs = Column(JSON_TYPE)
    result_meta = Column(JSON_TYPE)
    error = Column(Text)
    expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PROCESSING','COMPLETE','FAILED')",
            name="chk_room_scan_session_status",
        ),
        Index("idx_room_scan_sessions_user_created", "user_id", "created_at"),
        Index("idx_room_scan_sessions_property_created", "property_id", "created_at"),
    )


class InventoryDraftItem(Base):
    __tablename__ = "inventory_draft_items"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    property_id = Column(String(64), nullable=False)
    room_id = Column(UUID_TYPE, ForeignKey("inventory_rooms.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    scan_session_id = Column(
        UUID_TYPE,
        ForeignKey("room_scan_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(String(32), nullable=False, default="DRAFT", server_default=text("'DRAFT'"))
    source = Column(String(32), nullable=False, default="ROOM_PHOTO_AI", server_default=text("'ROOM_PHOTO_AI'"))
    name = Column(String(200), nullable=False)
    category = Column(String(32))
    confidence = Column(JSON_TYPE, nullable=False)
    duplicate_match = Column(JSON_TYPE)
    detection_meta = Column(JSON_TYPE)
    confirmed_item_id = Column(UUID_TYPE, ForeignKey("inventory_items.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT','CONFIRMED','DISMISSED')",
            name="chk_inventory_draft_status",
        ),
        Index("idx_inventory_drafts_session_status", "scan_session_id", "status"),
        Index("idx_inventory_drafts_property_user", "property_id", "user_id"),
    )
