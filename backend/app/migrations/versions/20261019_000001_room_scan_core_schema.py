"""room scan core schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

Rooms/items are the minimal inventory tables room scans read from;
room_scan_sessions + inventory_draft_items are owned by the scan pipeline.
Session status flow: PROCESSING -> COMPLETE | FAILED.
Draft status flow: DRAFT -> CONFIRMED | DISMISSED.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "inventory_rooms",
        _uuid_pk(),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("room_type", sa.String(40), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_inventory_rooms_property", "inventory_rooms", ["property_id"])

    op.create_table(
        "inventory_items",
        _uuid_pk(),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(32), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["room_id"], ["inventory_rooms.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_inventory_items_property_created", "inventory_items", ["property_id", "created_at"])
    op.create_index("idx_inventory_items_room", "inventory_items", ["room_id"])

    op.create_table(
        "room_scan_sessions",
        _uuid_pk(),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'PROCESSING'")),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("images_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("image_refs", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("result_meta", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PROCESSING','COMPLETE','FAILED')",
            name="chk_room_scan_session_status",
        ),
        sa.ForeignKeyConstraint(["room_id"], ["inventory_rooms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_room_scan_sessions_user_created", "room_scan_sessions", ["user_id", "created_at"])
    op.create_index("idx_room_scan_sessions_property_created", "room_scan_sessions", ["property_id", "created_at"])

    op.create_table(
        "inventory_draft_items",
        _uuid_pk(),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("scan_session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("source", sa.String(32), nullable=False, server_default=sa.text("'ROOM_PHOTO_AI'")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("confidence", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("duplicate_match", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("detection_meta", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("confirmed_item_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('DRAFT','CONFIRMED','DISMISSED')",
            name="chk_inventory_draft_status",
        ),
        sa.ForeignKeyConstraint(["room_id"], ["inventory_rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["scan_session_id"], ["room_scan_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["confirmed_item_id"], ["inventory_items.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_inventory_drafts_session_status", "inventory_draft_items", ["scan_session_id", "status"])
    op.create_index("idx_inventory_drafts_property_user", "inventory_draft_items", ["property_id", "user_id"])


def downgrade() -> None:
    op.drop_index("idx_inventory_drafts_property_user", table_name="inventory_draft_items")
    op.drop_index("idx_inventory_drafts_session_status", table_name="inventory_draft_items")
    op.drop_table("inventory_draft_items")
    op.drop_index("idx_room_scan_sessions_property_created", table_name="room_scan_sessions")
    op.drop_index("idx_room_scan_sessions_user_created", table_name="room_scan_sessions")
    op.drop_table("room_scan_sessions")
    op.drop_index("idx_inventory_items_room", table_name="inventory_items")
    op.drop_index("idx_inventory_items_property_created", table_name="inventory_items")
    op.drop_table("inventory_items")
    op.drop_index("idx_inventory_rooms_property", table_name="inventory_rooms")
    op.drop_table("inventory_rooms")
