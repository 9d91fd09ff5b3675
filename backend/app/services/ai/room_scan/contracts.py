"""Room scan contracts: candidate items proposed by the vision provider."""

from __future__ import annotations

import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

# Matches the width of inventory_draft_items.name.
MAX_LABEL_CHARS = 200


def clamp01(value: Any) -> Optional[float]:
    """Coerce *value* to a float in [0, 1]; ``None`` for anything non-numeric."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(0.0, min(1.0, number))


class BoundingBox(BaseModel):
    """Best-effort location of an item, normalised to the image size."""

    image_index: int = Field(ge=0)
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    w: float = Field(ge=0.0, le=1.0)
    h: float = Field(ge=0.0, le=1.0)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class Explanation(BaseModel):
    tier: Optional[Literal["HIGH", "MEDIUM", "LOW"]] = None
    why: list[str] = []
    cues: list[str] = []
    agreement: Optional[Literal["SINGLE_IMAGE", "MULTI_IMAGE"]] = None


class CandidateItem(BaseModel):
    """Ephemeral item label; becomes a draft or is discarded."""

    label: str = Field(min_length=1, max_length=MAX_LABEL_CHARS)
    category: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    boxes: list[BoundingBox] = []
    explanation: Optional[Explanation] = None


def _box_from_raw(raw: Any) -> Optional[BoundingBox]:
    if not isinstance(raw, dict):
        return None
    index = raw.get("imageIndex", raw.get("image_index"))
    if isinstance(index, bool) or not isinstance(index, (int, float)) or not math.isfinite(index) or index < 0:
        return None
    coords = [clamp01(raw.get(key)) for key in ("x", "y", "w", "h")]
    if any(c is None for c in coords):
        return None
    x, y, w, h = coords
    return BoundingBox(
        image_index=int(index),
        x=x,
        y=y,
        w=w,
        h=h,
        confidence=clamp01(raw.get("confidence")),
    )


def _explanation_from_raw(raw: Any) -> Optional[Explanation]:
    if not isinstance(raw, dict):
        return None
    tier = str(raw.get("tier") or "").upper() or None
    agreement = str(raw.get("agreement") or "").upper() or None
    why = raw.get("why") if isinstance(raw.get("why"), list) else []
    cues = raw.get("cues") if isinstance(raw.get("cues"), list) else []
    return Explanation(
        tier=tier if tier in {"HIGH", "MEDIUM", "LOW"} else None,
        why=[str(w) for w in why if str(w).strip()][:3],
        cues=[str(c) for c in cues if str(c).strip()],
        agreement=agreement if agreement in {"SINGLE_IMAGE", "MULTI_IMAGE"} else None,
    )


def candidates_from_payload(payload: Any) -> list[CandidateItem]:
    """Turn a loosely parsed model payload into validated candidates.

    Accepts ``{"items": [...]}`` (list or dict of items); anything else yields
    an empty list.  Items without a label are dropped and long labels are cut
    to ``MAX_LABEL_CHARS``.
    """
    if not isinstance(payload, dict):
        return []
    raw_items = payload.get("items")
    if isinstance(raw_items, dict):
        raw_items = list(raw_items.values())
    if not isinstance(raw_items, list):
        return []

    items: list[CandidateItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        label = str(raw.get("label") or "").strip()[:MAX_LABEL_CHARS].rstrip()
        if not label:
            continue
        category = str(raw.get("category") or "").strip() or None
        boxes = raw.get("boxes") if isinstance(raw.get("boxes"), list) else []
        items.append(
            CandidateItem(
                label=label,
                category=category,
                confidence=clamp01(raw.get("confidence")),
                boxes=[box for box in (_box_from_raw(b) for b in boxes) if box is not None],
                explanation=_explanation_from_raw(raw.get("explanation")),
            )
        )
    return items
