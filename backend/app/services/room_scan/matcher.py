"""Score scan candidates against existing inventory to flag probable duplicates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from app.services.room_scan.dedupe import normalize_label

MATCH_THRESHOLD = 0.82
SUBSTRING_SCORE = 0.92
SUBSTRING_MIN_LENGTH = 6
SAME_ROOM_BONUS = 0.02


@dataclass(frozen=True)
class InventoryItemSummary:
    id: str
    name: str
    category: Optional[str]
    room_id: Optional[str]


@dataclass(frozen=True)
class DuplicateMatch:
    existing_item_id: str
    score: float
    same_room: bool

    def as_dict(self) -> dict:
        return {
            "existing_item_id": self.existing_item_id,
            "score": self.score,
            "same_room": self.same_room,
        }


def token_jaccard(a: str, b: str) -> float:
    """|A ∩ B| / |A ∪ B| over whitespace tokens of two normalised strings."""
    tokens_a, tokens_b = set(a.split()), set(b.split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def similarity(label: str, name: str) -> float:
    a, b = normalize_label(label), normalize_label(name)
    if not a or not b:
        return 0.0
    score = token_jaccard(a, b)
    shorter, longer = sorted((a, b), key=len)
    # "sofa" vs "grey sofa sectional"
    if len(longer) >= SUBSTRING_MIN_LENGTH and shorter in longer:
        score = max(score, SUBSTRING_SCORE)
    return score


def find_duplicate_match(
    label: str,
    room_id: str,
    candidates: Iterable[InventoryItemSummary],
) -> Optional[DuplicateMatch]:
    """Return the best existing item for *label*, or ``None`` below the threshold.

    Qualification uses the base similarity; the same-room bonus only orders
    qualifying items (an in-room item also wins a tie at the 1.0 cap).
    Otherwise earlier candidates win exact ties.
    """
    best: Optional[DuplicateMatch] = None
    for item in candidates:
        base = similarity(label, item.name)
        if base < MATCH_THRESHOLD:
            continue
        same_room = item.room_id is not None and str(item.room_id) == str(room_id)
        adjusted = min(1.0, base + SAME_ROOM_BONUS) if same_room else base
        if best is None or adjusted > best.score or (adjusted == best.score and same_room and not best.same_room):
            best = DuplicateMatch(existing_item_id=str(item.id), score=adjusted, same_room=same_room)

    if best is None:
        return None
    return DuplicateMatch(
        existing_item_id=best.existing_item_id,
        score=round(best.score, 4),
        same_room=best.same_room,
    )
