"""Collapse repeated detections of one object (several photo angles) into one candidate."""

from __future__ import annotations

import re

from app.services.ai.room_scan.contracts import CandidateItem

# Confidence assumed for candidates the model did not score.
DEFAULT_CONFIDENCE = 0.6

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_label(label: str) -> str:
    """Lowercase, collapse runs of non-alphanumerics to one space, trim."""
    return _NON_ALNUM_RE.sub(" ", str(label or "").lower()).strip()


def dedupe_candidates(items: list[CandidateItem]) -> list[CandidateItem]:
    """Keep the highest-confidence candidate per normalised label.

    Exact confidence ties keep the first seen.  Candidates whose label
    normalises to nothing are dropped.  Output follows first-seen key order and
    every survivor carries a concrete confidence.
    """
    best: dict[str, CandidateItem] = {}
    for item in items:
        key = normalize_label(item.label)
        if not key:
            continue
        confidence = item.confidence if item.confidence is not None else DEFAULT_CONFIDENCE
        current = best.get(key)
        if current is None or confidence > current.confidence:
            best[key] = item.model_copy(update={"confidence": confidence})
    return list(best.values())
