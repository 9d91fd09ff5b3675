"""Lenient JSON extraction from vision model responses.

Models are asked for bare JSON but regularly wrap it in prose or markdown
fences.  ``parse_loose_json`` runs an ordered chain of pure strategies and
returns the first successful parse.  It never raises: ``None`` means "nothing
usable", which callers treat as zero items.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def _strict(text: str) -> Optional[Any]:
    # A bare top-level array parses here and ends the chain; callers read it as zero items.
    return _loads(text)


def _fenced_block(text: str) -> Optional[Any]:
    match = _FENCED_RE.search(text)
    if not match or not match.group(1):
        return None
    return _loads(match.group(1).strip())


def _object_slice(text: str) -> Optional[Any]:
    first, last = text.find("{"), text.rfind("}")
    if first < 0 or last <= first:
        return None
    return _loads(text[first : last + 1])


def _array_slice(text: str) -> Optional[Any]:
    first, last = text.find("["), text.rfind("]")
    if first < 0 or last <= first:
        return None
    parsed = _loads(text[first : last + 1])
    if isinstance(parsed, list):
        return {"items": parsed}
    return None


PARSE_STRATEGIES: tuple[tuple[str, Callable[[str], Optional[Any]]], ...] = (
    ("strict", _strict),
    ("fenced", _fenced_block),
    ("object_slice", _object_slice),
    ("array_slice", _array_slice),
)


def parse_loose_json(text: Optional[str]) -> Optional[Any]:
    """Return the first value any strategy can parse from *text*, else ``None``."""
    stripped = str(text or "").strip()
    if not stripped:
        return None

    for name, strategy in PARSE_STRATEGIES:
        result = strategy(stripped)
        if result is not None:
            if name != "strict":
                logger.debug("Parsed model output via %s strategy", name)
            return result

    logger.info("Model output is not parseable JSON (len=%d)", len(stripped))
    return None
