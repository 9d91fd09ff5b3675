"""Mock provider: deterministic responses for tests and local development."""

from __future__ import annotations

import json
import time
from typing import Optional

from app.services.ai.common.json_tools import parse_loose_json
from app.services.ai.room_scan.contracts import candidates_from_payload

from .base import RawResponse, VisionExtraction, VisionProvider

DEFAULT_MOCK_PAYLOAD = {
    "items": [
        {
            "label": "Sofa",
            "category": "FURNITURE",
            "confidence": 0.75,
            "boxes": [{"imageIndex": 0, "x": 0.1, "y": 0.35, "w": 0.7, "h": 0.45, "confidence": 0.7}],
            "explanation": {"tier": "MEDIUM", "why": ["Visible cushions + armrests"], "agreement": "SINGLE_IMAGE"},
        }
    ]
}


class MockVisionProvider(VisionProvider):
    """Returns a fixed response text and runs it through the normal parse path.

    Pass ``text`` to script what the "model" answers with.
    """

    name = "mock"

    def __init__(self, text: Optional[str] = None, *, model: str = "mock-vision-v1") -> None:
        self._text = text if text is not None else json.dumps(DEFAULT_MOCK_PAYLOAD)
        self._model = model
        self.calls = 0

    async def extract_items(
        self,
        images: list[bytes],
        *,
        room_type: Optional[str] = None,
    ) -> VisionExtraction:
        t0 = time.monotonic()
        self.calls += 1
        items = candidates_from_payload(parse_loose_json(self._text))
        elapsed = (time.monotonic() - t0) * 1000
        return VisionExtraction(
            items=items,
            raw=RawResponse(
                model=self._model,
                text=self._text,
                usage={
                    "promptTokenCount": len(images),
                    "candidatesTokenCount": len(self._text.split()),
                    "totalTokenCount": len(images) + len(self._text.split()),
                },
                latency_ms=round(elapsed, 2),
            ),
        )
