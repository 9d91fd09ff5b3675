"""Google Gemini vision provider (REST generateContent)."""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any, Optional

import httpx

from app.services.ai.common.json_tools import parse_loose_json
from app.services.ai.room_scan.contracts import candidates_from_payload
from app.services.room_scan.errors import (
    ModelUnsupportedError,
    ProviderFatalError,
    ProviderTransientError,
)

from .base import RawResponse, VisionExtraction, VisionProvider

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
MODEL_UNSUPPORTED_MARKERS = ("not found", "not supported", "unsupported", "is not available")

SCHEMA_HINT = {
    "items": [
        {
            "label": "Sofa",
            "category": "FURNITURE",
            "confidence": 0.78,
            "boxes": [{"imageIndex": 0, "x": 0.12, "y": 0.32, "w": 0.66, "h": 0.44, "confidence": 0.71}],
            "explanation": {
                "tier": "HIGH",
                "why": ["Clear silhouette", "Common in living rooms"],
                "cues": ["cushions", "armrests"],
                "agreement": "MULTI_IMAGE",
            },
        }
    ]
}


def build_prompt(room_type: Optional[str]) -> str:
    room_hint = f"Room type hint: {room_type}" if room_type else "Room type hint: unknown"
    return "\n".join(
        [
            "You are an expert home-inventory assistant.",
            "Task: From the provided room photos, list distinct visible household items suitable for a home inventory.",
            "",
            "Return ONLY valid JSON. No prose. No markdown.",
            "",
            "Rules:",
            "- Prefer fewer, higher-quality items; merge obvious duplicates.",
            "- Do NOT guess brand/model/serial/value.",
            '- Use short labels (e.g., "Sofa", "TV", "Coffee table").',
            "- category is one of APPLIANCE, ELECTRONICS, FURNITURE, HVAC, PLUMBING, SECURITY, TOOL, DOCUMENT, OTHER.",
            f"- {room_hint}",
            "",
            "Explainability: for each item include explanation.why (1-3 short bullets) and explanation.tier (HIGH|MEDIUM|LOW).",
            "Bounding boxes (best-effort): 1..3 boxes per item, normalized x,y,w,h in [0..1], each with a 0-based imageIndex.",
            "If you cannot provide boxes, return boxes: [].",
            "",
            f"Return JSON exactly matching this shape: {json.dumps(SCHEMA_HINT)}",
        ]
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return str(data["error"].get("message") or data["error"].get("status") or "")[:300]
    return resp.text[:300]


def classify_http_error(model: str, resp: httpx.Response) -> Exception:
    """Map a non-2xx Gemini response onto the provider error taxonomy."""
    status = resp.status_code
    message = _error_message(resp)
    lowered = message.lower()

    if status == 404 or (status == 400 and any(m in lowered for m in MODEL_UNSUPPORTED_MARKERS)):
        return ModelUnsupportedError(f"Model {model} unavailable: {message}", status=status)
    if status in TRANSIENT_STATUSES:
        return ProviderTransientError(f"Gemini {status}: {message}", status=status)
    if status in (401, 403):
        return ProviderFatalError(f"Gemini rejected credentials ({status})", status=status)
    return ProviderFatalError(f"Gemini {status}: {message}", status=status)


def _response_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))


class GeminiVisionProvider(VisionProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        models: tuple[str, ...],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = 0.2,
        max_output_tokens: int = 1200,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._models = models
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def _body(self, images: list[bytes], room_type: Optional[str]) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": build_prompt(room_type)}]
        for img in images:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": "image/jpeg",
                        "data": base64.b64encode(img).decode("ascii"),
                    }
                }
            )
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
            },
        }

    async def _generate(self, client: httpx.AsyncClient, model: str, body: dict[str, Any]) -> RawResponse:
        t0 = time.monotonic()
        try:
            resp = await client.post(
                f"{self._base_url}/models/{model}:generateContent",
                headers={"x-goog-api-key": self._api_key, "Content-Type": "application/json"},
                json=body,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTransientError(f"Gemini timeout for {model}") from exc
        except httpx.TransportError as exc:
            raise ProviderTransientError(f"Gemini transport error for {model}: {exc}") from exc

        if resp.status_code >= 400:
            raise classify_http_error(model, resp)

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise ProviderFatalError(f"Gemini returned a malformed response for {model}", status=resp.status_code)
        usage = data.get("usageMetadata")
        elapsed = (time.monotonic() - t0) * 1000
        return RawResponse(
            model=model,
            text=_response_text(data),
            usage=dict(usage) if isinstance(usage, dict) else {},
            latency_ms=round(elapsed, 2),
        )

    async def extract_items(
        self,
        images: list[bytes],
        *,
        room_type: Optional[str] = None,
    ) -> VisionExtraction:
        if not self._api_key:
            raise ProviderFatalError("GEMINI_API_KEY is not configured", code="ROOM_SCAN_CONFIG_ERROR")
        if not self._models:
            raise ProviderFatalError("No vision models configured", code="ROOM_SCAN_CONFIG_ERROR")

        body = self._body(images, room_type)
        async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
            for model in self._models:
                try:
                    raw = await self._generate(client, model, body)
                except ModelUnsupportedError as exc:
                    logger.warning("Model %s unsupported, trying next candidate: %s", model, exc.message)
                    continue
                items = candidates_from_payload(parse_loose_json(raw.text))
                return VisionExtraction(items=items, raw=raw)

        raise ProviderFatalError(f"All candidate models unsupported: {', '.join(self._models)}")
