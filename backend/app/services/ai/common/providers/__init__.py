"""Provider factory: returns the configured vision provider."""

from __future__ import annotations

import logging

from app.core.config import Settings, get_settings

from .base import RawResponse, VisionExtraction, VisionProvider
from .mock import MockVisionProvider

logger = logging.getLogger(__name__)

__all__ = [
    "get_provider",
    "MockVisionProvider",
    "RawResponse",
    "VisionExtraction",
    "VisionProvider",
]

MOCK_NAMES = frozenset({"mock", "stub"})


def get_provider(provider_name: str | None = None, settings: Settings | None = None) -> VisionProvider:
    """Return a vision provider instance for *provider_name* (default: ``ROOM_SCAN_PROVIDER``).

    ``mock``/``stub`` select the deterministic provider; anything else selects
    Gemini.  A missing API key is not rejected here: the scan session records
    the configuration failure when the provider is called.
    """
    settings = settings or get_settings()
    name = (provider_name or settings.room_scan_provider or "").lower().strip()

    if name in MOCK_NAMES:
        return MockVisionProvider()

    if name != "gemini":
        logger.warning("Unknown room scan provider %r, using gemini", name)

    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set, room scans will fail until it is configured")

    from app.services.ai.common.router import resolve

    from .gemini import GeminiVisionProvider

    config = resolve(settings)
    return GeminiVisionProvider(
        api_key=settings.gemini_api_key,
        models=config.models,
        base_url=settings.gemini_api_base,
        temperature=config.temperature,
        max_output_tokens=config.max_tokens,
        timeout_seconds=config.timeout_seconds,
    )
