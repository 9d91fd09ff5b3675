"""Model router. Resolves the vision model chain (forced override, then configured fallbacks)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedConfig:
    """Final resolved model chain and generation parameters."""

    models: tuple[str, ...]
    temperature: float
    max_tokens: int
    timeout_seconds: float


def _normalize_model_id(model: str) -> str:
    model = model.strip()
    if model.startswith("models/"):
        model = model[len("models/") :]
    return model


def resolve_models(override_model: Optional[str], fallback_models: list[str]) -> tuple[str, ...]:
    """Return candidate model ids in priority order, without duplicates.

    The override (if any) is tried first, then the fallbacks in configured order.
    """
    chain: list[str] = []
    for model in [override_model or "", *fallback_models]:
        normalized = _normalize_model_id(model)
        if normalized and normalized not in chain:
            chain.append(normalized)
    return tuple(chain)


def resolve(settings: Settings | None = None) -> ResolvedConfig:
    settings = settings or get_settings()
    models = resolve_models(settings.room_scan_model_override, settings.room_scan_fallback_models)
    if not models:
        logger.warning("No room scan models configured (ROOM_SCAN_FALLBACK_MODELS is empty)")
    return ResolvedConfig(
        models=models,
        temperature=settings.room_scan_temperature,
        max_tokens=settings.room_scan_max_output_tokens,
        timeout_seconds=settings.room_scan_timeout_seconds,
    )
