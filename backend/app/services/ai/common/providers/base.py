"""Abstract base for vision providers used by room scans."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Optional

from app.services.ai.room_scan.contracts import CandidateItem


@dataclass(frozen=True)
class RawResponse:
    """What the model actually returned, kept for session diagnostics."""

    model: str
    text: str = ""
    usage: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0

    @property
    def prompt_tokens(self) -> Optional[int]:
        return self.usage.get("promptTokenCount", self.usage.get("prompt_tokens"))

    @property
    def completion_tokens(self) -> Optional[int]:
        return self.usage.get("candidatesTokenCount", self.usage.get("completion_tokens"))

    @property
    def total_tokens(self) -> Optional[int]:
        return self.usage.get("totalTokenCount", self.usage.get("total_tokens"))


@dataclass(frozen=True)
class VisionExtraction:
    """Immutable result returned by every vision provider."""

    items: list[CandidateItem]
    raw: RawResponse


class VisionProvider(abc.ABC):
    """Contract that every vision provider must implement."""

    name: str = "base"

    @abc.abstractmethod
    async def extract_items(
        self,
        images: list[bytes],
        *,
        room_type: Optional[str] = None,
    ) -> VisionExtraction:
        """Propose inventory items visible in *images* (JPEG bytes, in upload order)."""
