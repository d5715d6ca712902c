"""LLM client contracts and default adapter."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter

from nurture.core.config import get_config
from nurture.services.llm_client import call_llm


@dataclass(frozen=True)
class LLMRequest:
    prompt_key: str
    prompt: str
    lead_id: int | None = None
    cycle_id: str | None = None
    json_mode: bool = True


@dataclass(frozen=True)
class LLMResponse:
    text: str
    model_name: str
    prompt_hash: str
    latency_ms: int
    generated_at: str


class LLMClient:
    """Default adapter around `call_llm`."""

    def generate(self, request: LLMRequest) -> LLMResponse:
        cfg = get_config()
        started = perf_counter()
        text = call_llm(prompt=request.prompt, json_mode=request.json_mode)
        latency_ms = int((perf_counter() - started) * 1000)
        return LLMResponse(
            text=text,
            model_name=cfg.OLLAMA_MODEL,
            prompt_hash=hashlib.sha256(request.prompt.encode("utf-8")).hexdigest(),
            latency_ms=latency_ms,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )
