"""Model stream adapters and routing between providers."""

from __future__ import annotations

from dataclasses import dataclass

from services.llm.anthropic import AnthropicStreamAdapter
from services.llm.base import BaseStreamAdapter, ModelStreamAdapter, PromptTurn
from services.llm.exceptions import (
    UpstreamConnectionError,
    UpstreamError,
    UpstreamIncompleteError,
    UpstreamProtocolError,
    UpstreamProviderError,
    UpstreamStatusError,
)
from services.llm.ollama import OllamaStreamAdapter


ANTHROPIC_MODEL_PREFIX = "claude"


@dataclass(slots=True)
class AdapterRegistry:
    """Routes a model name to the adapter that can serve it."""

    ollama: ModelStreamAdapter
    anthropic: ModelStreamAdapter

    def for_model(self, model: str) -> ModelStreamAdapter:
        if model.lower().startswith(ANTHROPIC_MODEL_PREFIX):
            return self.anthropic
        return self.ollama


__all__ = [
    "ANTHROPIC_MODEL_PREFIX",
    "AdapterRegistry",
    "AnthropicStreamAdapter",
    "BaseStreamAdapter",
    "ModelStreamAdapter",
    "OllamaStreamAdapter",
    "PromptTurn",
    "UpstreamConnectionError",
    "UpstreamError",
    "UpstreamIncompleteError",
    "UpstreamProtocolError",
    "UpstreamProviderError",
    "UpstreamStatusError",
]
