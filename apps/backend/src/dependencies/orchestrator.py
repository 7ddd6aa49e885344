"""Application-wide pipeline collaborators, built once from settings.

Route handlers depend on these getters so tests can swap any of them through
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache, partial
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from dependencies.db import get_session_factory
from services.artifacts import ArtifactCache
from services.chat import ConversationOrchestrator, SqlStepStore, SqlTurnStore
from services.deliverables import DeliverableDispatcher, render_markdown_pdf
from services.llm import AdapterRegistry, AnthropicStreamAdapter, OllamaStreamAdapter


@lru_cache
def get_adapter_registry() -> AdapterRegistry:
    settings = get_settings()
    return AdapterRegistry(
        ollama=OllamaStreamAdapter(
            settings.OLLAMA_BASE_URL,
            connect_timeout=settings.OLLAMA_CONNECT_TIMEOUT_SECONDS,
            read_timeout=settings.OLLAMA_READ_TIMEOUT_SECONDS,
        ),
        anthropic=AnthropicStreamAdapter(
            api_key=settings.ANTHROPIC_API_KEY,
            max_tokens=settings.ANTHROPIC_MAX_TOKENS,
            timeout=settings.ANTHROPIC_TIMEOUT_SECONDS,
            thinking_budget_tokens=settings.ANTHROPIC_THINKING_BUDGET_TOKENS,
        ),
    )


@lru_cache
def get_artifact_cache() -> ArtifactCache:
    settings = get_settings()
    return ArtifactCache(
        ttl_seconds=settings.ARTIFACT_CACHE_TTL_SECONDS,
        max_entries=settings.ARTIFACT_CACHE_MAX_ENTRIES,
    )


@lru_cache
def get_orchestrator() -> ConversationOrchestrator:
    """Singleton orchestrator wired to the SQL stores and configured providers."""
    settings = get_settings()
    session_factory = get_session_factory()
    steps = SqlStepStore(session_factory)
    return ConversationOrchestrator(
        adapters=get_adapter_registry(),
        turns=SqlTurnStore(session_factory),
        steps=steps,
        deliverables=DeliverableDispatcher(
            steps,
            settings.DELIVERABLES_DIR,
            renderer=partial(render_markdown_pdf, brand=settings.PDF_BRAND_NAME),
        ),
        artifact_cache=get_artifact_cache(),
        default_model=settings.DEFAULT_CHAT_MODEL,
        build_model=settings.BUILD_ARTIFACT_MODEL,
        max_history_messages=settings.MAX_HISTORY_MESSAGES,
        context_summary_max_chars=settings.CONTEXT_SUMMARY_MAX_CHARS,
    )


OrchestratorDep = Annotated[ConversationOrchestrator, Depends(get_orchestrator)]
ArtifactCacheDep = Annotated[ArtifactCache, Depends(get_artifact_cache)]
