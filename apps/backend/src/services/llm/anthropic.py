"""Anthropic adapter built on a pydantic-ai agent streaming typed delta events."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Sequence

import anthropic
import httpx
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError, ModelHTTPError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel, AnthropicModelSettings
from pydantic_ai.providers.anthropic import AnthropicProvider

from services.llm.base import BaseStreamAdapter, PromptTurn
from services.llm.exceptions import (
    UpstreamConnectionError,
    UpstreamProviderError,
    UpstreamStatusError,
)
from services.streaming import Chunk, Thinking


logger = logging.getLogger(__name__)


def _convert_turns_to_pydantic_ai(turns: Sequence[PromptTurn]) -> list[ModelMessage]:
    """Convert prior turns to pydantic-ai message history."""
    result: list[ModelMessage] = []
    for turn in turns:
        if not turn.content:
            continue
        if turn.role == "user":
            result.append(ModelRequest(parts=[UserPromptPart(content=turn.content)]))
        else:
            result.append(
                ModelResponse(
                    parts=[TextPart(content=turn.content)], model_name="historical"
                )
            )
    return result


def _to_stream_event(event: object) -> Thinking | Chunk | None:
    """Map one pydantic-ai agent event to a normalized event, if it carries one."""
    match event:
        case PartStartEvent(part=TextPart(content=content)) if content:
            return Chunk(content)
        case PartDeltaEvent(delta=TextPartDelta(content_delta=delta)) if delta:
            return Chunk(delta)
        case PartStartEvent(part=ThinkingPart()) | PartDeltaEvent(
            delta=ThinkingPartDelta()
        ):
            return Thinking()
        case _:
            # Tool calls, final-result markers and the run result carry no text
            return None


class AnthropicStreamAdapter(BaseStreamAdapter):
    """Streams from the Anthropic Messages API.

    Extended thinking, when enabled, arrives as native thinking parts and is
    surfaced as ``Thinking`` events without any text.
    """

    provider = "anthropic"

    def __init__(
        self,
        *,
        api_key: str | None,
        max_tokens: int = 16_384,
        timeout: float = 300.0,
        thinking_budget_tokens: int = 0,
        model_factory: Callable[[str], Model] | None = None,
    ) -> None:
        self._api_key = api_key
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._thinking_budget_tokens = thinking_budget_tokens
        self._model_factory = model_factory

    def _build_model(self, model_name: str) -> Model:
        if self._model_factory is not None:
            return self._model_factory(model_name)
        if not self._api_key:
            raise UpstreamProviderError(
                self.provider, "ANTHROPIC_API_KEY is not configured"
            )
        return AnthropicModel(
            model_name, provider=AnthropicProvider(api_key=self._api_key)
        )

    def _model_settings(self) -> AnthropicModelSettings:
        settings = AnthropicModelSettings(
            max_tokens=self._max_tokens, timeout=self._timeout
        )
        if self._thinking_budget_tokens > 0:
            settings["anthropic_thinking"] = {
                "type": "enabled",
                "budget_tokens": self._thinking_budget_tokens,
            }
        return settings

    async def _stream_native(
        self, model: str, turns: Sequence[PromptTurn], system_prompt: str
    ) -> AsyncIterator[Thinking | Chunk]:
        if not turns or turns[-1].role != "user":
            raise ValueError("Anthropic streaming requires a trailing user turn")

        agent = Agent(
            self._build_model(model), instructions=system_prompt, output_type=str
        )
        history = _convert_turns_to_pydantic_ai(turns[:-1])

        try:
            async for agent_event in agent.run_stream_events(
                turns[-1].content,
                message_history=history,
                model_settings=self._model_settings(),
            ):
                event = _to_stream_event(agent_event)
                if event is not None:
                    yield event
        except ModelHTTPError as exc:
            raise UpstreamStatusError(
                self.provider, exc.status_code, str(exc.body or exc.message)[:500]
            ) from exc
        except AgentRunError as exc:
            raise UpstreamProviderError(self.provider, str(exc)) from exc
        except anthropic.APIStatusError as exc:
            raise UpstreamStatusError(
                self.provider, exc.status_code, exc.message
            ) from exc
        except (anthropic.APIConnectionError, httpx.HTTPError) as exc:
            logger.warning("Anthropic transport error for model %s: %s", model, exc)
            raise UpstreamConnectionError(self.provider, str(exc)) from exc
