"""
Anthropic Claude API Service — Two-tier text completion for the agent engine.

Two model tiers are used:
- fast: agent matching, skill ranking and chat answers
- smart: profile generation and evolution analysis

Provides:
- Per-call API key override (users may bring their own key)
- Prompt-cache hint on the system prompt
- Token usage (input/output/cached) from the response
- Retry with backoff on retryable errors, classified into agenthub.agent.ai_errors
- send_json(): structured output parsed into a tagged result and re-asked
  a bounded number of times when malformed
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import anthropic

from agenthub.agent.ai_errors import InvalidUpstreamResponse, QuotaExceeded, retry_with_backoff
from agenthub.agent.llm_json import Malformed, parse_json_array, parse_json_object
from agenthub.config import settings

logger = logging.getLogger(__name__)


class ModelTier(str, Enum):
    FAST = "fast"
    SMART = "smart"


@dataclass
class LLMResponse:
    """Non-streaming response from Anthropic."""
    content: str
    model: str
    tier: ModelTier
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    caching_enabled: bool = False

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "tier": self.tier.value,
            "usage": {
                "inputTokens": self.input_tokens,
                "outputTokens": self.output_tokens,
                "cachedTokens": self.cached_tokens,
            },
        }


def model_for_tier(tier: ModelTier) -> str:
    return settings.smart_model if tier == ModelTier.SMART else settings.fast_model


class AnthropicService:
    """
    Anthropic Claude API wrapper.

    Clients are created lazily, one per API key, so user-supplied keys
    never leak into other users' calls.
    """

    def __init__(self, api_key: Optional[str] = None):
        self.default_api_key = api_key or settings.anthropic_api_key
        if not self.default_api_key:
            logger.warning("ANTHROPIC_API_KEY not set — calls without a user key will fail")
        self._clients: Dict[str, anthropic.AsyncAnthropic] = {}

    def _client(self, api_key: Optional[str]) -> anthropic.AsyncAnthropic:
        key = api_key or self.default_api_key
        if not key:
            raise QuotaExceeded("No Anthropic API key configured. Add one in settings.")
        client = self._clients.get(key)
        if client is None:
            # Retries are handled here, not by the SDK
            client = anthropic.AsyncAnthropic(api_key=key, max_retries=0)
            self._clients[key] = client
        return client

    @staticmethod
    def _prepare_system(system_prompt: str, enable_caching: bool) -> Any:
        if not enable_caching:
            return system_prompt
        return [{"type": "text", "text": system_prompt, "cache_control": {"type": "ephemeral"}}]

    async def send(
        self,
        prompt: str,
        system_prompt: str = "",
        tier: ModelTier = ModelTier.FAST,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        enable_caching: bool = False,
        api_key: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> LLMResponse:
        """
        Send a single user prompt (after optional history) and return the text.

        Args:
            prompt: The user turn.
            system_prompt: System prompt.
            tier: Model tier to use.
            max_tokens: Max output tokens.
            temperature: Sampling temperature.
            enable_caching: Mark the system prompt as cacheable.
            api_key: Per-call key override.
            history: Earlier turns as {"role", "content"} dicts.

        Raises:
            AIError subclasses after retries are exhausted.
        """
        tier = ModelTier(tier)
        model = model_for_tier(tier)
        messages = [
            {"role": m["role"], "content": m["content"]}
            for m in (history or [])
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = dict(
            model=model,
            max_tokens=max_tokens or settings.default_max_tokens,
            temperature=settings.default_temperature if temperature is None else temperature,
            messages=messages,
        )
        if system_prompt:
            kwargs["system"] = self._prepare_system(system_prompt, enable_caching)

        client = self._client(api_key)

        async def _call():
            return await client.messages.create(**kwargs)

        response = await retry_with_backoff(_call)

        text_parts = [block.text for block in response.content if block.type == "text"]
        usage = response.usage
        return LLMResponse(
            content="\n".join(text_parts),
            model=response.model,
            tier=tier,
            input_tokens=usage.input_tokens or 0,
            output_tokens=usage.output_tokens or 0,
            cached_tokens=getattr(usage, "cache_read_input_tokens", None) or 0,
            caching_enabled=enable_caching,
        )

    async def send_json(
        self,
        prompt: str,
        required: Iterable[str] = (),
        expect_array: bool = False,
        **kwargs,
    ) -> Tuple[Any, LLMResponse]:
        """
        Send a prompt that asks for JSON and return the decoded value.

        Malformed output is re-asked up to `llm_parse_attempts` times,
        then InvalidUpstreamResponse is raised so the caller can fall back.
        """
        attempts = max(1, settings.llm_parse_attempts)
        last: Optional[Malformed] = None
        for attempt in range(attempts):
            response = await self.send(prompt, **kwargs)
            if expect_array:
                result = parse_json_array(response.content)
            else:
                result = parse_json_object(response.content, required=required)
            if not isinstance(result, Malformed):
                return result.value, response
            last = result
            logger.warning(
                "[LLM] Malformed structured output (attempt %d/%d): %s",
                attempt + 1, attempts, result.reason,
            )
        raise InvalidUpstreamResponse(
            f"Malformed structured output: {last.reason if last else 'unknown'}",
            raw=last.raw if last else "",
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------
_anthropic_service: Optional[AnthropicService] = None


def get_anthropic_service() -> AnthropicService:
    global _anthropic_service
    if _anthropic_service is None:
        _anthropic_service = AnthropicService()
    return _anthropic_service
