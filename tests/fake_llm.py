"""Scripted stand-in for AnthropicService used across the tests."""

import json
from typing import Any, List, Optional

from agenthub.services.anthropic_service import AnthropicService, LLMResponse, ModelTier


class FakeLLM(AnthropicService):
    """
    Returns queued replies in order. A reply is a string (the model text),
    a dict or list (sent as JSON) or an exception instance (raised). When
    the queue runs dry the `default` reply is used.
    """

    def __init__(self, *replies: Any, default: Any = "", input_tokens: int = 100, output_tokens: int = 50):
        super().__init__(api_key="sk-ant-fake")
        self.replies: List[Any] = list(replies)
        self.default = default
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls: List[dict] = []

    async def send(
        self,
        prompt: str,
        system_prompt: str = "",
        tier: ModelTier = ModelTier.FAST,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        enable_caching: bool = False,
        api_key: Optional[str] = None,
        history=None,
    ) -> LLMResponse:
        tier = ModelTier(tier)
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "tier": tier,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "enable_caching": enable_caching,
            "api_key": api_key,
            "history": list(history or []),
        })
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return LLMResponse(
            content=reply,
            model=f"claude-{tier.value}-test",
            tier=tier,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cached_tokens=0,
            caching_enabled=enable_caching,
        )
