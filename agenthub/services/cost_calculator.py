"""
Cost Calculator — USD cost of model and voice usage.

Token costs use a per-tier rate triple (input, output, cached) quoted per
1M tokens. Voice synthesis is billed per character. All functions are
pure: the same counts and the same pricing always give the same cost,
which is what makes the admin recalculation pass safe to re-run.

Usage:
    from agenthub.services.cost_calculator import calculate_token_cost

    calc = calculate_token_cost("fast", input_tokens=1_000_000)
    calc.total_cost  # 1.0
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from agenthub.config import settings

TOKENS_PER_UNIT = 1_000_000
CACHE_DISCOUNT = 0.9  # Cached input is billed at 10% of the input rate


class UsageService(str, Enum):
    """Billable services recorded in the usage ledger."""
    FAST_MODEL = "claude-haiku"
    SMART_MODEL = "claude-sonnet"
    TTS = "elevenlabs"
    BROWSER_SPEECH = "web-speech"


TIER_FOR_SERVICE = {
    UsageService.FAST_MODEL: "fast",
    UsageService.SMART_MODEL: "smart",
}
SERVICE_FOR_TIER = {tier: service for service, tier in TIER_FOR_SERVICE.items()}


@dataclass(frozen=True)
class ModelPricing:
    """USD per 1M tokens."""
    input: float
    output: float
    cached: float

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "ModelPricing":
        return cls(
            input=float(data.get("input", 0.0)),
            output=float(data.get("output", 0.0)),
            cached=float(data.get("cached", 0.0)),
        )


PricingTable = Dict[str, ModelPricing]


def default_pricing() -> PricingTable:
    return {tier: ModelPricing.from_dict(rates) for tier, rates in settings.pricing_per_1m.items()}


@dataclass
class CostCalculation:
    input_cost: float
    output_cost: float
    cached_cost: float
    total_cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputCost": self.input_cost,
            "outputCost": self.output_cost,
            "cachedCost": self.cached_cost,
            "totalCost": self.total_cost,
        }


def _tier_key(tier: Any) -> str:
    value = getattr(tier, "value", tier)
    if value in ("fast", "smart"):
        return value
    for service, service_tier in TIER_FOR_SERVICE.items():
        if service.value == value:
            return service_tier
    raise ValueError(f"Unknown model tier: {tier!r}")


def calculate_token_cost(
    tier: Any,
    input_tokens: int = 0,
    output_tokens: int = 0,
    cached_tokens: int = 0,
    pricing: Optional[PricingTable] = None,
) -> CostCalculation:
    """
    Cost of one model call.

    `tier` is "fast"/"smart", a ModelTier, or the matching UsageService.
    """
    pricing = pricing or default_pricing()
    rates = pricing[_tier_key(tier)]

    input_cost = input_tokens / TOKENS_PER_UNIT * rates.input
    output_cost = output_tokens / TOKENS_PER_UNIT * rates.output
    cached_cost = cached_tokens / TOKENS_PER_UNIT * rates.cached
    return CostCalculation(
        input_cost=input_cost,
        output_cost=output_cost,
        cached_cost=cached_cost,
        total_cost=input_cost + output_cost + cached_cost,
    )


def calculate_voice_cost(characters: int) -> float:
    if characters <= 0:
        return 0.0
    return characters / settings.voice_characters_per_dollar


def calculate_caching_savings(
    tier: Any,
    cached_tokens: int,
    pricing: Optional[PricingTable] = None,
) -> float:
    """What the cached tokens would have cost as regular input, minus the cache rate."""
    pricing = pricing or default_pricing()
    rates = pricing[_tier_key(tier)]
    return cached_tokens / TOKENS_PER_UNIT * rates.input * CACHE_DISCOUNT


def recalculate_log_cost(
    service: str,
    input_tokens: int,
    output_tokens: int,
    cached_tokens: int,
    current_cost: float,
    pricing: Optional[PricingTable] = None,
) -> float:
    """
    Cost a stored usage record should carry under `pricing`.

    Only model-tier services are repriced; voice and browser speech keep
    their recorded cost.
    """
    try:
        tier = TIER_FOR_SERVICE.get(UsageService(service))
    except ValueError:
        tier = None
    if tier is None:
        return current_cost
    return calculate_token_cost(
        tier, input_tokens, output_tokens, cached_tokens, pricing=pricing
    ).total_cost


def format_cost(cost: float) -> str:
    if cost == 0:
        return "$0.00"
    if cost < 0.01:
        return f"${cost:.6f}"
    return f"${cost:.2f}"


def get_model_pricing_info() -> Dict[str, Any]:
    """Current rates, for display."""
    return {
        "models": {
            tier: {"input": p.input, "output": p.output, "cached": p.cached}
            for tier, p in default_pricing().items()
        },
        "voice": {
            "charactersPerDollar": settings.voice_characters_per_dollar,
            "monthlyCharacterLimit": settings.voice_monthly_character_limit,
        },
    }
