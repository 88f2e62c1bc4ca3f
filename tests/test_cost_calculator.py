"""
Cost calculator tests
"""

import pytest

from agenthub.services.anthropic_service import ModelTier
from agenthub.services.cost_calculator import (
    ModelPricing,
    UsageService,
    calculate_caching_savings,
    calculate_token_cost,
    calculate_voice_cost,
    format_cost,
    get_model_pricing_info,
    recalculate_log_cost,
)

PRICING = {
    "fast": ModelPricing(input=1.0, output=5.0, cached=0.1),
    "smart": ModelPricing(input=3.0, output=15.0, cached=0.3),
}


def test_fast_tier_cost():
    calc = calculate_token_cost("fast", input_tokens=1_000_000, output_tokens=200_000, pricing=PRICING)
    assert calc.input_cost == pytest.approx(1.0)
    assert calc.output_cost == pytest.approx(1.0)
    assert calc.cached_cost == 0
    assert calc.total_cost == pytest.approx(2.0)


def test_tier_accepts_enum_and_service():
    by_enum = calculate_token_cost(ModelTier.SMART, 1000, 1000, pricing=PRICING).total_cost
    by_service = calculate_token_cost(UsageService.SMART_MODEL, 1000, 1000, pricing=PRICING).total_cost
    by_value = calculate_token_cost("claude-sonnet", 1000, 1000, pricing=PRICING).total_cost
    assert by_enum == by_service == by_value == pytest.approx(0.018)


def test_cached_tokens_use_cached_rate():
    calc = calculate_token_cost("smart", cached_tokens=1_000_000, pricing=PRICING)
    assert calc.total_cost == pytest.approx(0.3)


def test_unknown_tier_rejected():
    with pytest.raises(ValueError):
        calculate_token_cost("turbo", 10, 10, pricing=PRICING)


def test_voice_cost():
    assert calculate_voice_cost(0) == 0.0
    assert calculate_voice_cost(-5) == 0.0
    assert calculate_voice_cost(6000) == pytest.approx(1.0)


def test_caching_savings():
    # 1M cached fast-tier tokens would have cost $1.00; 90% of that is saved
    assert calculate_caching_savings("fast", 1_000_000, PRICING) == pytest.approx(0.9)


def test_recalculate_reprices_model_logs_only():
    assert recalculate_log_cost("claude-haiku", 1_000_000, 0, 0, 99.0, pricing=PRICING) == pytest.approx(1.0)
    assert recalculate_log_cost("elevenlabs", 0, 0, 0, 0.25, pricing=PRICING) == 0.25
    assert recalculate_log_cost("something-else", 10, 10, 0, 0.5, pricing=PRICING) == 0.5


def test_recalculate_is_stable():
    first = recalculate_log_cost("claude-sonnet", 1234, 567, 89, 0.0, pricing=PRICING)
    second = recalculate_log_cost("claude-sonnet", 1234, 567, 89, first, pricing=PRICING)
    assert first == second


def test_format_cost():
    assert format_cost(0) == "$0.00"
    assert format_cost(0.000123) == "$0.000123"
    assert format_cost(1.5) == "$1.50"


def test_pricing_info_lists_tiers():
    info = get_model_pricing_info()
    assert set(info["models"]) == {"fast", "smart"}
    assert info["voice"]["charactersPerDollar"] > 0
