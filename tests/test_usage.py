"""
Tests for the usage ledger, trial limits and user settings
"""

from datetime import datetime, timedelta

import pytest

from agenthub.agent.ai_errors import ValidationError
from agenthub.config import settings
from agenthub.db.models import RequestType
from agenthub.services.anthropic_service import LLMResponse, ModelTier
from agenthub.services.cost_calculator import ModelPricing, UsageService
from agenthub.services.settings_service import REMOVE, UNCHANGED, SetTo, SettingsService, apply_key_updates
from agenthub.services.usage_ledger import UsageLedger, budget_status, month_ranges
from agenthub.services.usage_limits import TrialLimits, UsageLimitService

USER = "trial@example.com"


def llm_response(tier=ModelTier.FAST, input_tokens=1000, output_tokens=1000, cached_tokens=0):
    return LLMResponse(
        content="ok",
        model=f"claude-{tier.value}-test",
        tier=tier,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cached_tokens=cached_tokens,
        caching_enabled=cached_tokens > 0,
    )


# ============ Ledger ============

def test_budget_status_alert_threshold():
    status = budget_status(40.0, 50.0)
    assert status.percentage_used == pytest.approx(80.0)
    assert status.alert_triggered
    assert status.remaining == pytest.approx(10.0)
    assert not budget_status(10.0, 50.0).alert_triggered


def test_month_ranges_cross_year():
    ranges = month_ranges(datetime(2026, 2, 14), 3)
    assert [m for m, _, _ in ranges] == ["2026-02", "2026-01", "2025-12"]
    assert ranges[2][1] == datetime(2025, 12, 1)
    assert ranges[2][2] == datetime(2026, 1, 1)


@pytest.mark.asyncio
async def test_log_llm_call_prices_by_tier(db_session):
    ledger = UsageLedger(db_session)
    log = await ledger.log_llm_call(USER, llm_response(ModelTier.SMART), RequestType.AGENT_CREATION, agent_id="a1")
    assert log.service == UsageService.SMART_MODEL.value
    # 1000 in at $3/M + 1000 out at $15/M
    assert log.cost == pytest.approx(0.018)
    assert log.request_type == RequestType.AGENT_CREATION.value
    assert log.model == "claude-smart-test"


@pytest.mark.asyncio
async def test_usage_stats(db_session):
    ledger = UsageLedger(db_session)
    await ledger.log_llm_call(USER, llm_response(), RequestType.CHAT)
    await ledger.log_usage(USER, UsageService.TTS, characters=600, cost=0.1, request_type=RequestType.VOICE)
    await ledger.log_usage("someone-else", UsageService.FAST_MODEL, input_tokens=5, cost=9.0)

    stats = await ledger.get_user_usage_stats(USER, include_history=True, months=2)
    assert stats.current_period.fast_tokens == 2000
    assert stats.current_period.tts_characters == 600
    assert stats.current_period.request_count == 2
    assert stats.current_period.total_cost == pytest.approx(0.106)
    assert stats.budget_status.limit == 50.0
    assert len(stats.history) == 2
    assert stats.history[0][1].request_count == 2
    assert await ledger.get_voice_characters(USER) == 600


@pytest.mark.asyncio
async def test_breakdown_is_half_open(db_session):
    ledger = UsageLedger(db_session)
    start = datetime(2026, 3, 1)
    end = datetime(2026, 3, 2)
    inside = await ledger.log_usage(USER, UsageService.FAST_MODEL, cost=0.5)
    at_end = await ledger.log_usage(USER, UsageService.SMART_MODEL, cost=2.0)
    inside.timestamp = start
    at_end.timestamp = end
    await db_session.commit()

    breakdown = await ledger.get_usage_breakdown(USER, start, end)
    assert breakdown["claude-haiku"] == {"requests": 1, "cost": 0.5}
    assert breakdown["claude-sonnet"] == {"requests": 0, "cost": 0.0}
    assert breakdown["elevenlabs"]["requests"] == 0


@pytest.mark.asyncio
async def test_caching_savings(db_session):
    ledger = UsageLedger(db_session)
    await ledger.log_llm_call(USER, llm_response(ModelTier.FAST, cached_tokens=1_000_000), RequestType.CHAT)
    savings = await ledger.get_caching_savings(
        USER, datetime.utcnow() - timedelta(days=1), datetime.utcnow() + timedelta(days=1),
    )
    assert savings["totalCachedTokens"] == 1_000_000
    # $1/M input, 90% saved
    assert savings["estimatedSavings"] == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_recalculate_costs_is_idempotent(db_session):
    ledger = UsageLedger(db_session)
    await ledger.log_usage(USER, UsageService.FAST_MODEL, input_tokens=1_000_000, cost=0.25)
    await ledger.log_usage(USER, UsageService.TTS, characters=6000, cost=1.0)
    pricing = {
        "fast": ModelPricing(input=2.0, output=10.0, cached=0.2),
        "smart": ModelPricing(input=3.0, output=15.0, cached=0.3),
    }

    preview = await ledger.recalculate_costs(pricing, dry_run=True)
    assert preview.updated_logs == 1
    assert preview.difference == pytest.approx(1.75)
    assert await ledger.get_current_period_cost(USER) == pytest.approx(1.25)

    report = await ledger.recalculate_costs(pricing)
    assert report.updated_logs == 1
    assert await ledger.get_current_period_cost(USER) == pytest.approx(3.0)

    again = await ledger.recalculate_costs(pricing)
    assert again.updated_logs == 0
    assert again.difference == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_cleanup_old_logs(db_session):
    ledger = UsageLedger(db_session)
    old = await ledger.log_usage(USER, UsageService.FAST_MODEL, cost=0.1)
    await ledger.log_usage(USER, UsageService.FAST_MODEL, cost=0.2)
    old.timestamp = datetime.utcnow() - timedelta(days=400)
    await db_session.commit()
    assert await ledger.cleanup_old_logs() == 1


# ============ Trial limits ============

@pytest.mark.asyncio
async def test_token_limit_resets_at_midnight(db_session):
    service = UsageLimitService(db_session, TrialLimits(max_tokens_per_day=100, max_requests_per_hour=50, max_cost_per_day=5.0))
    now = datetime(2026, 5, 4, 15, 30)
    assert (await service.check_limits(USER, now)).allowed

    await service.record_usage(USER, tokens=150, cost=0.01, now=now)
    decision = await service.check_limits(USER, now)
    assert not decision.allowed
    assert decision.limit_type == "tokens"
    assert decision.reset_time == datetime(2026, 5, 5)

    assert (await service.check_limits(USER, datetime(2026, 5, 5, 0, 1))).allowed


@pytest.mark.asyncio
async def test_hourly_request_limit(db_session):
    service = UsageLimitService(db_session, TrialLimits(max_tokens_per_day=10000, max_requests_per_hour=2, max_cost_per_day=5.0))
    now = datetime(2026, 5, 4, 9, 0)
    await service.record_usage(USER, tokens=10, cost=0.0, now=now)
    await service.record_usage(USER, tokens=10, cost=0.0, now=now + timedelta(minutes=5))

    decision = await service.check_limits(USER, now + timedelta(minutes=10))
    assert decision.limit_type == "requests"
    assert decision.reset_time == now + timedelta(hours=1)
    assert (await service.check_limits(USER, now + timedelta(minutes=61))).allowed


@pytest.mark.asyncio
async def test_cost_limit_and_summary(db_session):
    service = UsageLimitService(db_session, TrialLimits(max_tokens_per_day=10000, max_requests_per_hour=50, max_cost_per_day=0.5))
    now = datetime(2026, 5, 4, 9, 0)
    await service.record_usage(USER, tokens=2500, cost=0.6, now=now)

    decision = await service.check_limits(USER, now)
    assert decision.limit_type == "cost"
    assert "$0.50" in decision.reason

    summary = await service.get_usage_summary(USER, now)
    assert summary["tokens"] == {"used": 2500, "limit": 10000, "percentage": 25, "remaining": 7500}
    assert summary["requests"]["used"] == 1
    assert summary["cost"]["remaining"] == 0


@pytest.mark.asyncio
async def test_enabled_user_limits_replace_defaults(db_session):
    await SettingsService(db_session).update_settings(USER, limits={
        "enabled": True, "maxTokensPerUser": 5000, "maxRequestsPerHour": 1, "maxCostPerUser": 2.0,
    })
    service = UsageLimitService(db_session)
    now = datetime(2026, 5, 4, 9, 0)
    await service.record_usage(USER, tokens=10, cost=0.0, now=now)

    decision = await service.check_limits(USER, now)
    assert not decision.allowed
    assert decision.limit_type == "requests"
    assert "(1 requests)" in decision.reason

    summary = await service.get_usage_summary(USER, now)
    assert summary["tokens"]["limit"] == 5000
    assert summary["cost"]["limit"] == 2.0


@pytest.mark.asyncio
async def test_disabled_user_limits_use_defaults(db_session):
    await SettingsService(db_session).update_settings(USER, limits={"enabled": False, "maxRequestsPerHour": 1})
    service = UsageLimitService(db_session)
    now = datetime(2026, 5, 4, 9, 0)
    await service.record_usage(USER, tokens=10, cost=0.0, now=now)

    assert (await service.check_limits(USER, now)).allowed
    summary = await service.get_usage_summary(USER, now)
    assert summary["requests"]["limit"] == settings.trial_max_requests_per_hour


# ============ Settings ============

def test_apply_key_updates_is_pure():
    existing = {"anthropic": "sk-old", "braveSearch": "brave"}
    result = apply_key_updates(existing, {"anthropic": SetTo("sk-new"), "braveSearch": REMOVE, "elevenLabs": UNCHANGED})
    assert result == {"anthropic": "sk-new"}
    assert existing == {"anthropic": "sk-old", "braveSearch": "brave"}


def test_apply_key_updates_rejects_bad_input():
    with pytest.raises(ValidationError):
        apply_key_updates({}, {"openai": SetTo("x")})
    with pytest.raises(ValidationError):
        apply_key_updates({}, {"anthropic": SetTo("   ")})


@pytest.mark.asyncio
async def test_settings_round_trip(db_session):
    service = SettingsService(db_session)
    defaults = await service.get_settings(USER)
    assert defaults["apiKeys"]["hasAnthropic"] is False
    assert defaults["ai"]["responseLength"] == "concise"

    await service.update_settings(USER, api_keys={"anthropic": SetTo("sk-ant-user")}, ai={"temperature": 0.5}, monthly_budget=20.0)
    current = await service.get_settings(USER)
    assert current["apiKeys"]["hasAnthropic"] is True
    assert current["ai"] == {"temperature": 0.5}
    assert current["monthlyBudget"] == 20.0
    assert "sk-ant-user" not in str(current)

    keys = await service.resolve_api_keys(USER)
    assert keys.anthropic == "sk-ant-user"
    assert keys.personal_anthropic

    await service.update_settings(USER, api_keys={"anthropic": REMOVE})
    keys = await service.resolve_api_keys(USER)
    assert keys.anthropic == settings.anthropic_api_key
    assert not keys.personal_anthropic


@pytest.mark.asyncio
async def test_settings_validation(db_session):
    service = SettingsService(db_session)
    with pytest.raises(ValidationError):
        await service.update_settings(USER, limits={"enabled": True, "maxTokensPerUser": 10, "maxCostPerUser": 1.0})
    with pytest.raises(ValidationError):
        await service.update_settings(USER, monthly_budget=-1)


@pytest.mark.asyncio
async def test_validate_api_keys_requires_anthropic(db_session, monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", None)
    with pytest.raises(ValidationError):
        await SettingsService(db_session).validate_api_keys(USER)
