"""
Usage Ledger — Append-only record of billable calls and their aggregation.

Each model or voice call is logged exactly once. Inserts are never retried:
a failed or ambiguous insert is logged and dropped, so the ledger may
under-count but never double-bills.

Aggregation windows:
- current period: rolling `usage_window_days` (30) days
- breakdowns and monthly history: half-open [start, end) ranges

The only sanctioned bulk mutation is recalculate_costs(), which rewrites
stored costs from token counts under a pricing table. Running it twice
with the same table changes nothing the second time.

Usage:
    ledger = UsageLedger(db)
    await ledger.log_usage(user_id, UsageService.FAST_MODEL, input_tokens=120, output_tokens=80, cost=0.0005)
    stats = await ledger.get_user_usage_stats(user_id, include_history=True)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.config import settings
from agenthub.db.models import RequestType, UsageLog, UserSettings
from agenthub.services.cost_calculator import (
    SERVICE_FOR_TIER,
    TIER_FOR_SERVICE,
    PricingTable,
    UsageService,
    calculate_caching_savings,
    calculate_token_cost,
    default_pricing,
    recalculate_log_cost,
)

logger = logging.getLogger(__name__)

# Costs that differ by less than this are considered unchanged
COST_EPSILON = 1e-12
TIER_BY_SERVICE_VALUE = {service.value: tier for service, tier in TIER_FOR_SERVICE.items()}


@dataclass
class UsageTotals:
    fast_tokens: int = 0
    smart_tokens: int = 0
    tts_characters: int = 0
    total_cost: float = 0.0
    request_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claudeHaikuTokens": self.fast_tokens,
            "claudeSonnetTokens": self.smart_tokens,
            "elevenLabsCharacters": self.tts_characters,
            "totalCost": self.total_cost,
            "requestCount": self.request_count,
        }


@dataclass
class BudgetStatus:
    limit: float
    used: float
    remaining: float
    percentage_used: float
    alert_triggered: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "percentageUsed": self.percentage_used,
            "alertTriggered": self.alert_triggered,
        }


@dataclass
class UsageStats:
    current_period: UsageTotals
    budget_status: BudgetStatus
    history: List[Tuple[str, UsageTotals]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentMonth": self.current_period.to_dict(),
            "budgetStatus": self.budget_status.to_dict(),
            "history": [{"month": month, **totals.to_dict()} for month, totals in self.history],
        }


@dataclass
class RecalculationReport:
    total_logs: int = 0
    updated_logs: int = 0
    old_total_cost: float = 0.0
    new_total_cost: float = 0.0

    @property
    def difference(self) -> float:
        return self.new_total_cost - self.old_total_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalLogs": self.total_logs,
            "updatedLogs": self.updated_logs,
            "oldTotalCost": self.old_total_cost,
            "newTotalCost": self.new_total_cost,
            "difference": self.difference,
        }


def summarize_logs(logs: Iterable[Any]) -> UsageTotals:
    """Sum tokens, characters and cost over usage records."""
    totals = UsageTotals()
    for log in logs:
        totals.request_count += 1
        totals.total_cost += log.cost or 0.0
        tokens = (log.input_tokens or 0) + (log.output_tokens or 0)
        if log.service == UsageService.FAST_MODEL.value:
            totals.fast_tokens += tokens
        elif log.service == UsageService.SMART_MODEL.value:
            totals.smart_tokens += tokens
        elif log.service == UsageService.TTS.value:
            totals.tts_characters += log.characters or 0
    return totals


def budget_status(used: float, limit: float, alert_threshold: Optional[float] = None) -> BudgetStatus:
    """Spend against a monthly budget; alert fires at `alert_threshold` percent."""
    threshold = settings.budget_alert_threshold if alert_threshold is None else alert_threshold
    percentage = (used / limit * 100) if limit > 0 else (100.0 if used > 0 else 0.0)
    return BudgetStatus(
        limit=limit,
        used=used,
        remaining=limit - used,
        percentage_used=percentage,
        alert_triggered=percentage >= threshold,
    )


def month_ranges(now: datetime, months: int) -> List[Tuple[str, datetime, datetime]]:
    """[(YYYY-MM, start, end)] for the current and previous months, newest first."""
    ranges = []
    year, month = now.year, now.month
    for _ in range(months):
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
        ranges.append((f"{year:04d}-{month:02d}", start, end))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return ranges


def breakdown_logs(logs: Iterable[Any]) -> Dict[str, Dict[str, float]]:
    breakdown = {s.value: {"requests": 0, "cost": 0.0} for s in UsageService}
    for log in logs:
        bucket = breakdown.get(log.service)
        if bucket is None:
            continue
        bucket["requests"] += 1
        bucket["cost"] += log.cost or 0.0
    return breakdown


class UsageLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_usage(
        self,
        user_id: str,
        service: UsageService,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cached_tokens: int = 0,
        characters: int = 0,
        cost: float = 0.0,
        success: bool = True,
        request_type: RequestType = RequestType.CHAT,
        endpoint: Optional[str] = None,
        error_message: Optional[str] = None,
        agent_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        model: Optional[str] = None,
        caching_enabled: bool = False,
    ) -> Optional[UsageLog]:
        """
        Insert one usage record.

        Returns None when the insert fails. The failure is logged and never
        retried.
        """
        log = UsageLog(
            user_id=user_id,
            timestamp=datetime.utcnow(),
            service=UsageService(service).value,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_tokens=cached_tokens,
            characters=characters,
            cost=cost,
            success=success,
            request_type=RequestType(request_type).value,
            endpoint=endpoint,
            error_message=error_message,
            agent_id=agent_id,
            conversation_id=conversation_id,
            model=model,
            caching_enabled=caching_enabled,
        )
        try:
            self.db.add(log)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("[USAGE] Failed to record usage for %s (%s): %s", user_id, log.service, e)
            return None
        logger.debug("[USAGE] %s %s in=%d out=%d cost=%.6f", user_id, log.service, input_tokens, output_tokens, cost)
        return log

    async def log_llm_call(
        self,
        user_id: str,
        response: Any,
        request_type: RequestType,
        endpoint: Optional[str] = None,
        agent_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Optional[UsageLog]:
        """Price an LLMResponse at its tier and record it."""
        tier = getattr(response.tier, "value", response.tier)
        cost = calculate_token_cost(
            tier, response.input_tokens, response.output_tokens, response.cached_tokens,
        ).total_cost
        return await self.log_usage(
            user_id,
            SERVICE_FOR_TIER[tier],
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cached_tokens=response.cached_tokens,
            cost=cost,
            request_type=request_type,
            endpoint=endpoint,
            agent_id=agent_id,
            conversation_id=conversation_id,
            model=response.model,
            caching_enabled=response.caching_enabled,
        )

    async def _logs_between(
        self, user_id: str, start: datetime, end: Optional[datetime] = None, **filters
    ) -> List[UsageLog]:
        query = select(UsageLog).where(UsageLog.user_id == user_id, UsageLog.timestamp >= start)
        if end is not None:
            query = query.where(UsageLog.timestamp < end)
        for column, value in filters.items():
            query = query.where(getattr(UsageLog, column) == value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_monthly_budget(self, user_id: str) -> float:
        result = await self.db.execute(
            select(UserSettings.monthly_budget).where(UserSettings.user_id == user_id)
        )
        budget = result.scalar_one_or_none()
        return budget if budget else settings.default_monthly_budget

    async def get_user_usage_stats(
        self,
        user_id: str,
        include_history: bool = False,
        months: int = 6,
        now: Optional[datetime] = None,
    ) -> UsageStats:
        now = now or datetime.utcnow()
        logs = await self._logs_between(user_id, now - timedelta(days=settings.usage_window_days))
        current = summarize_logs(logs)
        budget = budget_status(current.total_cost, await self.get_monthly_budget(user_id))

        history = []
        if include_history:
            for month, start, end in month_ranges(now, months):
                history.append((month, summarize_logs(await self._logs_between(user_id, start, end))))
        return UsageStats(current_period=current, budget_status=budget, history=history)

    async def get_usage_breakdown(self, user_id: str, start: datetime, end: datetime) -> Dict[str, Dict[str, float]]:
        """Requests and cost per service within [start, end)."""
        return breakdown_logs(await self._logs_between(user_id, start, end))

    async def get_current_period_cost(self, user_id: str, now: Optional[datetime] = None) -> float:
        now = now or datetime.utcnow()
        logs = await self._logs_between(user_id, now - timedelta(days=settings.usage_window_days))
        return sum(log.cost or 0.0 for log in logs)

    async def get_voice_characters(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        logs = await self._logs_between(
            user_id, now - timedelta(days=settings.usage_window_days), service=UsageService.TTS.value,
        )
        return sum(log.characters or 0 for log in logs)

    async def get_caching_savings(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        pricing: Optional[PricingTable] = None,
    ) -> Dict[str, float]:
        pricing = pricing or default_pricing()
        logs = await self._logs_between(user_id, start, end, caching_enabled=True)
        total_cached = 0
        savings = 0.0
        for log in logs:
            total_cached += log.cached_tokens or 0
            tier = TIER_BY_SERVICE_VALUE.get(log.service)
            if tier is not None:
                savings += calculate_caching_savings(tier, log.cached_tokens or 0, pricing)
        return {"totalCachedTokens": total_cached, "estimatedSavings": savings}

    async def recalculate_costs(
        self,
        pricing: Optional[PricingTable] = None,
        user_id: Optional[str] = None,
        dry_run: bool = False,
    ) -> RecalculationReport:
        """Reprice stored model-tier logs from their token counts."""
        pricing = pricing or default_pricing()
        query = select(UsageLog)
        if user_id is not None:
            query = query.where(UsageLog.user_id == user_id)
        result = await self.db.execute(query)

        report = RecalculationReport()
        for log in result.scalars().all():
            report.total_logs += 1
            old_cost = log.cost or 0.0
            new_cost = recalculate_log_cost(
                log.service,
                log.input_tokens or 0,
                log.output_tokens or 0,
                log.cached_tokens or 0,
                old_cost,
                pricing=pricing,
            )
            report.old_total_cost += old_cost
            report.new_total_cost += new_cost
            if abs(new_cost - old_cost) > COST_EPSILON:
                report.updated_logs += 1
                if not dry_run:
                    log.cost = new_cost

        if dry_run:
            await self.db.rollback()
        else:
            await self.db.commit()
        logger.info(
            "[USAGE] Recalculated %d/%d log(s): $%.4f -> $%.4f%s",
            report.updated_logs, report.total_logs, report.old_total_cost, report.new_total_cost,
            " (dry run)" if dry_run else "",
        )
        return report

    async def cleanup_old_logs(self, days: Optional[int] = None) -> int:
        days = settings.usage_log_retention_days if days is None else days
        cutoff = datetime.utcnow() - timedelta(days=days)
        result = await self.db.execute(delete(UsageLog).where(UsageLog.timestamp < cutoff))
        await self.db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info("[USAGE] Removed %d usage log(s) older than %d days", deleted, days)
        return deleted
