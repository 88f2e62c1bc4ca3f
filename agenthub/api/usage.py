"""Usage and cost endpoints"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.api.auth import get_current_user
from agenthub.config import settings
from agenthub.db import RequestType, get_db
from agenthub.schemas import VoiceUsageRequest
from agenthub.services.cost_calculator import UsageService, calculate_voice_cost, get_model_pricing_info
from agenthub.services.usage_ledger import UsageLedger
from agenthub.services.usage_limits import UsageLimitService

router = APIRouter(prefix="/usage", tags=["usage"])

VOICE_SERVICES = (UsageService.TTS.value, UsageService.BROWSER_SPEECH.value)


@router.get("")
async def get_usage(
    include_history: bool = Query(False, alias="includeHistory"),
    months: int = Query(6, ge=1, le=24),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rolling 30-day totals and budget status, optionally with monthly history."""
    stats = await UsageLedger(db).get_user_usage_stats(user_id, include_history=include_history, months=months)
    return stats.to_dict()


@router.get("/summary")
async def get_usage_summary(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Today's trial allowance and this period's spend."""
    ledger = UsageLedger(db)
    return {
        "trial": await UsageLimitService(db).get_usage_summary(user_id),
        "currentPeriodCost": await ledger.get_current_period_cost(user_id),
        "voiceCharacters": {
            "used": await ledger.get_voice_characters(user_id),
            "limit": settings.voice_monthly_character_limit,
        },
    }


@router.get("/breakdown")
async def get_usage_breakdown(
    start: datetime,
    end: datetime,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests and cost per service within [start, end)."""
    if end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must be after start")
    ledger = UsageLedger(db)
    return {
        "services": await ledger.get_usage_breakdown(user_id, start, end),
        "caching": await ledger.get_caching_savings(user_id, start, end),
    }


@router.get("/pricing")
async def get_pricing():
    return get_model_pricing_info()


@router.post("/voice", status_code=status.HTTP_201_CREATED)
async def log_voice_usage(
    body: VoiceUsageRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record text-to-speech characters. Browser speech is logged at no cost."""
    if body.service not in VOICE_SERVICES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"service must be one of {', '.join(VOICE_SERVICES)}",
        )
    cost = calculate_voice_cost(body.characters) if body.service == UsageService.TTS.value else 0.0
    log = await UsageLedger(db).log_usage(
        user_id,
        UsageService(body.service),
        characters=body.characters,
        cost=cost,
        request_type=RequestType.VOICE,
        endpoint="/api/usage/voice",
        agent_id=body.agent_id,
        conversation_id=body.conversation_id,
    )
    return {"recorded": log is not None, "cost": cost}


@router.post("/recalculate")
async def recalculate_costs(
    dry_run: bool = Query(True, alias="dryRun"),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reprice the caller's stored model usage at current rates."""
    report = await UsageLedger(db).recalculate_costs(user_id=user_id, dry_run=dry_run)
    return {**report.to_dict(), "dryRun": dry_run}
