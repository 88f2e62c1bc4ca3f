"""User settings endpoints - API keys, voice and AI preferences, budget"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.api.auth import get_current_user
from agenthub.db import get_db
from agenthub.schemas import SettingsUpdateRequest
from agenthub.services.settings_service import SettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current settings. Stored API keys are reported as set or unset only."""
    service = SettingsService(db)
    data = await service.get_settings(user_id)
    data["warnings"] = (await service.resolve_api_keys(user_id)).warnings
    return data


@router.put("")
async def update_settings(
    body: SettingsUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SettingsService(db)
    await service.update_settings(
        user_id,
        api_keys=body.api_keys.to_updates() if body.api_keys is not None else None,
        voice=body.voice,
        ai=body.ai,
        limits=body.limits,
        monthly_budget=body.monthly_budget,
    )
    return await service.get_settings(user_id)
