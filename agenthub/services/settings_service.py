"""
Settings Service — Per-user API keys, preferences and budget.

API key changes are expressed per field as one of:
- Unchanged: keep the stored value
- Remove: delete the stored value
- SetTo(value): store a new value

apply_key_updates() is pure; SettingsService persists the result. Keys a
user has not saved fall back to the server environment.

Usage:
    service = SettingsService(db)
    await service.update_settings(user_id, api_keys={"anthropic": SetTo("sk-ant-...")})
    keys = await service.resolve_api_keys(user_id)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.agent.ai_errors import ValidationError
from agenthub.config import settings
from agenthub.db.models import UserSettings

logger = logging.getLogger(__name__)

API_KEY_FIELDS = ("anthropic", "elevenLabs", "elevenLabsVoiceId", "braveSearch")

DEFAULT_VOICE = {
    "speed": 1.15,
    "pitch": 1.15,
    "autoSendDelay": 2.0,
    "volume": 1.0,
    "voiceService": "auto",
    "selectedVoice": "",
    "autoRestartMic": True,
    "voiceInterruption": True,
    "continuousListening": False,
}
DEFAULT_AI = {"responseLength": "concise", "temperature": 0.3}
DEFAULT_LIMITS = {
    "enabled": False,
    "maxTokensPerUser": 10000,
    "maxRequestsPerHour": 20,
    "maxCostPerUser": 5.0,
    "requireAuth": True,
}


class Unchanged:
    """Keep the stored value."""

    def __repr__(self) -> str:
        return "Unchanged"

    def __eq__(self, other) -> bool:
        return isinstance(other, Unchanged)

    def __hash__(self) -> int:
        return hash("Unchanged")


class Remove:
    """Delete the stored value."""

    def __repr__(self) -> str:
        return "Remove"

    def __eq__(self, other) -> bool:
        return isinstance(other, Remove)

    def __hash__(self) -> int:
        return hash("Remove")


@dataclass(frozen=True)
class SetTo:
    value: str


FieldUpdate = Union[Unchanged, Remove, SetTo]

UNCHANGED = Unchanged()
REMOVE = Remove()


def apply_key_updates(existing: Optional[Dict[str, str]], updates: Dict[str, FieldUpdate]) -> Dict[str, str]:
    """New key mapping after applying per-field updates. Does not mutate `existing`."""
    result = dict(existing or {})
    for name, update in updates.items():
        if name not in API_KEY_FIELDS:
            raise ValidationError(f"Unknown API key field: {name}")
        if isinstance(update, SetTo):
            value = (update.value or "").strip()
            if not value:
                raise ValidationError(f"{name} must not be empty; remove it instead")
            result[name] = value
        elif isinstance(update, Remove):
            result.pop(name, None)
        elif not isinstance(update, Unchanged):
            raise ValidationError(f"Invalid update for {name}: {update!r}")
    return result


def validate_limits(limits: Dict[str, Any]) -> None:
    if not limits.get("enabled"):
        return
    if limits.get("maxTokensPerUser", 0) < 1000:
        raise ValidationError("Max tokens must be at least 1000")
    if limits.get("maxCostPerUser", 0) < 0.1:
        raise ValidationError("Max cost must be at least $0.10")


@dataclass
class ResolvedKeys:
    anthropic: Optional[str] = None
    eleven_labs: Optional[str] = None
    eleven_labs_voice_id: Optional[str] = None
    brave_search: Optional[str] = None
    # True when the Anthropic key is the user's own rather than the server's
    personal_anthropic: bool = False
    warnings: List[str] = field(default_factory=list)


class SettingsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, user_id: str) -> Optional[UserSettings]:
        result = await self.db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_settings(self, user_id: str) -> Dict[str, Any]:
        """Settings for display. Key values are never returned, only whether they are set."""
        row = await self._get_row(user_id)
        keys = (row.api_keys if row else None) or {}
        return {
            "apiKeys": {
                "hasAnthropic": bool(keys.get("anthropic")),
                "hasElevenLabs": bool(keys.get("elevenLabs")),
                "hasElevenLabsVoiceId": bool(keys.get("elevenLabsVoiceId")),
                "hasBraveSearch": bool(keys.get("braveSearch")),
            },
            "voice": (row.voice if row and row.voice else dict(DEFAULT_VOICE)),
            "ai": (row.ai if row and row.ai else dict(DEFAULT_AI)),
            "limits": (row.limits if row and row.limits else dict(DEFAULT_LIMITS)),
            "monthlyBudget": (row.monthly_budget if row and row.monthly_budget else settings.default_monthly_budget),
        }

    async def update_settings(
        self,
        user_id: str,
        api_keys: Optional[Dict[str, FieldUpdate]] = None,
        voice: Optional[Dict[str, Any]] = None,
        ai: Optional[Dict[str, Any]] = None,
        limits: Optional[Dict[str, Any]] = None,
        monthly_budget: Optional[float] = None,
    ) -> UserSettings:
        """Upsert a user's settings. None arguments leave that section as is.

        Raises:
            ValidationError: on invalid key updates, limits or budget.
        """
        if limits is not None:
            validate_limits(limits)
        if monthly_budget is not None and monthly_budget < 0:
            raise ValidationError("Monthly budget must not be negative")

        row = await self._get_row(user_id)
        if row is None:
            row = UserSettings(user_id=user_id, api_keys={}, voice={}, ai={}, limits={})
            self.db.add(row)

        if api_keys:
            row.api_keys = apply_key_updates(row.api_keys, api_keys)
        if voice is not None:
            row.voice = {**(row.voice or {}), **voice}
        if ai is not None:
            row.ai = {**(row.ai or {}), **ai}
        if limits is not None:
            row.limits = {**(row.limits or {}), **limits}
        if monthly_budget is not None:
            row.monthly_budget = monthly_budget

        await self.db.commit()
        await self.db.refresh(row)
        logger.info("[SETTINGS] Saved settings for %s (keys set: %s)", user_id, sorted(row.api_keys or {}))
        return row

    async def resolve_api_keys(self, user_id: str) -> ResolvedKeys:
        """User keys first, then the server environment, with warnings for gaps."""
        row = await self._get_row(user_id)
        user_keys = (row.api_keys if row else None) or {}

        resolved = ResolvedKeys(
            anthropic=user_keys.get("anthropic") or settings.anthropic_api_key or None,
            eleven_labs=user_keys.get("elevenLabs") or settings.elevenlabs_api_key or None,
            eleven_labs_voice_id=user_keys.get("elevenLabsVoiceId") or settings.elevenlabs_voice_id or None,
            brave_search=user_keys.get("braveSearch") or settings.brave_api_key or None,
            personal_anthropic=bool(user_keys.get("anthropic")),
        )
        if not resolved.anthropic:
            resolved.warnings.append(
                "Anthropic API key not configured. AI features will not work. Please add your API key in Settings."
            )
        if not resolved.eleven_labs:
            resolved.warnings.append("ElevenLabs API key not configured. Voice will use Web Speech fallback.")
        elif not resolved.eleven_labs_voice_id:
            resolved.warnings.append("ElevenLabs Voice ID not configured. Voice will use Web Speech fallback.")
        return resolved

    async def validate_api_keys(self, user_id: str) -> ResolvedKeys:
        """
        Raises:
            ValidationError: if no Anthropic key is available for the user.
        """
        keys = await self.resolve_api_keys(user_id)
        if not keys.anthropic:
            raise ValidationError(
                "Anthropic API key is required. Please configure it in Settings or set ANTHROPIC_API_KEY."
            )
        for warning in keys.warnings:
            logger.warning("[SETTINGS] %s: %s", user_id, warning)
        return keys
