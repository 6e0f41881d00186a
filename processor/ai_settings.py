"""AI 전역 설정 서비스 — typed key/value store grouped by category, cached in-process."""

from __future__ import annotations

import copy
import json
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AIGlobalSetting
from database.schemas import AISettingIn
from processor.errors import ValidationError
from processor.persistence import write_scope

MASTER_PROMPT_KEY = "master_analysis_prompt"

DEFAULT_AI_SETTINGS: list[dict] = [
    {
        "setting_key": MASTER_PROMPT_KEY,
        "setting_value": (
            "You are a senior digital marketing analyst. Analyze the campaign data "
            "tactic by tactic and keep every insight tied to the stated objectives."
        ),
        "setting_type": "string",
        "category": "prompts",
        "description": "Opening instruction used by the AI test harness",
    },
    {
        "setting_key": "default_temperature",
        "setting_value": "0.7",
        "setting_type": "number",
        "category": "defaults",
        "description": "Temperature used when a request does not set one",
    },
    {
        "setting_key": "default_tone",
        "setting_value": "professional",
        "setting_type": "string",
        "category": "defaults",
        "description": "Tone used when a request does not set one",
    },
]

_TRUE_VALUES = ("true", "1")


def decode_setting(raw: str | None, setting_type: str) -> Any:
    """Stored text → typed value. Undecodable numbers/json fall back to None."""
    if raw is None:
        return None
    if setting_type == "number":
        try:
            return float(raw)
        except ValueError:
            logger.warning("[ai-settings] non-numeric value stored: {!r}", raw)
            return None
    if setting_type == "boolean":
        return str(raw).strip().lower() in _TRUE_VALUES
    if setting_type == "json":
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("[ai-settings] invalid JSON stored: {!r}", raw[:80])
            return None
    return raw


def encode_setting(value: Any, setting_type: str) -> str | None:
    """Typed value → stored text; rejects values that do not fit the declared type."""
    if value is None:
        return None
    if setting_type == "number":
        if isinstance(value, bool):
            raise ValidationError("number setting cannot be a boolean")
        try:
            return str(float(value))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"'{value}' is not a number") from exc
    if setting_type == "boolean":
        if isinstance(value, bool):
            return "true" if value else "false"
        text = str(value).strip().lower()
        if text in ("true", "1", "false", "0"):
            return "true" if text in _TRUE_VALUES else "false"
        raise ValidationError(f"'{value}' is not a boolean")
    if setting_type == "json":
        if isinstance(value, str):
            try:
                json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValidationError("json setting must contain valid JSON") from exc
            return value
        return json.dumps(value)
    return str(value)


class AISettingsService:
    """Reads are served from a cache that every write invalidates."""

    def __init__(self):
        self._cache: dict[str, dict] | None = None

    def invalidate(self):
        self._cache = None

    async def _load(self, session: AsyncSession) -> dict[str, dict]:
        result = await session.execute(
            select(AIGlobalSetting).order_by(AIGlobalSetting.category, AIGlobalSetting.setting_key)
        )
        grouped: dict[str, dict] = {}
        for row in result.scalars().all():
            grouped.setdefault(row.category, {})[row.setting_key] = {
                "value": decode_setting(row.setting_value, row.setting_type),
                "description": row.description,
                "type": row.setting_type,
            }
        return grouped

    async def get_grouped(self, session: AsyncSession) -> dict[str, dict]:
        """{category: {key: {value, description, type}}}"""
        if self._cache is None:
            self._cache = await self._load(session)
        return copy.deepcopy(self._cache)

    async def get_value(self, session: AsyncSession, key: str, default: Any = None) -> Any:
        for settings in (await self.get_grouped(session)).values():
            if key in settings:
                value = settings[key]["value"]
                return default if value is None else value
        return default

    async def save(self, session: AsyncSession, key: str, data: AISettingIn) -> dict:
        """Upsert one setting by key."""
        if not key or not key.strip():
            raise ValidationError("setting_key is required")
        stored = encode_setting(data.setting_value, data.setting_type)

        async with write_scope(session, "save AI setting"):
            row = (await session.execute(
                select(AIGlobalSetting).where(AIGlobalSetting.setting_key == key)
            )).scalar_one_or_none()
            if row is None:
                row = AIGlobalSetting(setting_key=key)
                session.add(row)
            row.setting_value = stored
            row.setting_type = data.setting_type
            row.category = data.category
            if data.description is not None:
                row.description = data.description
        self.invalidate()
        logger.info("[ai-settings] saved {} ({})", key, data.setting_type)
        return {
            "key": key,
            "value": decode_setting(stored, data.setting_type),
            "type": data.setting_type,
            "category": data.category,
        }


ai_settings = AISettingsService()
