"""AI test harness — saved prompt-pipeline scenarios against a product/subproduct context."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AITestConfig, Product, Subproduct
from database.schemas import AITestConfigIn
from processor.ai_models import call_model
from processor.ai_settings import MASTER_PROMPT_KEY, ai_settings
from processor.config_resolver import resolve_effective_config
from processor.errors import ConfigurationError, NotFoundError, ProviderError
from processor.persistence import write_scope
from processor.prompt_builder import build_test_prompt, tone_instruction
from processor.response_parser import parse_ai_response_detailed


async def list_test_configs(
    session: AsyncSession,
    product_id: int | None = None,
    subproduct_id: int | None = None,
) -> list[AITestConfig]:
    stmt = select(AITestConfig).order_by(AITestConfig.created_at.desc(), AITestConfig.id.desc())
    if product_id is not None:
        stmt = stmt.where(AITestConfig.product_id == product_id)
    if subproduct_id is not None:
        stmt = stmt.where(AITestConfig.subproduct_id == subproduct_id)
    return list((await session.execute(stmt)).scalars().all())


async def get_test_config(session: AsyncSession, config_id: int) -> AITestConfig:
    config = await session.get(AITestConfig, config_id)
    if config is None:
        raise NotFoundError(f"Test config {config_id} not found")
    return config


async def create_test_config(session: AsyncSession, data: AITestConfigIn) -> AITestConfig:
    async with write_scope(session, "create AI test config"):
        if data.product_id is not None and await session.get(Product, data.product_id) is None:
            raise NotFoundError(f"Product {data.product_id} not found")
        if data.subproduct_id is not None and await session.get(Subproduct, data.subproduct_id) is None:
            raise NotFoundError(f"Subproduct {data.subproduct_id} not found")
        config = AITestConfig(**data.model_dump())
        session.add(config)
        await session.flush()
    return config


async def delete_test_config(session: AsyncSession, config_id: int):
    async with write_scope(session, "delete AI test config"):
        config = await get_test_config(session, config_id)
        await session.delete(config)


def _restrict_sections(effective_config: dict, enabled_keys: list[str]) -> dict:
    """Limit the effective sections to the keys the scenario enables (all when empty)."""
    if not enabled_keys:
        return effective_config
    wanted = set(enabled_keys)
    restricted = dict(effective_config)
    restricted["sections"] = [
        {**s, "is_enabled": s["section_key"] in wanted} for s in effective_config["sections"]
    ]
    return restricted


async def run_test_config(session: AsyncSession, config_id: int, dry_run: bool = False) -> dict:
    """Build the scenario prompt, call its model unless dry_run, and record the result.

    Provider/configuration failures are recorded in the result, not raised.
    """
    config = await get_test_config(session, config_id)
    effective = await resolve_effective_config(session, config.product_id, config.subproduct_id)
    effective = _restrict_sections(effective, list(config.enabled_sections or []))

    master_prompt = await ai_settings.get_value(session, MASTER_PROMPT_KEY)
    instructions = "\n".join(
        part for part in (f"Tone: {tone_instruction(config.tone)}", config.custom_instructions) if part
    )
    prompt = build_test_prompt(master_prompt, effective, instructions, config.test_data)

    result = {
        "configName": config.config_name,
        "model": config.ai_model,
        "temperature": config.temperature,
        "tone": config.tone,
        "prompt": prompt,
        "promptLength": len(prompt),
        "enabledSections": [s["section_key"] for s in effective["sections"] if s["is_enabled"]],
        "response": None,
        "sections": None,
        "format": None,
        "error": None,
        "dryRun": dry_run,
    }

    if not dry_run:
        try:
            text = await call_model(config.ai_model, prompt, config.temperature)
            sections, fmt = parse_ai_response_detailed(text)
            result.update(response=text, sections=sections, format=fmt)
        except (ConfigurationError, ProviderError) as exc:
            logger.warning("[ai-test] config {} run failed: {}", config_id, exc)
            result["error"] = str(exc)

    async with write_scope(session, "record AI test result"):
        config.last_test_result = result
        config.last_test_at = datetime.now(timezone.utc).replace(tzinfo=None)
    return result
