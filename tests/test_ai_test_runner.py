"""AI 테스트 하네스 테스트 — 시나리오 저장, dry run, 실패 기록."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from conftest import meta_product
from database.schemas import AITestConfigIn, ProductIn
from processor import ai_test_runner, schema_store
from processor.errors import NotFoundError


async def _scenario(session, **overrides):
    product = await schema_store.create_product(session, ProductIn(**meta_product()))
    data = {
        "config_name": "Meta smoke",
        "product_id": product.id,
        "subproduct_id": product.subproducts[0].id,
        "test_data": {"impressions": 1000, "clicks": 20},
        "tone": "concise",
        "custom_instructions": "Keep it short.",
        "enabled_sections": ["executive_summary", "recommendations"],
    }
    data.update(overrides)
    return await ai_test_runner.create_test_config(session, AITestConfigIn(**data))


@pytest.mark.asyncio
async def test_create_and_list_configs(session):
    config = await _scenario(session)
    config_id, product_id = config.id, config.product_id
    assert config.ai_model == "claude-sonnet-4-20250514"
    assert config.temperature == 0.7

    listed = await ai_test_runner.list_test_configs(session, product_id=product_id)
    assert [c.id for c in listed] == [config_id]
    assert await ai_test_runner.list_test_configs(session, product_id=9999) == []


@pytest.mark.asyncio
async def test_create_rejects_unknown_product(session):
    with pytest.raises(NotFoundError):
        await ai_test_runner.create_test_config(
            session, AITestConfigIn(config_name="x", product_id=4242),
        )


@pytest.mark.asyncio
async def test_dry_run_builds_prompt_without_calling_model(session):
    config = await _scenario(session)
    result = await ai_test_runner.run_test_config(session, config.id, dry_run=True)

    prompt = result["prompt"]
    assert "Product Context:\nName: Meta" in prompt
    assert "Subproduct Context:\nName: Link Click" in prompt
    assert "Focus on social engagement.\n\nReport CTR first." in prompt
    assert "Custom Instructions:\nTone: " in prompt
    assert "Keep it short." in prompt
    assert '"clicks": 20' in prompt
    assert result["enabledSections"] == ["executive_summary", "recommendations"]
    assert result["response"] is None
    assert result["error"] is None

    stored = await ai_test_runner.get_test_config(session, config.id)
    assert stored.last_test_result["dryRun"] is True
    assert stored.last_test_at is not None


@pytest.mark.asyncio
async def test_run_without_key_records_error(session):
    config = await _scenario(session)
    result = await ai_test_runner.run_test_config(session, config.id)
    assert "ANTHROPIC_API_KEY" in result["error"]
    assert result["response"] is None


@pytest.mark.asyncio
async def test_run_parses_model_output(session, monkeypatch):
    async def fake_call_model(model_id, prompt, temperature=None, max_tokens=None, http_client=None):
        return "EXECUTIVE_SUMMARY: A\nTACTIC_PERFORMANCE: B\nTACTIC_TRENDS: C\nTACTIC_RECOMMENDATIONS: D"

    monkeypatch.setattr(ai_test_runner, "call_model", fake_call_model)
    config = await _scenario(session, ai_model="gemini-2.5-pro")
    result = await ai_test_runner.run_test_config(session, config.id)
    assert result["format"] == "tactic"
    assert result["sections"]["tacticTrends"] == "C"
    assert result["model"] == "gemini-2.5-pro"


@pytest.mark.asyncio
async def test_delete_config(session):
    config = await _scenario(session)
    config_id = config.id
    await ai_test_runner.delete_test_config(session, config_id)
    with pytest.raises(NotFoundError):
        await ai_test_runner.get_test_config(session, config_id)


def test_restrict_sections_empty_keeps_all():
    config = {"sections": [{"section_key": "a", "is_enabled": True}, {"section_key": "b", "is_enabled": False}]}
    assert ai_test_runner._restrict_sections(config, []) is config
    restricted = ai_test_runner._restrict_sections(config, ["b"])
    assert [s["is_enabled"] for s in restricted["sections"]] == [False, True]
    assert config["sections"][0]["is_enabled"] is True
