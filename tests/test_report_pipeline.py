"""리포트 파이프라인 테스트 — 집계, fallback ladder, mock 분석, 저장."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from sqlalchemy import select

from conftest import meta_product
from database.models import Analysis
from database.schemas import ProductIn
from processor import schema_store
from processor.errors import ConfigurationError, ProviderError
from processor.lumina_client import store_campaign
from processor.report_pipeline import (
    calculate_metric_cards,
    generate_analysis,
    generate_insights,
    generate_mock_analysis,
    prepare_analysis_data,
    resolve_tactic_configs,
    store_analysis,
)

HEADERS = ["Impressions", "Clicks", "Conversions", "Spend"]
TACTIC_OUTPUT = (
    "EXECUTIVE_SUMMARY: Great.\nTACTIC_PERFORMANCE: Perf.\n"
    "TACTIC_TRENDS: Trends.\nTACTIC_RECOMMENDATIONS: Recs."
)


def _file(impressions=1000, clicks=50, conversions=5, spend=100, extra_rows=None):
    rows = [{"Impressions": str(impressions), "Clicks": str(clicks),
             "Conversions": str(conversions), "Spend": str(spend)}]
    return {"name": "report.csv", "headers": HEADERS, "data": rows + (extra_rows or [])}


def _uploads():
    return {"Meta-LinkClick": [_file()], "SEM-Google": [_file()]}


CAMPAIGN = {"name": "Q1", "status": "ongoing"}
COMPANY = {"name": "Acme", "objectives": "increase brand awareness"}


def test_prepare_analysis_data_keeps_tactics_separate():
    uploads = {"Meta-LinkClick": [_file(), _file(impressions=500)], "SEM-Google": [_file(clicks=10)]}
    data = prepare_analysis_data(CAMPAIGN, uploads, COMPANY, tactics=[{"name": "Display-Advertising"}])
    by_id = {t["id"]: t for t in data["tactics"]}
    assert by_id["Meta-LinkClick"]["metrics"]["impressions"] == 1500.0
    assert by_id["Meta-LinkClick"]["fileCount"] == 2
    assert by_id["SEM-Google"]["metrics"]["clicks"] == 10.0
    assert by_id["SEM-Google"]["kpis"]["primary"] == "Cost per Call"
    assert by_id["Display-Advertising"]["totalRows"] == 0
    assert data["company"]["industry"] == "Unknown"


def test_calculate_metric_cards_spans_all_tactics():
    cards = calculate_metric_cards(_uploads())
    by_label = {c["label"]: c["value"] for c in cards}
    assert by_label["Total Impressions"] == 2000
    assert by_label["Total Clicks"] == 100
    assert by_label["CTR"] == 5.0
    assert by_label["CPC"] == 2.0


def test_mock_analysis_mentions_objectives_and_tactics():
    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    mock = generate_mock_analysis(data)
    assert "increase brand awareness" in mock["executiveSummary"]
    assert "Meta-LinkClick" in mock["executiveSummary"]
    assert "SEM-Google" in mock["executiveSummary"]
    assert "### Meta-LinkClick" in mock["tacticPerformance"]
    assert "Overall Strategy Recommendations" in mock["tacticRecommendations"]


@pytest.mark.asyncio
async def test_missing_api_key_returns_mock_analysis():
    analysis = await generate_analysis(CAMPAIGN, _uploads(), COMPANY, ai_config={"model": "claude-sonnet-4-20250514"})
    assert analysis["usedFallback"] is True
    assert analysis["modelUsed"] is None
    assert "increase brand awareness" in analysis["executiveSummary"]
    assert "Meta-LinkClick" in analysis["executiveSummary"]
    assert "SEM-Google" in analysis["executiveSummary"]
    assert set(analysis["metricsByTactic"]) == {"Meta-LinkClick", "SEM-Google"}
    assert analysis["chartData"]["performance"]["datasets"][0]["data"] == [5.0, 5.0]


@pytest.mark.asyncio
async def test_successful_model_output_is_parsed():
    calls = []

    async def caller(model_id, prompt, temperature):
        calls.append((model_id, temperature))
        assert "increase brand awareness" in prompt
        return TACTIC_OUTPUT

    analysis = await generate_analysis(
        CAMPAIGN, _uploads(), COMPANY,
        ai_config={"model": "gemini-2.5-pro", "temperature": 0.2}, caller=caller,
    )
    assert calls == [("gemini-2.5-pro", 0.2)]
    assert analysis["executiveSummary"] == "Great."
    assert analysis["tacticRecommendations"] == "Recs."
    assert analysis["modelUsed"] == "gemini-2.5-pro"
    assert analysis["usedFallback"] is False


@pytest.mark.asyncio
async def test_provider_failure_retries_default_model_once():
    calls = []

    async def caller(model_id, prompt, temperature):
        calls.append(model_id)
        if model_id == "gpt-5-2025-08-07":
            raise ProviderError("openai API error (500): boom", status_code=500)
        return TACTIC_OUTPUT

    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    sections, model_used = await generate_insights(data, "prompt", "gpt-5-2025-08-07", None, caller=caller)
    assert calls == ["gpt-5-2025-08-07", "claude-sonnet-4-20250514"]
    assert model_used == "claude-sonnet-4-20250514"
    assert sections["executiveSummary"] == "Great."


@pytest.mark.asyncio
async def test_provider_failure_on_default_goes_to_mock():
    calls = []

    async def caller(model_id, prompt, temperature):
        calls.append(model_id)
        raise ProviderError("anthropic API error (529): overloaded")

    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    sections, model_used = await generate_insights(data, "prompt", None, None, caller=caller)
    assert calls == ["claude-sonnet-4-20250514"]
    assert model_used is None
    assert "increase brand awareness" in sections["executiveSummary"]


@pytest.mark.asyncio
async def test_fallback_failure_goes_to_mock():
    async def caller(model_id, prompt, temperature):
        if model_id == "gemini-2.5-pro":
            raise ProviderError("google API error (400): bad request")
        raise ConfigurationError("API key not configured for anthropic.")

    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    sections, model_used = await generate_insights(data, "prompt", "gemini-2.5-pro", None, caller=caller)
    assert model_used is None
    assert sections["executiveSummary"].startswith("Against the objective of 'increase brand awareness'")


@pytest.mark.asyncio
async def test_empty_response_goes_to_mock():
    async def caller(model_id, prompt, temperature):
        return "   "

    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    sections, model_used = await generate_insights(data, "prompt", None, None, caller=caller)
    assert model_used is None
    assert "Q1" in sections["executiveSummary"]


@pytest.mark.asyncio
async def test_unexpected_caller_error_goes_to_mock():
    async def caller(model_id, prompt, temperature):
        raise RuntimeError("connection reset")

    analysis = await generate_analysis(CAMPAIGN, _uploads(), COMPANY, caller=caller)
    assert analysis["modelUsed"] is None
    assert analysis["usedFallback"] is True
    assert analysis["executiveSummary"].startswith("Against the objective of 'increase brand awareness'")


@pytest.mark.asyncio
async def test_unexpected_error_on_default_retry_goes_to_mock():
    calls = []

    async def caller(model_id, prompt, temperature):
        calls.append(model_id)
        if model_id == "gpt-5-2025-08-07":
            raise ProviderError("openai API error (503): unavailable", status_code=503)
        raise KeyError("content")

    data = prepare_analysis_data(CAMPAIGN, _uploads(), COMPANY)
    sections, model_used = await generate_insights(data, "prompt", "gpt-5-2025-08-07", None, caller=caller)
    assert calls == ["gpt-5-2025-08-07", "claude-sonnet-4-20250514"]
    assert model_used is None
    assert "Q1" in sections["executiveSummary"]


# ── per-tactic guidelines ──

async def _tactic_products(session):
    meta = await schema_store.create_product(session, ProductIn(**meta_product()))
    meta_id, link_click_id = meta.id, meta.subproducts[0].id
    sem = await schema_store.create_product(
        session, ProductIn(name="SEM", platforms=["Google Ads"], ai_guidelines="Lead with call volume."),
    )
    return [
        {"name": "Meta-LinkClick", "productId": meta_id, "subproductId": link_click_id},
        {"name": "SEM-Google", "productId": sem.id},
        "Display-Retargeting",
    ]


@pytest.mark.asyncio
async def test_resolve_tactic_configs_per_tactic(session):
    tactics = await _tactic_products(session)
    configs = await resolve_tactic_configs(session, tactics)
    assert set(configs) == {"Meta-LinkClick", "SEM-Google"}
    assert configs["Meta-LinkClick"]["subproductConfig"]["name"] == "Link Click"
    assert configs["SEM-Google"]["subproductConfig"] is None
    assert configs["SEM-Google"]["productConfig"]["ai_guidelines"] == "Lead with call volume."


@pytest.mark.asyncio
async def test_tactic_guidelines_stay_in_their_own_block(session):
    tactics = await _tactic_products(session)
    configs = await resolve_tactic_configs(session, tactics)
    prompts = []

    async def caller(model_id, prompt, temperature):
        prompts.append(prompt)
        return TACTIC_OUTPUT

    await generate_analysis(
        CAMPAIGN, _uploads(), COMPANY, tactics=tactics, caller=caller, tactic_configs=configs,
    )
    blocks = {
        block.split(" =====", 1)[0]: block for block in prompts[0].split("===== TACTIC: ")[1:]
    }
    assert set(blocks) == {"Meta-LinkClick", "SEM-Google", "Display-Retargeting"}

    assert "Subproduct: Link Click" in blocks["Meta-LinkClick"]
    assert "Focus on social engagement.\n\nReport CTR first." in blocks["Meta-LinkClick"]
    assert "Lead with call volume." not in blocks["Meta-LinkClick"]

    assert "Product: SEM" in blocks["SEM-Google"]
    assert "Platforms: Google Ads" in blocks["SEM-Google"]
    assert "Lead with call volume." in blocks["SEM-Google"]
    assert "Report CTR first." not in blocks["SEM-Google"]

    assert "Guidelines:" not in blocks["Display-Retargeting"]
    assert "PRODUCT GUIDELINES:" not in prompts[0]


@pytest.mark.asyncio
async def test_store_analysis_links_campaign(session):
    order_id = "a" * 24
    await store_campaign(session, order_id, {"name": "Q1", "lineItems": []})
    analysis = await generate_analysis({**CAMPAIGN, "id": order_id}, _uploads(), COMPANY)
    analysis_id = await store_analysis(session, analysis, {**CAMPAIGN, "id": order_id}, {"tone": "concise"})

    row = (await session.execute(select(Analysis).where(Analysis.id == analysis_id))).scalar_one()
    assert row.campaign_id is not None
    assert row.used_fallback is True
    assert row.tone == "concise"
    assert row.analysis["campaignName"] == "Q1"


@pytest.mark.asyncio
async def test_store_analysis_without_campaign(session):
    analysis = await generate_analysis(CAMPAIGN, {}, COMPANY)
    analysis_id = await store_analysis(session, analysis, CAMPAIGN)
    row = await session.get(Analysis, analysis_id)
    assert row.campaign_id is None
    assert row.tone == "professional"
