"""리포트 생성 파이프라인 — 업로드 집계 → 프롬프트 → LLM → 섹션 파싱 (실패 시 mock 분석).

Fallback ladder:
    missing key / unknown model      → mock analysis
    provider failure on non-default  → one retry on DEFAULT_AI_MODEL → mock
    provider failure on default      → mock
    empty response                   → mock
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Analysis, Campaign
from processor.ai_models import call_model, default_model_id
from processor.config_resolver import resolve_effective_config
from processor.errors import ConfigurationError, ProviderError
from processor.metric_extractor import (
    CANONICAL_METRICS,
    derive_metrics,
    extract_geo_data,
    extract_key_metrics,
    metric_cards,
)
from processor.persistence import write_scope
from processor.prompt_builder import DEFAULT_TONE, build_analysis_prompt, tactic_kpis
from processor.response_parser import parse_ai_response

ModelCaller = Callable[[str | None, str, float | None], Awaitable[str]]

GEO_LIMIT = 10


def _tactic_name(tactic) -> str:
    if isinstance(tactic, dict):
        return str(tactic.get("name") or tactic.get("id") or "").strip()
    return str(tactic or "").strip()


def _sum_totals(files: list[dict]) -> dict[str, float]:
    totals = {m: 0.0 for m in CANONICAL_METRICS}
    for f in files:
        metrics = extract_key_metrics(f.get("data") or [], f.get("headers") or [])
        for key, value in metrics.items():
            totals[key] += value
    return totals


def prepare_analysis_data(
    campaign_data: dict,
    uploaded_files: dict[str, list[dict]],
    company_info: dict,
    tactics: list | None = None,
) -> dict:
    """Per-tactic summaries; each tactic's metrics and geo data stay separate.

    Tactics named in `tactics` without uploaded files are listed with zero rows.
    """
    summary = {
        "campaign": {
            "name": campaign_data.get("name") or "Unknown Campaign",
            "status": campaign_data.get("status") or "unknown",
            "startDate": campaign_data.get("startDate"),
            "endDate": campaign_data.get("endDate"),
            "daysElapsed": campaign_data.get("daysElapsed") or 0,
            "daysRemaining": campaign_data.get("daysRemaining") or 0,
        },
        "company": {
            "name": company_info.get("name") or "Unknown Company",
            "industry": company_info.get("industry") or "Unknown",
            "objectives": company_info.get("objectives") or "Not specified",
            "notes": company_info.get("notes") or "",
        },
        "tactics": [],
    }

    tactic_ids = list(uploaded_files.keys())
    for tactic in tactics or []:
        name = _tactic_name(tactic)
        if name and name not in tactic_ids:
            tactic_ids.append(name)

    for tactic_id in tactic_ids:
        files = uploaded_files.get(tactic_id) or []
        totals = _sum_totals(files)
        geo: list[dict] = []
        sample: list[dict] = []
        for f in files:
            rows = f.get("data") or []
            if not rows:
                continue
            geo.extend(extract_geo_data(rows, f.get("headers") or []))
            if not sample:
                sample = rows[:3]
        summary["tactics"].append({
            "id": tactic_id,
            "fileCount": len(files),
            "totalRows": sum(len(f.get("data") or []) for f in files),
            "metrics": totals,
            "derived": derive_metrics(totals),
            "geoData": geo[:GEO_LIMIT],
            "kpis": tactic_kpis(tactic_id),
            "rawData": sample,
        })
    return summary


async def resolve_tactic_configs(session: AsyncSession, tactics: list | None) -> dict[str, dict]:
    """Tactic name -> effective config for tactics that carry productId/subproductId.

    Each distinct (product, subproduct) pair is resolved once.
    """
    resolved: dict[tuple, dict] = {}
    configs: dict[str, dict] = {}
    for tactic in tactics or []:
        if not isinstance(tactic, dict):
            continue
        name = _tactic_name(tactic)
        scope = (tactic.get("productId"), tactic.get("subproductId"))
        if not name or scope == (None, None):
            continue
        if scope not in resolved:
            resolved[scope] = await resolve_effective_config(session, *scope)
        configs[name] = resolved[scope]
    return configs

def generate_mock_analysis(analysis_data: dict) -> dict:
    """Deterministic templated analysis used whenever no model output is available."""
    campaign = analysis_data["campaign"]["name"]
    company = analysis_data["company"]["name"]
    industry = analysis_data["company"]["industry"]
    objectives = analysis_data["company"]["objectives"]
    names = [t["id"] for t in analysis_data["tactics"]]

    performance = ""
    trends = ""
    recommendations = ""
    for name in names:
        performance += (
            f"### {name}\n"
            "- Overall Performance: Meeting industry benchmarks\n"
            "- KPI Analysis: Primary KPIs tracking to goal\n"
            "- Geo Performance: Top performing regions identified\n"
            "- Cost Efficiency: Within acceptable range\n\n"
        )
        trends += (
            f"### {name} Trends\n"
            "- Performance Trend: Stable with slight improvement\n"
            "- Diagnosis: Normal performance patterns\n"
            "- CPA/CPL Trend: Consistent with projections\n\n"
        )
        recommendations += (
            f"### {name} Recommendations\n"
            "1. Continue current optimization strategy\n"
            "2. Test new creative variations\n"
            "3. Expand to similar high-performing segments\n\n"
        )
    recommendations += (
        "### Overall Strategy Recommendations\n"
        "- Maintain current channel mix\n"
        "- Consider incremental budget increases for top performers\n"
        "- Implement unified measurement framework\n"
    )

    tactic_list = f" ({', '.join(names)})" if names else ""
    executive_summary = (
        f"Against the objective of '{objectives}', the {campaign} campaign for {company} "
        f"is showing positive momentum across {len(names)} marketing tactics{tactic_list}. "
        "Early indicators suggest the campaign is on track to meet stated goals, with particularly "
        f"strong performance in digital channels. The {industry} market context presents both "
        "opportunities and challenges that are being actively addressed."
    )
    return {
        "executiveSummary": executive_summary,
        "tacticPerformance": performance,
        "tacticTrends": trends,
        "tacticRecommendations": recommendations,
        "performanceAnalysis": performance,
        "trendAnalysis": trends,
        "recommendations": recommendations,
    }


async def generate_insights(
    analysis_data: dict,
    prompt: str,
    model_id: str | None,
    temperature: float | None,
    caller: ModelCaller | None = None,
) -> tuple[dict, str | None]:
    """Run the model with the fallback ladder; returns (sections, model used or None for mock)."""
    caller = caller or call_model
    default = default_model_id()
    model_id = model_id or default

    try:
        response = await caller(model_id, prompt, temperature)
        if response and response.strip():
            return parse_ai_response(response), model_id
        logger.warning("[pipeline] {} returned an empty response, using mock analysis", model_id)
    except ConfigurationError as exc:
        logger.warning("[pipeline] AI not configured ({}), using mock analysis", exc)
    except ProviderError as exc:
        logger.error("[pipeline] {} failed: {}", model_id, exc)
        if model_id != default:
            logger.info("[pipeline] falling back to default model {}", default)
            try:
                response = await caller(default, prompt, temperature)
                if response and response.strip():
                    return parse_ai_response(response), default
            except (ConfigurationError, ProviderError) as fallback_exc:
                logger.error("[pipeline] default model fallback failed: {}", fallback_exc)
            except Exception:
                logger.exception("[pipeline] default model {} raised unexpectedly", default)
    except Exception:
        logger.exception("[pipeline] {} raised unexpectedly, using mock analysis", model_id)

    return generate_mock_analysis(analysis_data), None


def calculate_metric_cards(uploaded_files: dict[str, list[dict]]) -> list[dict]:
    """Overall metric cards across every uploaded file."""
    return metric_cards(_sum_totals([f for files in uploaded_files.values() for f in files]))


def generate_chart_data(uploaded_files: dict[str, list[dict]]) -> dict:
    """Per-tactic CTR bars for the report charts."""
    labels = list(uploaded_files.keys())
    values = [
        round(derive_metrics(_sum_totals(uploaded_files[label]))["ctr"], 2) for label in labels
    ]
    return {
        "performance": {
            "labels": labels,
            "datasets": [{"label": "CTR (%)", "data": values}],
        },
    }


async def generate_analysis(
    campaign_data: dict,
    uploaded_files: dict[str, list[dict]],
    company_info: dict,
    tactics: list | None = None,
    ai_config: dict | None = None,
    effective_config: dict | None = None,
    caller: ModelCaller | None = None,
    tactic_configs: dict[str, dict] | None = None,
) -> dict:
    """Full report run. Always returns an analysis payload (real or mock)."""
    ai_config = ai_config or {}
    analysis_data = prepare_analysis_data(campaign_data, uploaded_files, company_info, tactics)

    tone = ai_config.get("tone") or DEFAULT_TONE
    prompt = build_analysis_prompt(
        analysis_data,
        effective_config=effective_config,
        tone=tone,
        custom_instructions=ai_config.get("customInstructions"),
        tactic_configs=tactic_configs,
    )
    sections, model_used = await generate_insights(
        analysis_data, prompt, ai_config.get("model"), ai_config.get("temperature"), caller=caller,
    )

    metrics_by_tactic = {
        tactic_id: metric_cards(_sum_totals(files)) for tactic_id, files in uploaded_files.items()
    }
    charts_by_tactic = {
        tactic_id: generate_chart_data({tactic_id: files}) for tactic_id, files in uploaded_files.items()
    }

    logger.info(
        "[pipeline] analysis for '{}' ready: {} tactics, model={}",
        analysis_data["campaign"]["name"], len(analysis_data["tactics"]), model_used or "mock",
    )
    return {
        **sections,
        "metricsByTactic": metrics_by_tactic,
        "chartsByTactic": charts_by_tactic,
        "metrics": calculate_metric_cards(uploaded_files),
        "chartData": generate_chart_data(uploaded_files),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "campaignName": analysis_data["campaign"]["name"],
        "companyName": analysis_data["company"]["name"],
        "objectives": analysis_data["company"]["objectives"],
        "modelUsed": model_used,
        "usedFallback": model_used is None,
    }


async def store_analysis(
    session: AsyncSession,
    analysis: dict,
    campaign_data: dict,
    ai_config: dict | None = None,
) -> int:
    """Persist one analysis; links to the stored Lumina campaign when its id is known."""
    ai_config = ai_config or {}
    async with write_scope(session, "store analysis"):
        campaign_id = None
        order_id = campaign_data.get("id")
        if order_id:
            campaign_id = (await session.execute(
                select(Campaign.id).where(Campaign.order_id == str(order_id))
            )).scalar_one_or_none()
        row = Analysis(
            campaign_id=campaign_id,
            campaign_name=analysis.get("campaignName"),
            company_name=analysis.get("companyName"),
            ai_model=analysis.get("modelUsed"),
            tone=ai_config.get("tone") or DEFAULT_TONE,
            used_fallback=bool(analysis.get("usedFallback")),
            analysis=analysis,
        )
        session.add(row)
        await session.flush()
        analysis_id = row.id
    return analysis_id
