"""Analysis prompt assembly — role/tone, constraints, campaign context, per-tactic data, output format.

The four output markers (EXECUTIVE_SUMMARY / TACTIC_PERFORMANCE / TACTIC_TRENDS /
TACTIC_RECOMMENDATIONS) are emitted verbatim; processor.response_parser splits on them.
"""

from __future__ import annotations

import json

from processor.config_resolver import enabled_sections
from processor.response_parser import TACTIC_MARKERS

DEFAULT_TONE = "professional"

TONE_INSTRUCTIONS: dict[str, str] = {
    "concise": "Be brief and to-the-point. Focus only on key insights and critical metrics.",
    "professional": "Use formal business language suitable for executive reports.",
    "conversational": "Use a friendly, approachable tone while maintaining professionalism.",
    "encouraging": "Use positive, motivational language. Highlight opportunities and successes.",
    "analytical": "Provide detailed data-driven insights with extensive metrics and benchmarks.",
    "casual": "Use relaxed, informal language for internal team discussions.",
}

# (tactic id substrings, primary KPI, secondary KPIs); first matching row wins
TACTIC_KPI_TABLE: list[tuple[tuple[str, ...], str, list[str]]] = [
    (("sem", "search"), "Cost per Call",
     ["Quality Score", "Search Impression Share", "Click-through Rate"]),
    (("meta", "facebook"), "Cost per Result",
     ["Reach", "Frequency", "Engagement Rate"]),
    (("youtube", "video"), "View Rate",
     ["Average View Duration", "Cost per View", "Earned Actions"]),
    (("display",), "Viewability Rate",
     ["Click-through Rate", "Cost per Thousand Impressions"]),
]
DEFAULT_KPIS = ("Cost per Acquisition", ["Return on Ad Spend", "Conversion Rate"])

CRITICAL_REQUIREMENTS = [
    "NEVER combine metrics across tactics (e.g., don't mix Meta and SEM geo performance)",
    "Analyze each tactic INDEPENDENTLY with its own KPIs, geo performance, and trends",
    "Executive summary MUST explicitly tie to the marketing objectives below",
    "Recommendations must be organized by tactic FIRST, then overall strategy",
    "Use consistent terminology throughout the analysis",
]

EXECUTIVE_SUMMARY, TACTIC_PERFORMANCE, TACTIC_TRENDS, TACTIC_RECOMMENDATIONS = TACTIC_MARKERS

OUTPUT_FORMAT = f"""REQUIRED OUTPUT FORMAT:

{EXECUTIVE_SUMMARY}
[2-3 paragraphs that EXPLICITLY connect performance to the stated marketing objectives. Start with 'Against the objective of {{objective}}...' and assess overall success]

{TACTIC_PERFORMANCE}
[For EACH tactic separately provide:
### [TACTIC NAME]
- Overall Performance: [metrics vs benchmarks]
- KPI Analysis: [tactic-specific KPIs like CPA for SEM, engagement for social]
- Geo Performance: [geographic breakdown for THIS tactic only]
- Cost Efficiency: [ROI/ROAS for this tactic]
- Key Insights: [what's working/not working]]

{TACTIC_TRENDS}
[For EACH tactic separately:
### [TACTIC NAME] Trends
- Performance Trend: [improving/declining with specific metrics]
- Diagnosis: [e.g., ad fatigue, domain fatigue, segment strength]
- CPA/CPL Trend: [cost trends over time]
- Creative Performance: [which creatives work for this tactic]]

{TACTIC_RECOMMENDATIONS}
[Organize by tactic FIRST:
### [TACTIC NAME] Recommendations
1. [Specific action with expected impact]
2. [Budget adjustment if needed]
3. [Targeting refinement based on geo/demo data]
4. [Creative optimization]

Then provide:
### Overall Strategy Recommendations
- Cross-channel opportunities
- Budget reallocation across tactics
- Strategic pivots if warranted]
"""


def tone_instruction(tone: str | None) -> str:
    return TONE_INSTRUCTIONS.get((tone or "").lower(), TONE_INSTRUCTIONS[DEFAULT_TONE])


def tactic_kpis(tactic_id: str) -> dict:
    """{"primary": ..., "secondary": [...]} by substring match on the tactic id."""
    lowered = (tactic_id or "").lower()
    for needles, primary, secondary in TACTIC_KPI_TABLE:
        if any(n in lowered for n in needles):
            return {"primary": primary, "secondary": list(secondary)}
    return {"primary": DEFAULT_KPIS[0], "secondary": list(DEFAULT_KPIS[1])}


def _metric_lines(tactic: dict) -> list[str]:
    lines = []
    for key, value in (tactic.get("metrics") or {}).items():
        shown = f"{value:,.0f}" if isinstance(value, (int, float)) else value
        lines.append(f"  - {key[:1].upper()}{key[1:]}: {shown}")
    derived = tactic.get("derived") or {}
    if derived:
        lines.append(f"  - CTR: {derived.get('ctr', 0.0):.2f}%")
        lines.append(f"  - Conversion Rate: {derived.get('conversion_rate', 0.0):.2f}%")
        lines.append(f"  - CPC: ${derived.get('cpc', 0.0):,.2f}")
        lines.append(f"  - CPM: ${derived.get('cpm', 0.0):,.2f}")
    return lines


def _guideline_lines(effective_config: dict | None) -> str:
    product = (effective_config or {}).get("productConfig")
    sub = (effective_config or {}).get("subproductConfig")
    if not product and not sub:
        return ""

    out = ""
    if product:
        out += f"Product: {product['name']}\n"
    if sub:
        out += f"Subproduct: {sub['name']}\n"
    scope = sub or product
    platforms = scope.get("platforms") or []
    if platforms:
        out += f"Platforms: {', '.join(platforms)}\n"
    guidelines = scope.get("ai_guidelines")
    if guidelines:
        out += f"Guidelines:\n{guidelines}\n"
    if product and product.get("ai_prompt"):
        out += f"Product Prompt: {product['ai_prompt']}\n"
    return out


def _context_block(effective_config: dict | None) -> str:
    """PRODUCT GUIDELINES + REPORT SECTIONS, only when a product/subproduct was resolved."""
    guidelines = _guideline_lines(effective_config)
    if not guidelines:
        return ""
    out = "PRODUCT GUIDELINES:\n" + guidelines + "\n"

    sections = enabled_sections(effective_config)
    if sections:
        out += "REPORT SECTIONS (cover in this order):\n"
        for section in sections:
            line = f"- {section['section_name']}"
            if section.get("instructions"):
                line += f": {section['instructions']}"
            out += line + "\n"
        out += "\n"
    return out


def build_analysis_prompt(
    analysis_data: dict,
    effective_config: dict | None = None,
    tone: str | None = DEFAULT_TONE,
    custom_instructions: str | None = None,
    tactic_configs: dict[str, dict] | None = None,
) -> str:
    """Build the single analysis prompt for one report run.

    Args:
        analysis_data: output of report_pipeline.prepare_analysis_data
            ({"campaign": {...}, "company": {...}, "tactics": [...]})
        effective_config: output of config_resolver.resolve_effective_config, optional
        tactic_configs: tactic id -> effective config; its guidelines are written
            inside that tactic's block only
    """
    campaign = analysis_data.get("campaign", {})
    company = analysis_data.get("company", {})

    prompt = (
        "You are a senior digital marketing analyst specializing in multi-channel campaign "
        f"optimization. Tone: {tone_instruction(tone)}\n\n"
    )
    if custom_instructions:
        prompt += f"CUSTOM INSTRUCTIONS: {custom_instructions}\n\n"

    prompt += (
        "Provide a comprehensive analysis with all metrics, performance data, and recommendations "
        "SEPARATED BY TACTIC. Never combine metrics across tactics.\n\n"
    )
    prompt += "CRITICAL REQUIREMENTS:\n"
    for i, requirement in enumerate(CRITICAL_REQUIREMENTS, start=1):
        prompt += f"{i}. {requirement}\n"
    prompt += "\n"

    prompt += "CAMPAIGN INFORMATION:\n"
    prompt += f"Name: {campaign.get('name', 'Unknown Campaign')}\n"
    prompt += f"Status: {campaign.get('status', 'unknown')}\n"
    prompt += (
        f"Duration: {campaign.get('daysElapsed', 0)} days elapsed, "
        f"{campaign.get('daysRemaining', 0)} days remaining\n\n"
    )

    prompt += "MARKETING OBJECTIVES (Frame all analysis around these):\n"
    prompt += f"{company.get('objectives', 'Not specified')}\n\n"

    prompt += "COMPANY CONTEXT:\n"
    prompt += f"Company: {company.get('name', 'Unknown Company')}\n"
    prompt += f"Industry: {company.get('industry', 'Unknown')}\n"
    if company.get("notes"):
        prompt += f"Context: {company['notes']}\n"
    prompt += "\n"

    prompt += _context_block(effective_config)

    prompt += "PERFORMANCE DATA BY TACTIC (Analyze each separately):\n"
    for tactic in analysis_data.get("tactics", []):
        prompt += f"\n===== TACTIC: {tactic['id']} =====\n"
        prompt += f"Files: {tactic.get('fileCount', 0)} | Rows: {tactic.get('totalRows', 0)}\n"
        prompt += _guideline_lines((tactic_configs or {}).get(tactic["id"]))
        lines = _metric_lines(tactic)
        if lines:
            prompt += "Metrics:\n" + "\n".join(lines) + "\n"
        if tactic.get("geoData"):
            prompt += f"Geo Performance: {json.dumps(tactic['geoData'])}\n"
        if tactic.get("kpis"):
            prompt += f"KPIs: {json.dumps(tactic['kpis'])}\n"
    prompt += "\n"

    prompt += OUTPUT_FORMAT
    return prompt


def build_test_prompt(
    master_prompt: str | None,
    effective_config: dict,
    custom_instructions: str | None,
    test_data,
) -> str:
    """Harness prompt: master prompt, product/subproduct context, instructions, test data, sections."""
    parts = []
    if master_prompt:
        parts.append(master_prompt)

    product = effective_config.get("productConfig")
    if product:
        ctx = f"Product Context:\nName: {product['name']}"
        if product.get("ai_guidelines"):
            ctx += f"\nGuidelines: {product['ai_guidelines']}"
        if product.get("ai_prompt"):
            ctx += f"\nPrompt: {product['ai_prompt']}"
        parts.append(ctx)

    sub = effective_config.get("subproductConfig")
    if sub:
        ctx = f"Subproduct Context:\nName: {sub['name']}"
        if sub.get("platforms"):
            ctx += f"\nPlatforms: {', '.join(sub['platforms'])}"
        if sub.get("ai_guidelines"):
            ctx += f"\nGuidelines: {sub['ai_guidelines']}"
        parts.append(ctx)

    if custom_instructions:
        parts.append(f"Custom Instructions:\n{custom_instructions}")

    if test_data:
        parts.append(f"Test Data:\n{json.dumps(test_data, indent=2)}")

    sections = enabled_sections(effective_config)
    if sections:
        listing = "\n".join(
            f"- {s['section_name']}: {s['instructions']}" if s.get("instructions")
            else f"- {s['section_name']}"
            for s in sections
        )
        parts.append(f"Enabled Sections:\n{listing}")

    return "\n\n".join(parts)
