"""분석 프롬프트 조립 테스트."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from processor.prompt_builder import (
    TONE_INSTRUCTIONS,
    build_analysis_prompt,
    build_test_prompt,
    tactic_kpis,
    tone_instruction,
)


def _analysis_data():
    return {
        "campaign": {"name": "Q1 Push", "status": "ongoing", "daysElapsed": 10, "daysRemaining": 20},
        "company": {"name": "Acme", "industry": "Retail", "objectives": "increase brand awareness", "notes": ""},
        "tactics": [
            {
                "id": "Meta-LinkClick",
                "fileCount": 1,
                "totalRows": 2,
                "metrics": {"impressions": 12000.0, "clicks": 300.0, "conversions": 6.0, "spend": 450.0},
                "derived": {"ctr": 2.5, "conversion_rate": 2.0, "cpc": 1.5, "cpm": 37.5},
                "geoData": [{"location": "Boston", "impressions": 100.0, "clicks": 1.0, "conversions": 0.0}],
                "kpis": tactic_kpis("Meta-LinkClick"),
            },
        ],
    }


def _effective(product=True, sub=True):
    return {
        "aiSettings": {},
        "sections": [
            {"section_key": "executive_summary", "section_name": "Executive Summary",
             "instructions": "Lead with outcomes", "is_enabled": True},
            {"section_key": "trends_insights", "section_name": "Trends", "instructions": None,
             "is_enabled": False},
        ],
        "productConfig": {"name": "Meta", "platforms": ["Facebook"], "ai_guidelines": "Social first.",
                          "ai_prompt": None} if product else None,
        "subproductConfig": {"name": "Link Click", "platforms": ["Facebook"],
                             "ai_guidelines": "Social first.\n\nReport CTR."} if sub else None,
    }


def test_tone_instruction_fallback():
    assert tone_instruction("casual") == TONE_INSTRUCTIONS["casual"]
    assert tone_instruction("CONCISE") == TONE_INSTRUCTIONS["concise"]
    assert tone_instruction("shouty") == TONE_INSTRUCTIONS["professional"]
    assert tone_instruction(None) == TONE_INSTRUCTIONS["professional"]


def test_tactic_kpis_substring_table():
    assert tactic_kpis("SEM-Google")["primary"] == "Cost per Call"
    assert tactic_kpis("YouTube-TrueView")["primary"] == "View Rate"
    assert tactic_kpis("Addressable-Display")["primary"] == "Viewability Rate"
    assert tactic_kpis("Email")["primary"] == "Cost per Acquisition"


def test_analysis_prompt_contains_objectives_and_markers():
    prompt = build_analysis_prompt(_analysis_data(), tone="analytical", custom_instructions="Mention Q2.")
    assert "increase brand awareness" in prompt
    assert TONE_INSTRUCTIONS["analytical"] in prompt
    assert "CUSTOM INSTRUCTIONS: Mention Q2." in prompt
    assert "===== TACTIC: Meta-LinkClick =====" in prompt
    assert "Impressions: 12,000" in prompt
    assert "CTR: 2.50%" in prompt
    for marker in ("EXECUTIVE_SUMMARY:", "TACTIC_PERFORMANCE:", "TACTIC_TRENDS:", "TACTIC_RECOMMENDATIONS:"):
        assert marker in prompt


def test_analysis_prompt_without_product_skips_context():
    prompt = build_analysis_prompt(_analysis_data(), effective_config=_effective(product=False, sub=False))
    assert "PRODUCT GUIDELINES" not in prompt
    assert "REPORT SECTIONS" not in prompt


def test_analysis_prompt_with_product_context():
    prompt = build_analysis_prompt(_analysis_data(), effective_config=_effective())
    assert "PRODUCT GUIDELINES:" in prompt
    assert "Subproduct: Link Click" in prompt
    assert "Social first.\n\nReport CTR." in prompt
    assert "- Executive Summary: Lead with outcomes" in prompt
    assert "- Trends" not in prompt


def test_test_prompt_blocks_in_order():
    prompt = build_test_prompt("MASTER", _effective(), "Tone: calm", {"impressions": 10})
    order = [
        prompt.index("MASTER"),
        prompt.index("Product Context:"),
        prompt.index("Subproduct Context:"),
        prompt.index("Custom Instructions:"),
        prompt.index("Test Data:"),
        prompt.index("Enabled Sections:"),
    ]
    assert order == sorted(order)
    assert '"impressions": 10' in prompt
    assert "- Executive Summary: Lead with outcomes" in prompt


def test_test_prompt_minimal():
    prompt = build_test_prompt(None, {"sections": []}, None, None)
    assert prompt == ""


def test_tactic_config_is_written_inside_tactic_block():
    prompt = build_analysis_prompt(_analysis_data(), tactic_configs={"Meta-LinkClick": _effective()})
    block = prompt.split("===== TACTIC: Meta-LinkClick =====\n", 1)[1]
    assert block.startswith("Files: 1 | Rows: 2\nProduct: Meta\nSubproduct: Link Click\n")
    assert "Guidelines:\nSocial first.\n\nReport CTR." in block
    assert "PRODUCT GUIDELINES:" not in prompt
    assert "REPORT SECTIONS" not in prompt
