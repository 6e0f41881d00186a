"""LLM 응답 → 섹션 분리 (marker 기반, 실패 시 전체 텍스트를 요약으로)."""

import re

TACTIC_MARKERS = ("EXECUTIVE_SUMMARY:", "TACTIC_PERFORMANCE:", "TACTIC_TRENDS:", "TACTIC_RECOMMENDATIONS:")
LEGACY_MARKERS = ("EXECUTIVE_SUMMARY:", "PERFORMANCE_ANALYSIS:", "TREND_ANALYSIS:", "RECOMMENDATIONS:")

FORMAT_TACTIC = "tactic"
FORMAT_LEGACY = "legacy"
FORMAT_UNPARSED = "unparsed"


def _splitter(markers: tuple[str, ...]) -> re.Pattern:
    return re.compile("|".join(re.escape(m) for m in markers), re.IGNORECASE)


_TACTIC_SPLIT = _splitter(TACTIC_MARKERS)
_LEGACY_SPLIT = _splitter(LEGACY_MARKERS)
_TACTIC_PROBE = re.compile(re.escape("TACTIC_PERFORMANCE:"), re.IGNORECASE)


def empty_sections() -> dict[str, str]:
    return {
        "executiveSummary": "",
        "tacticPerformance": "",
        "tacticTrends": "",
        "tacticRecommendations": "",
        "performanceAnalysis": "",
        "trendAnalysis": "",
        "recommendations": "",
    }


def parse_ai_response_detailed(text: str | None) -> tuple[dict[str, str], str]:
    """Return (sections, format) where format is tactic | legacy | unparsed."""
    text = text or ""
    sections = empty_sections()

    if _TACTIC_PROBE.search(text):
        parts = _TACTIC_SPLIT.split(text)
        if len(parts) >= 5:
            sections["executiveSummary"] = parts[1].strip()
            sections["tacticPerformance"] = parts[2].strip()
            sections["tacticTrends"] = parts[3].strip()
            sections["tacticRecommendations"] = parts[4].strip()
            sections["performanceAnalysis"] = sections["tacticPerformance"]
            sections["trendAnalysis"] = sections["tacticTrends"]
            sections["recommendations"] = sections["tacticRecommendations"]
            return sections, FORMAT_TACTIC
    else:
        parts = _LEGACY_SPLIT.split(text)
        if len(parts) >= 5:
            sections["executiveSummary"] = parts[1].strip()
            sections["performanceAnalysis"] = parts[2].strip()
            sections["trendAnalysis"] = parts[3].strip()
            sections["recommendations"] = parts[4].strip()
            sections["tacticPerformance"] = sections["performanceAnalysis"]
            sections["tacticTrends"] = sections["trendAnalysis"]
            sections["tacticRecommendations"] = sections["recommendations"]
            return sections, FORMAT_LEGACY

    sections["executiveSummary"] = text.strip()
    return sections, FORMAT_UNPARSED


def parse_ai_response(text: str | None) -> dict[str, str]:
    """Split model output into executive summary / performance / trends / recommendations.

    Never raises: unrecognized output becomes the executive summary and the
    other fields stay empty.
    """
    return parse_ai_response_detailed(text)[0]
