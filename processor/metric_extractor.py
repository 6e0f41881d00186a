"""CSV 지표 추출 — 헤더 부분일치로 노출/클릭/전환/비용 합산 + 파생지표 + 지역 Top10.

Header mapping is first-match-wins per canonical metric: when two columns both
contain "impression", only the first one is summed. Known limitation, kept as is.
"""

import csv
import io
import re

CANONICAL_METRICS = ("impressions", "clicks", "conversions", "spend")

GEO_KEYWORDS = ("dma", "city", "state", "zip", "region", "metro", "location")
GEO_TOP_N = 10

_NUMERIC_STRIP_RE = re.compile(r"[,$%\s]")


def parse_csv(text: str) -> tuple[list[str], list[dict]]:
    """Parse CSV text into (headers, rows); a UTF-8 BOM and blank lines are dropped."""
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    headers = [h.strip() for h in (reader.fieldnames or [])]
    rows = []
    for raw in reader:
        row = {(k or "").strip(): v for k, v in raw.items() if k is not None}
        if any((v or "").strip() for v in row.values() if isinstance(v, str)):
            rows.append(row)
    return headers, rows


def to_number(value) -> float:
    """Cell → float. "$1,234.50" → 1234.5, "12%" → 12.0, anything else → 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if value == value else 0.0  # NaN
    cleaned = _NUMERIC_STRIP_RE.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def _canonical_for(header: str) -> str | None:
    h = header.lower()
    if "impression" in h:
        return "impressions"
    if "click" in h and "rate" not in h:
        return "clicks"
    if "conversion" in h and "rate" not in h:
        return "conversions"
    if "spend" in h or "cost" in h:
        return "spend"
    return None


def map_metric_headers(headers: list[str]) -> dict[str, str]:
    """{canonical_metric: header}. First matching header wins per metric."""
    mapping: dict[str, str] = {}
    for header in headers or []:
        metric = _canonical_for(str(header))
        if metric and metric not in mapping:
            mapping[metric] = header
    return mapping


def extract_key_metrics(rows: list[dict], headers: list[str]) -> dict[str, float]:
    """Sum impressions/clicks/conversions/spend across rows; absent metrics are 0."""
    totals = {m: 0.0 for m in CANONICAL_METRICS}
    mapping = map_metric_headers(headers)
    for row in rows or []:
        for metric, header in mapping.items():
            totals[metric] += to_number(row.get(header))
    return totals


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator * scale


def derive_metrics(totals: dict[str, float]) -> dict[str, float]:
    """CTR / conversion rate / CPC / CPM with zero-denominator guarded to 0."""
    impressions = totals.get("impressions", 0.0)
    clicks = totals.get("clicks", 0.0)
    conversions = totals.get("conversions", 0.0)
    spend = totals.get("spend", 0.0)
    return {
        "ctr": safe_ratio(clicks, impressions, 100),
        "conversion_rate": safe_ratio(conversions, clicks, 100),
        "cpc": safe_ratio(spend, clicks),
        "cpm": safe_ratio(spend, impressions, 1000),
    }


def find_geo_column(headers: list[str]) -> str | None:
    for header in headers or []:
        h = str(header).lower()
        if any(k in h for k in GEO_KEYWORDS):
            return header
    return None


def extract_geo_data(rows: list[dict], headers: list[str]) -> list[dict]:
    """Group rows by the first geo column; top 10 groups by impressions."""
    geo_col = find_geo_column(headers)
    if geo_col is None:
        return []
    mapping = map_metric_headers(headers)

    groups: dict[str, dict] = {}
    for row in rows or []:
        location = str(row.get(geo_col) or "").strip()
        if not location:
            continue
        bucket = groups.setdefault(
            location,
            {"location": location, "impressions": 0.0, "clicks": 0.0, "conversions": 0.0},
        )
        for metric in ("impressions", "clicks", "conversions"):
            header = mapping.get(metric)
            if header is not None:
                bucket[metric] += to_number(row.get(header))

    ranked = sorted(groups.values(), key=lambda g: g["impressions"], reverse=True)
    return ranked[:GEO_TOP_N]


def metric_cards(totals: dict[str, float]) -> list[dict]:
    """Labelled overview cards for the report header."""
    derived = derive_metrics(totals)
    return [
        {"label": "Total Impressions", "value": round(totals.get("impressions", 0.0))},
        {"label": "Total Clicks", "value": round(totals.get("clicks", 0.0))},
        {"label": "CTR", "value": round(derived["ctr"], 2), "unit": "%"},
        {"label": "Conversions", "value": round(totals.get("conversions", 0.0))},
        {"label": "Conversion Rate", "value": round(derived["conversion_rate"], 2), "unit": "%"},
        {"label": "CPC", "value": round(derived["cpc"], 2), "unit": "$"},
    ]
