"""Lumina order API — fetch, normalize, persist, and evaluate configured extractors.

Env:
    LUMINA_API_URL  -- default: https://api.edwinlovett.com/order
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone

import httpx
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Campaign, LuminaExtractor, Product
from processor.config import get_settings
from processor.errors import ProviderError, ValidationError
from processor.metric_extractor import to_number
from processor.persistence import write_scope

ORDER_ID_RE = re.compile(r"^[a-fA-F0-9]{24}$")
_PATH_PART_RE = re.compile(r"^([^\[\]]*)((?:\[\d*\])*)$")
_INDEX_RE = re.compile(r"\[(\d*)\]")

_ALL = object()  # `[]` fan-out marker


def validate_order_id(order_id: str | None) -> str:
    order_id = (order_id or "").strip()
    if not order_id:
        raise ValidationError("Order ID is required")
    if not ORDER_ID_RE.match(order_id):
        raise ValidationError("Invalid order ID format. Must be 24 hexadecimal characters.")
    return order_id


async def fetch_order(order_id: str, http_client: httpx.AsyncClient | None = None) -> dict:
    """GET the raw order document; non-200 and transport failures raise ProviderError."""
    settings = get_settings()
    order_id = validate_order_id(order_id)
    client = http_client or httpx.AsyncClient(timeout=settings.lumina_timeout_sec)
    try:
        resp = await client.get(settings.lumina_api_url, params={"query": order_id})
    except httpx.HTTPError as exc:
        raise ProviderError(f"Lumina request failed: {exc}") from exc
    finally:
        if http_client is None:
            await client.aclose()

    if resp.status_code != 200:
        logger.warning("[lumina] order {} → HTTP {}", order_id, resp.status_code)
        raise ProviderError(f"Lumina API returned HTTP {resp.status_code}", status_code=resp.status_code)
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise ProviderError("Lumina API returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise ProviderError("Lumina API returned an unexpected document")
    return data


def _unwrap(raw: dict) -> dict:
    if isinstance(raw.get("order"), dict):
        return raw["order"]
    if isinstance(raw.get("data"), dict):
        return raw["data"]
    return raw


def _parse_date(value) -> datetime | None:
    """ISO date/datetime → naive UTC datetime; None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def campaign_timing(start_date, end_date, now: datetime | None = None) -> dict:
    """{status, daysElapsed, daysRemaining} from flight dates."""
    timing = {"status": "unknown", "daysElapsed": 0, "daysRemaining": 0}
    start = _parse_date(start_date)
    end = _parse_date(end_date)
    if start is None or end is None:
        return timing

    now = now or datetime.utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)

    if now < start:
        timing["status"] = "not_started"
        timing["daysRemaining"] = (start - now).days
    elif now > end:
        timing["status"] = "completed"
        timing["daysElapsed"] = (end - start).days
    else:
        timing["status"] = "ongoing"
        timing["daysElapsed"] = (now - start).days
        timing["daysRemaining"] = (end - now).days
    return timing


def normalize_order(raw: dict, now: datetime | None = None) -> dict:
    """Raw Lumina document → normalized campaign object."""
    order = _unwrap(raw)
    campaign = {
        "id": order.get("_id"),
        "orderNumber": order.get("orderNumber"),
        "name": order.get("name") or "Unknown Campaign",
        "advertiser": order.get("advertiser"),
        "companyName": order.get("companyName"),
        "startDate": order.get("startDate"),
        "endDate": order.get("endDate"),
        "totalSpend": order.get("totalSpend") or 0,
        "lineItems": [],
    }

    line_items = raw.get("lineItems")
    if line_items is None:
        line_items = order.get("lineItems")
    for item in line_items if isinstance(line_items, list) else []:
        if not isinstance(item, dict):
            continue
        campaign["lineItems"].append({
            "product": item.get("product"),
            "subProduct": item.get("subProduct"),
            "tacticTypeSpecial": item.get("tacticTypeSpecial"),
            "status": item.get("status") or "Unknown",
            "startDate": item.get("startDate"),
            "endDate": item.get("endDate"),
            "flightDates": item.get("flightDates") or [],
            "lineitemId": item.get("_id") or item.get("id"),
            "woOrderNumber": item.get("woOrderNumber") or item.get("wideOrbitNumber"),
            "rawData": item,
        })

    campaign.update(campaign_timing(campaign["startDate"], campaign["endDate"], now))
    return campaign


async def store_campaign(session: AsyncSession, order_id: str, campaign: dict, raw: dict | None = None) -> Campaign:
    """Upsert by order id."""
    async with write_scope(session, "store campaign"):
        row = (await session.execute(
            select(Campaign).where(Campaign.order_id == order_id)
        )).scalar_one_or_none()
        if row is None:
            row = Campaign(order_id=order_id)
            session.add(row)
        row.order_number = campaign.get("orderNumber")
        row.name = campaign.get("name")
        row.advertiser = campaign.get("advertiser")
        row.status = campaign.get("status")
        row.start_date = campaign.get("startDate")
        row.end_date = campaign.get("endDate")
        row.line_items = campaign.get("lineItems") or []
        row.raw_data = raw
        await session.flush()
    logger.info("[lumina] campaign stored: {} ({} line items)", order_id, len(row.line_items or []))
    return row


# ---------------------------------------------------------------------------
# Extractor evaluation
# ---------------------------------------------------------------------------
def _tokenize(path: str) -> list:
    """'lineItems[].flightDates[0]' → ['lineItems', _ALL, 'flightDates', 0]."""
    tokens: list = []
    for part in path.split("."):
        m = _PATH_PART_RE.match(part)
        if m is None:
            raise ValidationError(f"Invalid extractor path segment: {part!r}")
        key, brackets = m.groups()
        if key:
            tokens.append(key)
        for idx in _INDEX_RE.findall(brackets):
            tokens.append(_ALL if idx == "" else int(idx))
    return tokens


def _walk(node, tokens: list, when: dict | None) -> list:
    if not tokens:
        return [node]
    head, rest = tokens[0], tokens[1:]
    if head is _ALL:
        if not isinstance(node, list):
            return []
        out = []
        for item in node:
            if when and not matches_conditions(item, when):
                continue
            out.extend(_walk(item, rest, None))
        return out
    if isinstance(head, int):
        if not isinstance(node, list) or head >= len(node):
            return []
        return _walk(node[head], rest, when)
    if not isinstance(node, dict) or head not in node:
        return []
    return _walk(node[head], rest, when)


def extract_path(data, path: str, when: dict | None = None):
    """Resolve a dot/bracket path.

    `key[]` fans out over a list (result is a list), `key[i]` indexes. `when`
    filters the items at the first fan-out, or the root when there is none.
    """
    tokens = _tokenize(path)
    fanned = _ALL in tokens
    if not fanned and when and not matches_conditions(data, when):
        return None
    values = _walk(data, tokens, when if fanned else None)
    if fanned:
        return values
    return values[0] if values else None


def matches_conditions(item, when: dict) -> bool:
    """Every {path: expected} must hold; a list `expected` means membership."""
    for cond_path, expected in (when or {}).items():
        actual = extract_path(item, cond_path)
        if isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def apply_aggregation(values, aggregate_type: str | None):
    if not aggregate_type:
        return values
    if not isinstance(values, list):
        values = [] if values is None else [values]
    if aggregate_type == "first":
        return values[0] if values else None
    if aggregate_type == "unique":
        seen = set()
        unique = []
        for v in values:
            marker = json.dumps(v, sort_keys=True, default=str)
            if marker not in seen:
                seen.add(marker)
                unique.append(v)
        return unique
    if aggregate_type == "sum":
        return sum(to_number(v) for v in values)
    if aggregate_type == "join":
        return ", ".join(str(v) for v in values if v is not None)
    raise ValidationError(f"Unknown aggregate type: {aggregate_type}")


def evaluate_extractor(data: dict, path: str, when: dict | None = None, aggregate_type: str | None = None):
    return apply_aggregation(extract_path(data, path, when), aggregate_type)


async def run_extractors(session: AsyncSession, raw: dict) -> dict[str, dict]:
    """Evaluate every configured extractor against the raw order; grouped by product name."""
    document = dict(_unwrap(raw))
    if "lineItems" not in document and isinstance(raw.get("lineItems"), list):
        document["lineItems"] = raw["lineItems"]

    result = await session.execute(
        select(LuminaExtractor, Product.name)
        .join(Product, LuminaExtractor.product_id == Product.id)
        .order_by(Product.name, LuminaExtractor.name)
    )
    extracted: dict[str, dict] = {}
    for extractor, product_name in result.all():
        try:
            value = evaluate_extractor(
                document, extractor.path, extractor.when_conditions, extractor.aggregate_type,
            )
        except ValidationError as exc:
            logger.warning("[lumina] extractor {} skipped: {}", extractor.name, exc)
            continue
        extracted.setdefault(product_name, {})[extractor.name] = value
    return extracted
