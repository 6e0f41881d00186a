"""Lumina 주문 조회 + 라인아이템 → 전술(tactic) 그룹핑 API."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.schemas import LuminaRequest, TacticsRequest
from processor.lumina_client import (
    fetch_order,
    normalize_order,
    run_extractors,
    store_campaign,
    validate_order_id,
)
from processor.tactic_detector import detect_tactics

logger = logging.getLogger("reportai.api")

router = APIRouter(prefix="/api", tags=["campaigns"], redirect_slashes=False)


@router.post("/lumina")
async def lumina_order(body: LuminaRequest, db: AsyncSession = Depends(get_db)):
    """Fetch one order from Lumina, persist it and return the normalized campaign.

    Configured extractors are evaluated against the raw order and returned
    under `extracted`, grouped by product name.
    """
    order_id = validate_order_id(body.orderId)
    raw = await fetch_order(order_id)
    campaign = normalize_order(raw)
    await store_campaign(db, order_id, campaign, raw)
    campaign["extracted"] = await run_extractors(db, raw)
    logger.info("Lumina order %s loaded (%d line items)", order_id, len(campaign["lineItems"]))
    return campaign


@router.post("/tactics")
async def tactics(body: TacticsRequest):
    """라인아이템을 product+subProduct 기준으로 묶는다."""
    return detect_tactics(body.lineItems)
