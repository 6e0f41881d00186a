"""리포트 생성 + 업로드 CSV 매칭 API."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.models import Analysis
from database.schemas import AnalyzeRequest
from processor.config_resolver import resolve_effective_config
from processor.errors import NotFoundError, ValidationError
from processor.metric_extractor import parse_csv
from processor.report_pipeline import generate_analysis, resolve_tactic_configs, store_analysis
from processor.schema_store import load_schema_tree
from processor.tactic_matcher import TacticMatcher

logger = logging.getLogger("reportai.api")

router = APIRouter(prefix="/api", tags=["analyze"], redirect_slashes=False)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.post("/analyze")
async def analyze(body: AnalyzeRequest, db: AsyncSession = Depends(get_db)):
    """Run the report pipeline and persist the result.

    AI outages never fail this endpoint; the pipeline degrades to the mock
    analysis and `usedFallback` is set on the payload.
    """
    ai_config = body.aiConfig.model_dump()
    effective = None
    if body.aiConfig.productId is not None or body.aiConfig.subproductId is not None:
        effective = await resolve_effective_config(db, body.aiConfig.productId, body.aiConfig.subproductId)

    tactics = [t if isinstance(t, str) else t.model_dump() for t in body.tactics]
    tactic_configs = await resolve_tactic_configs(db, tactics)

    uploaded = {
        tactic: [f.model_dump() for f in files] for tactic, files in body.uploadedFiles.items()
    }
    analysis = await generate_analysis(
        body.campaignData,
        uploaded,
        body.companyInfo,
        tactics=tactics,
        ai_config=ai_config,
        effective_config=effective,
        tactic_configs=tactic_configs,
    )
    analysis_id = await store_analysis(db, analysis, body.campaignData, ai_config)
    return {"analysis": analysis, "analysisId": analysis_id}


@router.get("/analyses/{analysis_id}")
async def get_analysis(analysis_id: int, db: AsyncSession = Depends(get_db)):
    row = await db.get(Analysis, analysis_id)
    if row is None:
        raise NotFoundError(f"Analysis {analysis_id} not found")
    return {
        "id": row.id,
        "campaignId": row.campaign_id,
        "campaignName": row.campaign_name,
        "companyName": row.company_name,
        "aiModel": row.ai_model,
        "tone": row.tone,
        "usedFallback": row.used_fallback,
        "analysis": row.analysis,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


def _decode_upload(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1252", errors="replace")


@router.post("/uploads/match")
async def match_upload(file: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    """업로드 CSV의 파일명/헤더를 설정된 tactic 테이블과 대조."""
    content = await file.read(MAX_UPLOAD_BYTES + 1)
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError(f"Uploaded file exceeds the {MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit")

    headers, rows = parse_csv(_decode_upload(content))
    if not headers:
        raise ValidationError("No header row found in uploaded file")

    matcher = TacticMatcher()
    matcher.load_tables(await load_schema_tree(db))
    filename_matches = matcher.match_filename(file.filename)
    header_matches = matcher.match_headers(headers)
    logger.info(
        "Upload %s: %d rows, %d filename / %d header matches",
        file.filename, len(rows), len(filename_matches), len(header_matches),
    )
    return {
        "filename": file.filename,
        "headers": headers,
        "rowCount": len(rows),
        "filenameMatches": [m.to_dict() for m in filename_matches],
        "headerMatches": [m.to_dict() for m in header_matches],
    }
