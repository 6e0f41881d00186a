"""AI API -- 모델 목록, 직접 호출 테스트, 전역 설정, effective config, 테스트 시나리오."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.schemas import AISettingIn, AITestConfigIn, AITestConfigOut, AITestRequest, AITestRunIn
from processor import ai_test_runner
from processor.ai_models import call_model, get_model_config, list_models
from processor.ai_settings import ai_settings
from processor.config_resolver import resolve_effective_config

logger = logging.getLogger("reportai.api")

router = APIRouter(prefix="/api", tags=["ai"], redirect_slashes=False)


@router.post("/ai-test")
async def ai_test(body: AITestRequest):
    """Direct pass-through to the model adapter.

    Missing keys surface as 503 and upstream failures as 502; there is no
    mock fallback here.
    """
    spec = get_model_config(body.model)
    text = await call_model(spec.id, body.prompt, body.temperature, body.maxTokens)
    return {"success": True, "model": spec.id, "provider": spec.provider, "response": text}


@router.get("/models")
async def models():
    return list_models()


# ── Global settings ──


@router.get("/ai/settings")
async def read_settings(db: AsyncSession = Depends(get_db)):
    """{category: {key: {value, description, type}}}"""
    return await ai_settings.get_grouped(db)


@router.put("/ai/settings/{key}")
async def save_setting(key: str, body: AISettingIn, db: AsyncSession = Depends(get_db)):
    return await ai_settings.save(db, key, body)


@router.get("/ai/effective-config")
async def effective_config(
    product_id: int | None = Query(default=None),
    subproduct_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    return await resolve_effective_config(db, product_id, subproduct_id)


# ── Test configs ──


@router.get("/ai/test-configs", response_model=list[AITestConfigOut])
async def list_test_configs(
    product_id: int | None = None,
    subproduct_id: int | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await ai_test_runner.list_test_configs(db, product_id, subproduct_id)


@router.post("/ai/test-configs", response_model=AITestConfigOut, status_code=201)
async def create_test_config(body: AITestConfigIn, db: AsyncSession = Depends(get_db)):
    return await ai_test_runner.create_test_config(db, body)


@router.get("/ai/test-configs/{config_id}", response_model=AITestConfigOut)
async def get_test_config(config_id: int, db: AsyncSession = Depends(get_db)):
    return await ai_test_runner.get_test_config(db, config_id)


@router.delete("/ai/test-configs/{config_id}")
async def delete_test_config(config_id: int, db: AsyncSession = Depends(get_db)):
    await ai_test_runner.delete_test_config(db, config_id)
    return {"deleted": True, "id": config_id}


@router.post("/ai/test-configs/{config_id}/run")
async def run_test_config(config_id: int, body: AITestRunIn | None = None, db: AsyncSession = Depends(get_db)):
    dry_run = body.dry_run if body is not None else False
    result = await ai_test_runner.run_test_config(db, config_id, dry_run=dry_run)
    logger.info("AI test config %d run (dry_run=%s, error=%s)", config_id, dry_run, result["error"])
    return result
