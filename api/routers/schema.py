"""설정 스키마 API -- Product/Subproduct/TacticType CRUD, 스냅샷 import/export, 버전."""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.schemas import (
    BenchmarkIn,
    BenchmarkOut,
    BenchmarkUpdate,
    LuminaExtractorIn,
    LuminaExtractorOut,
    LuminaExtractorUpdate,
    ProductDetailOut,
    ProductIn,
    ProductOut,
    ProductUpdate,
    SaveVersionIn,
    SchemaVersionOut,
    SectionOverrideIn,
    SnapshotImportIn,
    SubproductIn,
    SubproductOut,
    SubproductUpdate,
    TacticTypeIn,
    TacticTypeOut,
    TacticTypeUpdate,
)
from processor import schema_store
from processor.section_store import save_product_override, save_subproduct_override

logger = logging.getLogger("reportai.api")

router = APIRouter(prefix="/api/schema", tags=["schema"], redirect_slashes=False)

UTF8_BOM = "\ufeff"


def _csv_response(filename: str, body: str) -> StreamingResponse:
    return StreamingResponse(
        iter([UTF8_BOM + body]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _override_out(row) -> dict:
    return {
        "section_id": row.section_id,
        "is_enabled": row.is_enabled,
        "custom_instructions": row.custom_instructions,
        "custom_data_sources": row.custom_data_sources,
        "custom_min_length": row.custom_min_length,
        "custom_max_length": row.custom_max_length,
        "display_order": row.display_order,
    }


# ── Products ──


@router.get("/products", response_model=list[ProductOut])
async def list_products(db: AsyncSession = Depends(get_db)):
    return await schema_store.list_products(db)


@router.get("/products/{product_id}", response_model=ProductDetailOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """상품 전체 트리 (subproducts → tactic types, extractors, benchmarks)."""
    return await schema_store.get_product(db, product_id)


@router.post("/products", response_model=ProductDetailOut, status_code=201)
async def create_product(body: ProductIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.create_product(db, body)


@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(product_id: int, body: ProductUpdate, db: AsyncSession = Depends(get_db)):
    return await schema_store.update_product(db, product_id, body)


@router.delete("/products/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    await schema_store.delete_product(db, product_id)
    return {"deleted": True, "id": product_id}


@router.put("/products/{product_id}/sections/{section_id}")
async def override_product_section(
    product_id: int,
    section_id: int,
    body: SectionOverrideIn,
    db: AsyncSession = Depends(get_db),
):
    row = await save_product_override(db, product_id, section_id, body)
    return {"product_id": product_id, **_override_out(row)}


# ── Subproducts ──


@router.post("/subproducts", response_model=SubproductOut, status_code=201)
async def create_subproduct(body: SubproductIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.create_subproduct(db, body)


@router.put("/subproducts/{subproduct_id}", response_model=SubproductOut)
async def update_subproduct(subproduct_id: int, body: SubproductUpdate, db: AsyncSession = Depends(get_db)):
    return await schema_store.update_subproduct(db, subproduct_id, body)


@router.delete("/subproducts/{subproduct_id}")
async def delete_subproduct(subproduct_id: int, db: AsyncSession = Depends(get_db)):
    await schema_store.delete_subproduct(db, subproduct_id)
    return {"deleted": True, "id": subproduct_id}


@router.put("/subproducts/{subproduct_id}/sections/{section_id}")
async def override_subproduct_section(
    subproduct_id: int,
    section_id: int,
    body: SectionOverrideIn,
    db: AsyncSession = Depends(get_db),
):
    row = await save_subproduct_override(db, subproduct_id, section_id, body)
    return {"subproduct_id": subproduct_id, **_override_out(row)}


# ── Tactic types ──


@router.post("/tactic-types", response_model=TacticTypeOut, status_code=201)
async def create_tactic_type(body: TacticTypeIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.create_tactic_type(db, body)


@router.put("/tactic-types/{tactic_id}", response_model=TacticTypeOut)
async def update_tactic_type(tactic_id: int, body: TacticTypeUpdate, db: AsyncSession = Depends(get_db)):
    return await schema_store.update_tactic_type(db, tactic_id, body)


@router.delete("/tactic-types/{tactic_id}")
async def delete_tactic_type(tactic_id: int, db: AsyncSession = Depends(get_db)):
    await schema_store.delete_tactic_type(db, tactic_id)
    return {"deleted": True, "id": tactic_id}


# ── Lumina extractors / benchmarks ──


@router.post("/lumina-extractors", response_model=LuminaExtractorOut, status_code=201)
async def create_extractor(body: LuminaExtractorIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.create_extractor(db, body)


@router.put("/lumina-extractors/{extractor_id}", response_model=LuminaExtractorOut)
async def update_extractor(extractor_id: int, body: LuminaExtractorUpdate, db: AsyncSession = Depends(get_db)):
    return await schema_store.update_extractor(db, extractor_id, body)


@router.delete("/lumina-extractors/{extractor_id}")
async def delete_extractor(extractor_id: int, db: AsyncSession = Depends(get_db)):
    await schema_store.delete_extractor(db, extractor_id)
    return {"deleted": True, "id": extractor_id}


@router.post("/benchmarks", response_model=BenchmarkOut, status_code=201)
async def create_benchmark(body: BenchmarkIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.create_benchmark(db, body)


@router.put("/benchmarks/{benchmark_id}", response_model=BenchmarkOut)
async def update_benchmark(benchmark_id: int, body: BenchmarkUpdate, db: AsyncSession = Depends(get_db)):
    return await schema_store.update_benchmark(db, benchmark_id, body)


@router.delete("/benchmarks/{benchmark_id}")
async def delete_benchmark(benchmark_id: int, db: AsyncSession = Depends(get_db)):
    await schema_store.delete_benchmark(db, benchmark_id)
    return {"deleted": True, "id": benchmark_id}


# ── Snapshot / versions ──


@router.get("/export")
async def export_schema(
    format: Literal["json", "csv"] = Query(default="json"),
    db: AsyncSession = Depends(get_db),
):
    """json: 전체 스냅샷 문서, csv: Product/Subproduct/Tactic crosswalk."""
    if format == "csv":
        body = await schema_store.export_crosswalk_csv(db)
        return _csv_response(f"schema_crosswalk_{datetime.now():%Y%m%d}.csv", body)
    return await schema_store.export_snapshot(db)


@router.post("/import")
async def import_schema(body: SnapshotImportIn, db: AsyncSession = Depends(get_db)):
    counts = await schema_store.import_snapshot(db, body.document, clear_existing=body.clear_existing)
    return {"imported": counts, "clear_existing": body.clear_existing}


@router.get("/versions", response_model=list[SchemaVersionOut])
async def list_versions(
    limit: int = Query(default=schema_store.DEFAULT_VERSION_LIMIT, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await schema_store.list_versions(db, limit)


@router.post("/versions", response_model=SchemaVersionOut, status_code=201)
async def save_version(body: SaveVersionIn, db: AsyncSession = Depends(get_db)):
    return await schema_store.save_version(db, body.description, body.created_by)


@router.post("/versions/{version_id}/restore")
async def restore_version(version_id: int, db: AsyncSession = Depends(get_db)):
    counts = await schema_store.restore_version(db, version_id)
    logger.info("Schema version %d restored", version_id)
    return {"restored": counts, "version_id": version_id}
