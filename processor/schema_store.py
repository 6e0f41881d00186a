"""Configuration store — Product → Subproduct → TacticType CRUD, snapshot import/export, versions.

Every write runs inside processor.persistence.write_scope, so a failed nested
create or a failed import leaves the store exactly as it was.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timezone

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import (
    Benchmark,
    LuminaExtractor,
    Product,
    SchemaVersion,
    Subproduct,
    TacticType,
)
from database.schemas import (
    BenchmarkBase,
    BenchmarkIn,
    BenchmarkUpdate,
    LuminaExtractorBase,
    LuminaExtractorIn,
    LuminaExtractorUpdate,
    ProductIn,
    ProductUpdate,
    SchemaSnapshot,
    SubproductIn,
    SubproductNested,
    SubproductUpdate,
    TacticTypeBase,
    TacticTypeIn,
    TacticTypeUpdate,
)
from processor.errors import NotFoundError, ValidationError
from processor.persistence import write_scope

SNAPSHOT_VERSION = "2.0"
DEFAULT_VERSION_LIMIT = 10

CROSSWALK_COLUMNS = [
    "Product", "Subproduct", "Tactic Type", "Data Value", "Filename Stem", "Expected Files",
]

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str) -> str:
    """'Meta Link Click' → 'meta-link-click'."""
    return _SLUG_RE.sub("-", (name or "").lower()).strip("-")


def _changes(data, required: tuple[str, ...] = ()) -> dict:
    """Fields the caller actually sent; explicit None is dropped for NOT NULL columns."""
    values = data.model_dump(exclude_unset=True)
    return {k: v for k, v in values.items() if not (k in required and v is None)}


def _product_tree_query():
    return select(Product).options(
        selectinload(Product.subproducts).selectinload(Subproduct.tactic_types),
        selectinload(Product.lumina_extractors),
        selectinload(Product.benchmarks),
    )


# ---------------------------------------------------------------------------
# Uniqueness checks
# ---------------------------------------------------------------------------
async def _ensure_product_name_free(session: AsyncSession, name: str, exclude_id: int | None = None):
    stmt = select(Product.id).where(Product.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise ValidationError(f"Product name '{name}' already exists")


async def _ensure_subproduct_slug_free(
    session: AsyncSession, product_id: int, slug: str, exclude_id: int | None = None,
):
    stmt = select(Subproduct.id).where(Subproduct.product_id == product_id, Subproduct.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Subproduct.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise ValidationError(f"Subproduct slug '{slug}' already exists for product {product_id}")


async def _ensure_tactic_slug_free(
    session: AsyncSession, subproduct_id: int, slug: str, exclude_id: int | None = None,
):
    stmt = select(TacticType.id).where(TacticType.subproduct_id == subproduct_id, TacticType.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(TacticType.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise ValidationError(f"Tactic type slug '{slug}' already exists for subproduct {subproduct_id}")


async def _ensure_metric_free(
    session: AsyncSession, product_id: int, metric_name: str, exclude_id: int | None = None,
):
    stmt = select(Benchmark.id).where(Benchmark.product_id == product_id, Benchmark.metric_name == metric_name)
    if exclude_id is not None:
        stmt = stmt.where(Benchmark.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise ValidationError(f"Benchmark '{metric_name}' already exists for product {product_id}")


# ---------------------------------------------------------------------------
# Flush-only builders (caller owns the transaction)
# ---------------------------------------------------------------------------
async def _add_tactic_type(session: AsyncSession, subproduct_id: int, data: TacticTypeBase) -> TacticType:
    slug = data.slug or generate_slug(data.name)
    await _ensure_tactic_slug_free(session, subproduct_id, slug)
    tactic = TacticType(
        subproduct_id=subproduct_id,
        name=data.name,
        slug=slug,
        data_value=data.data_value,
        filename_stem=data.filename_stem,
        expected_filenames=list(data.expected_filenames),
        aliases=list(data.aliases),
        headers=list(data.headers),
    )
    session.add(tactic)
    await session.flush()
    return tactic


async def _add_subproduct(session: AsyncSession, product_id: int, data: SubproductNested) -> Subproduct:
    slug = data.slug or generate_slug(data.name)
    await _ensure_subproduct_slug_free(session, product_id, slug)
    sub = Subproduct(
        product_id=product_id,
        name=data.name,
        slug=slug,
        platforms=list(data.platforms),
        notes=data.notes,
        ai_guidelines=data.ai_guidelines,
        inherit_from_product=data.inherit_from_product,
    )
    session.add(sub)
    await session.flush()
    for tt in data.tactic_types:
        await _add_tactic_type(session, sub.id, tt)
    return sub


async def _add_extractor(session: AsyncSession, product_id: int, data: LuminaExtractorBase) -> LuminaExtractor:
    extractor = LuminaExtractor(
        product_id=product_id,
        name=data.name,
        path=data.path,
        when_conditions=data.when_conditions,
        aggregate_type=data.aggregate_type,
    )
    session.add(extractor)
    await session.flush()
    return extractor


async def _add_benchmark(session: AsyncSession, product_id: int, data: BenchmarkBase) -> Benchmark:
    await _ensure_metric_free(session, product_id, data.metric_name)
    benchmark = Benchmark(
        product_id=product_id,
        metric_name=data.metric_name,
        goal_value=data.goal_value,
        warning_threshold=data.warning_threshold,
        unit=data.unit,
        direction=data.direction,
    )
    session.add(benchmark)
    await session.flush()
    return benchmark


async def _add_product(session: AsyncSession, data: ProductIn) -> Product:
    await _ensure_product_name_free(session, data.name)
    product = Product(
        name=data.name,
        slug=data.slug or generate_slug(data.name),
        platforms=list(data.platforms),
        notes=data.notes,
        ai_guidelines=data.ai_guidelines,
        ai_prompt=data.ai_prompt,
    )
    session.add(product)
    await session.flush()
    for sub in data.subproducts:
        await _add_subproduct(session, product.id, sub)
    for ext in data.lumina_extractors:
        await _add_extractor(session, product.id, ext)
    for bm in data.benchmarks:
        await _add_benchmark(session, product.id, bm)
    return product


async def _require(session: AsyncSession, model, obj_id: int, label: str):
    obj = await session.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label} {obj_id} not found")
    return obj


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------
async def list_products(session: AsyncSession) -> list[Product]:
    result = await session.execute(
        _product_tree_query().order_by(Product.name).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_product(session: AsyncSession, product_id: int) -> Product:
    result = await session.execute(
        _product_tree_query()
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


async def create_product(session: AsyncSession, data: ProductIn) -> Product:
    """Create a product with its nested subproducts/tactic types/extractors/benchmarks."""
    async with write_scope(session, "create product"):
        product = await _add_product(session, data)
        product_id = product.id
    logger.info("[schema] product created: {} (id={})", data.name, product_id)
    return await get_product(session, product_id)


async def update_product(session: AsyncSession, product_id: int, data: ProductUpdate) -> Product:
    async with write_scope(session, "update product"):
        product = await _require(session, Product, product_id, "Product")
        changes = _changes(data, required=("name", "slug"))
        if "name" in changes and changes["name"] != product.name:
            await _ensure_product_name_free(session, changes["name"], exclude_id=product_id)
        for key, value in changes.items():
            setattr(product, key, value)
    return await get_product(session, product_id)


async def delete_product(session: AsyncSession, product_id: int):
    """Delete a product; subproducts, tactic types, extractors, benchmarks and overrides cascade."""
    async with write_scope(session, "delete product"):
        product = await _require(session, Product, product_id, "Product")
        await session.delete(product)
    logger.info("[schema] product deleted: id={}", product_id)


# ---------------------------------------------------------------------------
# Subproducts
# ---------------------------------------------------------------------------
async def get_subproduct(session: AsyncSession, subproduct_id: int) -> Subproduct:
    result = await session.execute(
        select(Subproduct)
        .options(selectinload(Subproduct.tactic_types))
        .where(Subproduct.id == subproduct_id)
        .execution_options(populate_existing=True)
    )
    sub = result.scalar_one_or_none()
    if sub is None:
        raise NotFoundError(f"Subproduct {subproduct_id} not found")
    return sub


async def create_subproduct(session: AsyncSession, data: SubproductIn) -> Subproduct:
    async with write_scope(session, "create subproduct"):
        await _require(session, Product, data.product_id, "Product")
        sub = await _add_subproduct(session, data.product_id, data)
        sub_id = sub.id
    return await get_subproduct(session, sub_id)


async def update_subproduct(session: AsyncSession, subproduct_id: int, data: SubproductUpdate) -> Subproduct:
    async with write_scope(session, "update subproduct"):
        sub = await _require(session, Subproduct, subproduct_id, "Subproduct")
        changes = _changes(data, required=("name", "slug", "inherit_from_product"))
        if "slug" in changes and changes["slug"] != sub.slug:
            await _ensure_subproduct_slug_free(session, sub.product_id, changes["slug"], exclude_id=sub.id)
        for key, value in changes.items():
            setattr(sub, key, value)
    return await get_subproduct(session, subproduct_id)


async def delete_subproduct(session: AsyncSession, subproduct_id: int):
    async with write_scope(session, "delete subproduct"):
        sub = await _require(session, Subproduct, subproduct_id, "Subproduct")
        await session.delete(sub)


# ---------------------------------------------------------------------------
# Tactic types
# ---------------------------------------------------------------------------
async def create_tactic_type(session: AsyncSession, data: TacticTypeIn) -> TacticType:
    async with write_scope(session, "create tactic type"):
        await _require(session, Subproduct, data.subproduct_id, "Subproduct")
        tactic = await _add_tactic_type(session, data.subproduct_id, data)
    return tactic


async def update_tactic_type(session: AsyncSession, tactic_id: int, data: TacticTypeUpdate) -> TacticType:
    async with write_scope(session, "update tactic type"):
        tactic = await _require(session, TacticType, tactic_id, "Tactic type")
        changes = _changes(data, required=("name", "slug"))
        if "slug" in changes and changes["slug"] != tactic.slug:
            await _ensure_tactic_slug_free(session, tactic.subproduct_id, changes["slug"], exclude_id=tactic.id)
        for key, value in changes.items():
            setattr(tactic, key, value)
    return tactic


async def delete_tactic_type(session: AsyncSession, tactic_id: int):
    async with write_scope(session, "delete tactic type"):
        tactic = await _require(session, TacticType, tactic_id, "Tactic type")
        await session.delete(tactic)


# ---------------------------------------------------------------------------
# Lumina extractors / benchmarks
# ---------------------------------------------------------------------------
async def create_extractor(session: AsyncSession, data: LuminaExtractorIn) -> LuminaExtractor:
    async with write_scope(session, "create lumina extractor"):
        await _require(session, Product, data.product_id, "Product")
        extractor = await _add_extractor(session, data.product_id, data)
    return extractor


async def update_extractor(session: AsyncSession, extractor_id: int, data: LuminaExtractorUpdate) -> LuminaExtractor:
    async with write_scope(session, "update lumina extractor"):
        extractor = await _require(session, LuminaExtractor, extractor_id, "Lumina extractor")
        for key, value in _changes(data, required=("name", "path")).items():
            setattr(extractor, key, value)
    return extractor


async def delete_extractor(session: AsyncSession, extractor_id: int):
    async with write_scope(session, "delete lumina extractor"):
        extractor = await _require(session, LuminaExtractor, extractor_id, "Lumina extractor")
        await session.delete(extractor)


async def create_benchmark(session: AsyncSession, data: BenchmarkIn) -> Benchmark:
    async with write_scope(session, "create benchmark"):
        await _require(session, Product, data.product_id, "Product")
        benchmark = await _add_benchmark(session, data.product_id, data)
    return benchmark


async def update_benchmark(session: AsyncSession, benchmark_id: int, data: BenchmarkUpdate) -> Benchmark:
    async with write_scope(session, "update benchmark"):
        benchmark = await _require(session, Benchmark, benchmark_id, "Benchmark")
        changes = _changes(data, required=("metric_name",))
        if "metric_name" in changes and changes["metric_name"] != benchmark.metric_name:
            await _ensure_metric_free(
                session, benchmark.product_id, changes["metric_name"], exclude_id=benchmark.id,
            )
        for key, value in changes.items():
            setattr(benchmark, key, value)
    return benchmark


async def delete_benchmark(session: AsyncSession, benchmark_id: int):
    async with write_scope(session, "delete benchmark"):
        benchmark = await _require(session, Benchmark, benchmark_id, "Benchmark")
        await session.delete(benchmark)


# ---------------------------------------------------------------------------
# Snapshot export / import
# ---------------------------------------------------------------------------
def _tactic_doc(tt: TacticType) -> dict:
    return {
        "name": tt.name,
        "slug": tt.slug,
        "data_value": tt.data_value,
        "filename_stem": tt.filename_stem,
        "expected_filenames": list(tt.expected_filenames or []),
        "aliases": list(tt.aliases or []),
        "headers": list(tt.headers or []),
    }


def _product_doc(product: Product) -> dict:
    subproducts = sorted(product.subproducts, key=lambda s: (s.name, s.slug))
    extractors = sorted(product.lumina_extractors, key=lambda e: (e.name, e.path))
    benchmarks = sorted(product.benchmarks, key=lambda b: b.metric_name)
    return {
        "name": product.name,
        "slug": product.slug,
        "platforms": list(product.platforms or []),
        "notes": product.notes,
        "ai_guidelines": product.ai_guidelines,
        "ai_prompt": product.ai_prompt,
        "subproducts": [
            {
                "name": sub.name,
                "slug": sub.slug,
                "platforms": list(sub.platforms or []),
                "notes": sub.notes,
                "ai_guidelines": sub.ai_guidelines,
                "inherit_from_product": bool(sub.inherit_from_product),
                "tactic_types": [
                    _tactic_doc(tt) for tt in sorted(sub.tactic_types, key=lambda t: (t.name, t.slug))
                ],
            }
            for sub in subproducts
        ],
        "lumina_extractors": [
            {
                "name": ext.name,
                "path": ext.path,
                "when": ext.when_conditions,
                "aggregate": ext.aggregate_type,
            }
            for ext in extractors
        ],
        "benchmarks": [
            {
                "metric": bm.metric_name,
                "goal": bm.goal_value,
                "warning": bm.warning_threshold,
                "unit": bm.unit,
                "direction": bm.direction,
            }
            for bm in benchmarks
        ],
    }


async def export_snapshot(session: AsyncSession) -> dict:
    """Serialize the whole taxonomy into one versioned JSON document."""
    products = await list_products(session)
    return {
        "version": SNAPSHOT_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "products": [_product_doc(p) for p in products],
    }


async def export_crosswalk_csv(session: AsyncSession) -> str:
    """Flat Product/Subproduct/Tactic crosswalk for spreadsheet review."""
    snapshot = await export_snapshot(session)
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CROSSWALK_COLUMNS)
    for product in snapshot["products"]:
        for sub in product["subproducts"]:
            for tt in sub["tactic_types"]:
                writer.writerow([
                    product["name"],
                    sub["name"],
                    tt["name"],
                    tt["data_value"] or "",
                    tt["filename_stem"] or "",
                    "; ".join(tt["expected_filenames"]),
                ])
    return buf.getvalue()


def parse_snapshot(document: dict) -> SchemaSnapshot:
    try:
        return SchemaSnapshot.model_validate(document)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid schema document at {loc}: {first.get('msg')}") from exc


async def _import_into(session: AsyncSession, snapshot: SchemaSnapshot, clear_existing: bool) -> dict:
    if clear_existing:
        await session.execute(delete(Product))
        session.expunge_all()

    counts = {"products": 0, "subproducts": 0, "tactic_types": 0}
    for product in snapshot.products:
        await _add_product(session, product)
        counts["products"] += 1
        counts["subproducts"] += len(product.subproducts)
        counts["tactic_types"] += sum(len(s.tactic_types) for s in product.subproducts)
    return counts


async def import_snapshot(session: AsyncSession, document: dict, clear_existing: bool = False) -> dict:
    """Rebuild the taxonomy from an exported document, all-or-nothing."""
    snapshot = parse_snapshot(document)
    async with write_scope(session, "import schema"):
        counts = await _import_into(session, snapshot, clear_existing)
    logger.info(
        "[schema] imported {} products / {} subproducts / {} tactic types (clear_existing={})",
        counts["products"], counts["subproducts"], counts["tactic_types"], clear_existing,
    )
    return counts


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------
async def save_version(
    session: AsyncSession,
    description: str | None = None,
    created_by: str | None = None,
) -> SchemaVersion:
    """Snapshot the current taxonomy as the single active version."""
    async with write_scope(session, "save schema version"):
        snapshot = await export_snapshot(session)
        await session.execute(
            update(SchemaVersion).where(SchemaVersion.is_active.is_(True)).values(is_active=False)
        )
        now = datetime.now(timezone.utc)
        version = SchemaVersion(
            version_number=now.strftime("%Y.%m.%d.%H%M%S"),
            description=description or "Schema snapshot",
            schema_data=snapshot,
            is_active=True,
            created_by=created_by or "system",
            created_at=now.replace(tzinfo=None),
        )
        session.add(version)
        await session.flush()
    logger.info("[schema] version saved: {} (id={})", version.version_number, version.id)
    return version


async def list_versions(session: AsyncSession, limit: int = DEFAULT_VERSION_LIMIT) -> list[SchemaVersion]:
    result = await session.execute(
        select(SchemaVersion)
        .order_by(SchemaVersion.created_at.desc(), SchemaVersion.id.desc())
        .limit(max(1, limit))
    )
    return list(result.scalars().all())


async def count_active_versions(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count(SchemaVersion.id)).where(SchemaVersion.is_active.is_(True))
    )
    return int(result.scalar_one())


async def restore_version(session: AsyncSession, version_id: int) -> dict:
    """Replace the taxonomy with a stored snapshot and mark that version active."""
    version = await session.get(SchemaVersion, version_id)
    if version is None:
        raise NotFoundError(f"Schema version {version_id} not found")
    snapshot = parse_snapshot(version.schema_data or {})

    async with write_scope(session, "restore schema version"):
        counts = await _import_into(session, snapshot, clear_existing=True)
        await session.execute(
            update(SchemaVersion).where(SchemaVersion.is_active.is_(True)).values(is_active=False)
        )
        await session.execute(
            update(SchemaVersion).where(SchemaVersion.id == version_id).values(is_active=True)
        )
    logger.info("[schema] restored version id={} ({} products)", version_id, counts["products"])
    return counts


async def load_schema_tree(session: AsyncSession) -> list[dict]:
    """Exported product tree, the input shape TacticMatcher.load_tables expects."""
    return (await export_snapshot(session))["products"]
