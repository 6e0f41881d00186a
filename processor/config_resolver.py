"""Effective configuration — Global → Product → Subproduct merge (read-only)."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    Product,
    ProductReportSection,
    ReportSection,
    Subproduct,
    SubproductReportSection,
)
from processor.ai_settings import ai_settings
from processor.errors import NotFoundError, ValidationError

# override column → effective section field
_OVERRIDE_FIELDS = {
    "is_enabled": "is_enabled",
    "custom_instructions": "instructions",
    "custom_data_sources": "data_sources",
    "custom_min_length": "min_length",
    "custom_max_length": "max_length",
    "display_order": "display_order",
}


def _global_section(row: ReportSection) -> dict:
    return {
        "id": row.id,
        "section_key": row.section_key,
        "section_name": row.section_name,
        "display_order": row.display_order,
        "global_display_order": row.display_order,
        "is_enabled": bool(row.is_enabled),
        "is_required": bool(row.is_required),
        "instructions": row.default_instructions,
        "default_instructions": row.default_instructions,
        "data_sources": list(row.data_sources or []),
        "output_format": row.output_format,
        "min_length": row.min_length,
        "max_length": row.max_length,
        "override_source": "global",
    }


def _overlay(section: dict, override, scope: str) -> dict:
    """COALESCE(override, current) per field; the override never replaces the whole record."""
    if override is None:
        return section
    merged = dict(section)
    touched = False
    for column, field in _OVERRIDE_FIELDS.items():
        value = getattr(override, column)
        if value is not None:
            merged[field] = list(value) if field == "data_sources" else value
            touched = True
    if touched:
        merged["override_source"] = scope
    return merged


def _ordered(sections: list[dict]) -> list[dict]:
    return sorted(sections, key=lambda s: (s["display_order"], s["global_display_order"], s["id"]))


def merge_guidelines(product_guidelines: str | None, own_guidelines: str | None) -> str | None:
    """Product guidelines first, blank-line separated; empty own guidelines inherit as-is."""
    if not own_guidelines:
        return product_guidelines
    if not product_guidelines:
        return own_guidelines
    return f"{product_guidelines}\n\n{own_guidelines}"


def _product_config(product: Product) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "platforms": list(product.platforms or []),
        "notes": product.notes,
        "ai_guidelines": product.ai_guidelines,
        "ai_prompt": product.ai_prompt,
    }


def _subproduct_config(sub: Subproduct, product: Product) -> dict:
    own_platforms = list(sub.platforms or [])
    config = {
        "id": sub.id,
        "product_id": sub.product_id,
        "name": sub.name,
        "slug": sub.slug,
        "platforms": own_platforms,
        "notes": sub.notes,
        "ai_guidelines": sub.ai_guidelines,
        "inherit_from_product": bool(sub.inherit_from_product),
    }
    if sub.inherit_from_product:
        config["ai_guidelines"] = merge_guidelines(product.ai_guidelines, sub.ai_guidelines)
        if not own_platforms:
            config["platforms"] = list(product.platforms or [])
    return config


async def _overrides(session: AsyncSession, model, parent_field: str, parent_id: int) -> dict[int, object]:
    result = await session.execute(select(model).where(getattr(model, parent_field) == parent_id))
    return {row.section_id: row for row in result.scalars().all()}


async def resolve_effective_config(
    session: AsyncSession,
    product_id: int | None = None,
    subproduct_id: int | None = None,
) -> dict:
    """Merge global settings/sections with product and subproduct scope.

    Returns {aiSettings, sections, productConfig, subproductConfig}. Sections
    are ordered by effective display_order and each field resolves to the most
    specific non-null value. A subproduct without an explicit product resolves
    against its parent product.
    """
    sub = None
    if subproduct_id is not None:
        sub = await session.get(Subproduct, subproduct_id)
        if sub is None:
            raise NotFoundError(f"Subproduct {subproduct_id} not found")
        if product_id is None:
            product_id = sub.product_id
        elif product_id != sub.product_id:
            raise ValidationError(f"Subproduct {subproduct_id} does not belong to product {product_id}")

    product = None
    if product_id is not None:
        product = await session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

    rows = (await session.execute(
        select(ReportSection).order_by(ReportSection.display_order, ReportSection.id)
    )).scalars().all()
    sections = [_global_section(row) for row in rows]

    if product is not None:
        product_overrides = await _overrides(session, ProductReportSection, "product_id", product.id)
        sections = [_overlay(s, product_overrides.get(s["id"]), "product") for s in sections]
    if sub is not None:
        sub_overrides = await _overrides(session, SubproductReportSection, "subproduct_id", sub.id)
        sections = [_overlay(s, sub_overrides.get(s["id"]), "subproduct") for s in sections]

    return {
        "aiSettings": await ai_settings.get_grouped(session),
        "sections": _ordered(sections),
        "productConfig": _product_config(product) if product is not None else None,
        "subproductConfig": _subproduct_config(sub, product) if sub is not None else None,
    }


def enabled_sections(effective_config: dict | None) -> list[dict]:
    if not effective_config:
        return []
    return [s for s in effective_config.get("sections", []) if s.get("is_enabled")]
