"""Report section storage — DB-backed or JSON-file-backed, one validation contract.

Both stores return plain dicts shaped like database.schemas.ReportSectionOut.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    Product,
    ProductReportSection,
    ReportSection,
    Subproduct,
    SubproductReportSection,
)
from database.schemas import (
    ReportSectionIn,
    ReportSectionOut,
    ReportSectionUpdate,
    SectionOverrideIn,
)
from processor.config import get_settings
from processor.errors import NotFoundError, PersistenceError, ValidationError
from processor.persistence import write_scope

DEFAULT_SECTIONS: list[dict] = [
    {
        "section_key": "executive_summary",
        "section_name": "Executive Summary",
        "display_order": 1,
        "is_enabled": True,
        "is_required": True,
        "default_instructions": (
            "Provide a concise executive summary highlighting key performance metrics "
            "and overall campaign effectiveness."
        ),
        "data_sources": ["campaign", "metrics"],
        "output_format": "paragraphs",
    },
    {
        "section_key": "performance_analysis",
        "section_name": "Performance Analysis",
        "display_order": 2,
        "is_enabled": True,
        "is_required": False,
        "default_instructions": (
            "Analyze key performance indicators, conversion rates, and effectiveness metrics in detail."
        ),
        "data_sources": ["metrics", "tactics"],
        "output_format": "paragraphs",
    },
    {
        "section_key": "trends_insights",
        "section_name": "Trends & Insights",
        "display_order": 3,
        "is_enabled": True,
        "is_required": False,
        "default_instructions": "Identify trends, patterns, and actionable insights from the campaign data.",
        "data_sources": ["metrics", "geo"],
        "output_format": "bullets",
    },
    {
        "section_key": "recommendations",
        "section_name": "Recommendations",
        "display_order": 4,
        "is_enabled": True,
        "is_required": False,
        "default_instructions": (
            "Provide specific, actionable recommendations for improving campaign performance."
        ),
        "data_sources": ["metrics", "benchmarks"],
        "output_format": "bullets",
    },
]


def _validate_new(payload: dict | ReportSectionIn) -> ReportSectionIn:
    if isinstance(payload, ReportSectionIn):
        return payload
    try:
        return ReportSectionIn.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "section"
        raise ValidationError(f"Invalid {field}: {first.get('msg')}") from exc


def _section_sort_key(section: dict):
    return section["display_order"], section["id"]


class BaseSectionStore:
    """Interface shared by the DB and file stores."""

    async def list_sections(self) -> list[dict]:
        raise NotImplementedError

    async def get_section(self, section_id: int) -> dict:
        raise NotImplementedError

    async def create_section(self, data: ReportSectionIn | dict) -> dict:
        raise NotImplementedError

    async def update_section(self, section_id: int, data: ReportSectionUpdate) -> dict:
        raise NotImplementedError

    async def delete_section(self, section_id: int):
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Database store
# ---------------------------------------------------------------------------
class DatabaseSectionStore(BaseSectionStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _out(row: ReportSection) -> dict:
        return ReportSectionOut.model_validate(row).model_dump()

    async def _key_taken(self, key: str, exclude_id: int | None = None) -> bool:
        stmt = select(ReportSection.id).where(ReportSection.section_key == key)
        if exclude_id is not None:
            stmt = stmt.where(ReportSection.id != exclude_id)
        return (await self.session.execute(stmt)).first() is not None

    async def _require(self, section_id: int) -> ReportSection:
        row = await self.session.get(ReportSection, section_id)
        if row is None:
            raise NotFoundError(f"Section {section_id} not found")
        return row

    async def list_sections(self) -> list[dict]:
        result = await self.session.execute(
            select(ReportSection).order_by(ReportSection.display_order, ReportSection.id)
        )
        return [self._out(row) for row in result.scalars().all()]

    async def get_section(self, section_id: int) -> dict:
        return self._out(await self._require(section_id))

    async def create_section(self, data: ReportSectionIn | dict) -> dict:
        data = _validate_new(data)
        async with write_scope(self.session, "create report section"):
            if await self._key_taken(data.section_key):
                raise ValidationError(f"Section key '{data.section_key}' already exists")
            row = ReportSection(**data.model_dump())
            self.session.add(row)
            await self.session.flush()
        logger.info("[sections] created {} (id={})", row.section_key, row.id)
        return self._out(row)

    async def update_section(self, section_id: int, data: ReportSectionUpdate) -> dict:
        async with write_scope(self.session, "update report section"):
            row = await self._require(section_id)
            merged = {**self._out(row), **data.model_dump(exclude_unset=True)}
            merged.pop("id", None)
            checked = _validate_new(merged)
            if checked.section_key != row.section_key and await self._key_taken(checked.section_key, section_id):
                raise ValidationError(f"Section key '{checked.section_key}' already exists")
            for key, value in checked.model_dump().items():
                setattr(row, key, value)
        return self._out(row)

    async def delete_section(self, section_id: int):
        async with write_scope(self.session, "delete report section"):
            row = await self._require(section_id)
            await self.session.delete(row)
        logger.info("[sections] deleted id={}", section_id)


# ---------------------------------------------------------------------------
# JSON file store (no database configured)
# ---------------------------------------------------------------------------
class SectionFileStore(BaseSectionStore):
    """Sections persisted as a JSON array; seeded with DEFAULT_SECTIONS on first read."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> list[dict]:
        if not self.path.exists():
            return [
                {"id": i, **_validate_new(s).model_dump()}
                for i, s in enumerate(DEFAULT_SECTIONS, start=1)
            ]
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as exc:
            logger.error("[sections] {} is not valid JSON: {}", self.path, exc)
            raise PersistenceError(f"Sections file {self.path} is corrupt") from exc
        sections = []
        for item in raw:
            section_id = int(item["id"])
            body = {k: v for k, v in item.items() if k != "id"}
            sections.append({"id": section_id, **_validate_new(body).model_dump()})
        return sections

    def _write(self, sections: list[dict]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(sections, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    @staticmethod
    def _find(sections: list[dict], section_id: int) -> int:
        for idx, section in enumerate(sections):
            if section["id"] == section_id:
                return idx
        raise NotFoundError(f"Section {section_id} not found")

    async def list_sections(self) -> list[dict]:
        return sorted(self._read(), key=_section_sort_key)

    async def get_section(self, section_id: int) -> dict:
        sections = self._read()
        return sections[self._find(sections, section_id)]

    async def create_section(self, data: ReportSectionIn | dict) -> dict:
        data = _validate_new(data)
        sections = self._read()
        if any(s["section_key"] == data.section_key for s in sections):
            raise ValidationError(f"Section key '{data.section_key}' already exists")
        section = {"id": max((s["id"] for s in sections), default=0) + 1, **data.model_dump()}
        sections.append(section)
        self._write(sections)
        return section

    async def update_section(self, section_id: int, data: ReportSectionUpdate) -> dict:
        sections = self._read()
        idx = self._find(sections, section_id)
        merged = {**sections[idx], **data.model_dump(exclude_unset=True)}
        merged.pop("id", None)
        checked = _validate_new(merged)
        if any(s["section_key"] == checked.section_key and s["id"] != section_id for s in sections):
            raise ValidationError(f"Section key '{checked.section_key}' already exists")
        sections[idx] = {"id": section_id, **checked.model_dump()}
        self._write(sections)
        return sections[idx]

    async def delete_section(self, section_id: int):
        sections = self._read()
        del sections[self._find(sections, section_id)]
        self._write(sections)


def get_section_store(session: AsyncSession | None) -> BaseSectionStore:
    """Pick the store from SECTIONS_BACKEND; the file store is used when no session exists."""
    settings = get_settings()
    if settings.sections_backend == "file" or session is None:
        return SectionFileStore(settings.sections_file)
    return DatabaseSectionStore(session)


# ---------------------------------------------------------------------------
# Product / subproduct overrides
# ---------------------------------------------------------------------------
async def _save_override(session: AsyncSession, model, parent_field: str, parent_id: int,
                         section_id: int, data: SectionOverrideIn):
    async with write_scope(session, "save section override"):
        if await session.get(ReportSection, section_id) is None:
            raise NotFoundError(f"Section {section_id} not found")
        row = (await session.execute(
            select(model).where(
                getattr(model, parent_field) == parent_id,
                model.section_id == section_id,
            )
        )).scalar_one_or_none()
        if row is None:
            row = model(**{parent_field: parent_id, "section_id": section_id})
            session.add(row)
        for key, value in data.model_dump().items():
            setattr(row, key, value)
        await session.flush()
    return row


async def save_product_override(
    session: AsyncSession, product_id: int, section_id: int, data: SectionOverrideIn,
) -> ProductReportSection:
    """Insert or update the single override row for (product, section)."""
    if await session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    return await _save_override(session, ProductReportSection, "product_id", product_id, section_id, data)


async def save_subproduct_override(
    session: AsyncSession, subproduct_id: int, section_id: int, data: SectionOverrideIn,
) -> SubproductReportSection:
    if await session.get(Subproduct, subproduct_id) is None:
        raise NotFoundError(f"Subproduct {subproduct_id} not found")
    return await _save_override(
        session, SubproductReportSection, "subproduct_id", subproduct_id, section_id, data,
    )
