"""리포트 섹션 CRUD API (SECTIONS_BACKEND=file 이면 JSON 파일 저장소)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from database.schemas import ReportSectionIn, ReportSectionOut, ReportSectionUpdate
from processor.section_store import get_section_store

router = APIRouter(prefix="/api/sections", tags=["sections"], redirect_slashes=False)


@router.get("", response_model=list[ReportSectionOut])
async def list_sections(db: AsyncSession = Depends(get_db)):
    return await get_section_store(db).list_sections()


@router.post("", response_model=ReportSectionOut, status_code=201)
async def create_section(body: ReportSectionIn, db: AsyncSession = Depends(get_db)):
    return await get_section_store(db).create_section(body)


@router.put("/{section_id}", response_model=ReportSectionOut)
async def update_section(section_id: int, body: ReportSectionUpdate, db: AsyncSession = Depends(get_db)):
    return await get_section_store(db).update_section(section_id, body)


@router.delete("/{section_id}")
async def delete_section(section_id: int, db: AsyncSession = Depends(get_db)):
    await get_section_store(db).delete_section(section_id)
    return {"deleted": True, "id": section_id}
