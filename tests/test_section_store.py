"""리포트 섹션 저장소 테스트 — DB/파일 저장소가 같은 검증 규칙을 지키는지."""

from pathlib import Path
import json
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import pytest_asyncio

from pydantic import ValidationError as PydanticValidationError

from database.schemas import ReportSectionIn, ReportSectionUpdate, SectionOverrideIn
from processor.errors import NotFoundError, PersistenceError, ValidationError
from processor.section_store import (
    DEFAULT_SECTIONS,
    DatabaseSectionStore,
    SectionFileStore,
    get_section_store,
)


@pytest.fixture(params=["database", "file"])
def store_kind(request):
    return request.param


@pytest_asyncio.fixture
async def make_store(store_kind, session, tmp_path):
    def _make():
        if store_kind == "database":
            return DatabaseSectionStore(session)
        return SectionFileStore(tmp_path / "sections.json")
    return _make


@pytest.mark.asyncio
async def test_defaults_present(make_store):
    sections = await make_store().list_sections()
    assert [s["section_key"] for s in sections] == [s["section_key"] for s in DEFAULT_SECTIONS]
    assert sections[0]["is_required"] is True


@pytest.mark.asyncio
async def test_create_applies_defaults_and_orders(make_store):
    store = make_store()
    created = await store.create_section({"section_key": "geo_breakdown", "section_name": "  Geo  "})
    assert created["section_name"] == "Geo"
    assert created["display_order"] == 100
    assert created["is_enabled"] is True
    assert created["is_required"] is False
    sections = await store.list_sections()
    assert sections[-1]["section_key"] == "geo_breakdown"


@pytest.mark.asyncio
async def test_create_rejects_bad_key_and_duplicates(make_store):
    store = make_store()
    with pytest.raises(ValidationError):
        await store.create_section({"section_key": "Geo Breakdown", "section_name": "Geo"})
    with pytest.raises(ValidationError):
        await store.create_section({"section_key": "geo", "section_name": ""})
    with pytest.raises(ValidationError, match="already exists"):
        await store.create_section({"section_key": "executive_summary", "section_name": "Again"})


@pytest.mark.asyncio
async def test_display_order_clamped(make_store):
    created = await make_store().create_section(
        ReportSectionIn(section_key="first_thing", section_name="First", display_order=-5),
    )
    assert created["display_order"] == 1


@pytest.mark.asyncio
async def test_update_and_key_collision(make_store):
    store = make_store()
    sections = await store.list_sections()
    target = sections[1]["id"]
    updated = await store.update_section(target, ReportSectionUpdate(default_instructions="Go deeper"))
    assert updated["default_instructions"] == "Go deeper"
    assert updated["section_key"] == "performance_analysis"
    with pytest.raises(ValidationError):
        await store.update_section(target, ReportSectionUpdate(section_key="executive_summary"))


@pytest.mark.asyncio
async def test_delete_and_missing(make_store):
    store = make_store()
    sections = await store.list_sections()
    await store.delete_section(sections[-1]["id"])
    assert len(await store.list_sections()) == len(DEFAULT_SECTIONS) - 1
    with pytest.raises(NotFoundError):
        await store.delete_section(9999)
    with pytest.raises(NotFoundError):
        await store.get_section(9999)


@pytest.mark.asyncio
async def test_file_store_persists_json(tmp_path):
    path = tmp_path / "nested" / "sections.json"
    store = SectionFileStore(path)
    await store.create_section({"section_key": "appendix", "section_name": "Appendix"})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data[-1]["section_key"] == "appendix"
    assert data[-1]["id"] == len(DEFAULT_SECTIONS) + 1

    reopened = SectionFileStore(path)
    assert (await reopened.list_sections())[-1]["section_key"] == "appendix"


@pytest.mark.asyncio
async def test_get_section_store_backend(monkeypatch, session):
    assert isinstance(get_section_store(session), DatabaseSectionStore)
    assert isinstance(get_section_store(None), SectionFileStore)
    monkeypatch.setenv("SECTIONS_BACKEND", "file")
    assert isinstance(get_section_store(session), SectionFileStore)


@pytest.mark.asyncio
async def test_length_range_must_not_be_inverted(make_store):
    store = make_store()
    with pytest.raises(ValidationError, match="max_length"):
        await store.create_section(
            {"section_key": "appendix", "section_name": "Appendix", "min_length": 500, "max_length": 100},
        )
    created = await store.create_section(
        {"section_key": "appendix", "section_name": "Appendix", "min_length": 100, "max_length": 500},
    )
    with pytest.raises(ValidationError):
        await store.update_section(created["id"], ReportSectionUpdate(max_length=50))


def test_override_length_range_must_not_be_inverted():
    with pytest.raises(PydanticValidationError):
        SectionOverrideIn(custom_min_length=300, custom_max_length=200)
    assert SectionOverrideIn(custom_min_length=200, custom_max_length=200).custom_max_length == 200


@pytest.mark.asyncio
async def test_corrupt_sections_file_is_persistence_error(tmp_path):
    path = tmp_path / "sections.json"
    path.write_text("[{\"id\": 1,", encoding="utf-8")
    with pytest.raises(PersistenceError, match="sections.json"):
        await SectionFileStore(path).list_sections()
