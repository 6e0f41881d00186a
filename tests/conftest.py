"""공용 fixture -- in-memory SQLite 세션, AI 키 격리."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import init_db, make_engine
from processor.ai_settings import ai_settings

PROVIDER_KEYS = ("ANTHROPIC_API_KEY", "GOOGLE_AI_API_KEY", "OPENAI_API_KEY")


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """No real provider keys, a throwaway sections file, and a cold settings cache."""
    for key in PROVIDER_KEYS:
        monkeypatch.setenv(key, "")
    monkeypatch.delenv("DEFAULT_AI_MODEL", raising=False)
    monkeypatch.setenv("SECTIONS_BACKEND", "database")
    monkeypatch.setenv("SECTIONS_FILE", str(tmp_path / "report_sections.json"))
    ai_settings.invalidate()
    yield
    ai_settings.invalidate()


@pytest_asyncio.fixture
async def db_engine():
    engine = make_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


def meta_product(**overrides) -> dict:
    """Nested product payload used across schema/config tests."""
    product = {
        "name": "Meta",
        "slug": "meta",
        "platforms": ["Facebook", "Instagram"],
        "ai_guidelines": "Focus on social engagement.",
        "subproducts": [
            {
                "name": "Link Click",
                "slug": "link-click",
                "ai_guidelines": "Report CTR first.",
                "tactic_types": [
                    {
                        "name": "Facebook Link Click",
                        "slug": "facebook-link-click",
                        "data_value": "fb_link_click",
                        "filename_stem": "report-meta-facebook-link-click",
                        "expected_filenames": ["report-meta-facebook-link-click-campaign.csv"],
                        "aliases": ["fb link"],
                        "headers": ["Date", "Impressions", "Clicks", "Spend"],
                    },
                ],
            },
            {
                "name": "Video Views",
                "slug": "video-views",
                "platforms": [],
                "tactic_types": [],
            },
        ],
        "lumina_extractors": [
            {"name": "Meta Line Items", "path": "lineItems[].product", "when": {"product": "Meta"}, "aggregate": "unique"},
        ],
        "benchmarks": [
            {"metric": "ctr", "goal": 1.5, "warning": 0.8, "unit": "percentage", "direction": "higher_better"},
        ],
    }
    product.update(overrides)
    return product
