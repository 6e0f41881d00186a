"""Database session/engine bootstrap for Report.AI."""

import os

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from database.models import AIGlobalSetting, Base, ReportSection

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///reportai.db",
)


def make_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign_keys=ON so cascades fire."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"timeout": 30})
    eng = create_async_engine(url, echo=False, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(eng.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


engine = make_engine(DATABASE_URL)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    """Provide DB session dependency for FastAPI."""
    async with async_session() as session:
        yield session


async def init_db(target: AsyncEngine | None = None):
    """Create tables and seed default report sections / AI settings."""
    target = target or engine
    async with target.begin() as conn:
        if target.url.get_backend_name() == "sqlite" and target.url.database not in (None, "", ":memory:"):
            await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            await conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(target, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        await seed_defaults(session)


async def seed_defaults(session: AsyncSession):
    """Insert default sections and AI settings when their tables are empty."""
    from processor.ai_settings import DEFAULT_AI_SETTINGS
    from processor.section_store import DEFAULT_SECTIONS

    has_sections = (await session.execute(select(ReportSection.id).limit(1))).first()
    if has_sections is None:
        for section in DEFAULT_SECTIONS:
            session.add(ReportSection(
                section_key=section["section_key"],
                section_name=section["section_name"],
                display_order=section["display_order"],
                is_enabled=section["is_enabled"],
                is_required=section["is_required"],
                default_instructions=section["default_instructions"],
                data_sources=list(section["data_sources"]),
                output_format=section.get("output_format"),
            ))

    has_settings = (await session.execute(select(AIGlobalSetting.id).limit(1))).first()
    if has_settings is None:
        for setting in DEFAULT_AI_SETTINGS:
            session.add(AIGlobalSetting(**setting))

    await session.commit()
