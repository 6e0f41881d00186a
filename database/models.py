"""Report.AI DB 모델 — 설정 계층 + 캠페인/분석 테이블. (SQLite/PostgreSQL 호환)"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────
# 1. 상품 (taxonomy root)
# ─────────────────────────────────────────────
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False, unique=True)
    slug = Column(String(200), nullable=False)
    platforms = Column(JSON, default=list)  # ["Meta", "Google"]
    notes = Column(Text)
    ai_guidelines = Column(Text)
    ai_prompt = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subproducts = relationship(
        "Subproduct", back_populates="product",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Subproduct.name",
    )
    lumina_extractors = relationship(
        "LuminaExtractor", back_populates="product",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="LuminaExtractor.name",
    )
    benchmarks = relationship(
        "Benchmark", back_populates="product",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Benchmark.metric_name",
    )


# ─────────────────────────────────────────────
# 2. 서브상품
# ─────────────────────────────────────────────
class Subproduct(Base):
    __tablename__ = "subproducts"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False)
    platforms = Column(JSON, default=list)
    notes = Column(Text)
    ai_guidelines = Column(Text)
    inherit_from_product = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="subproducts")
    tactic_types = relationship(
        "TacticType", back_populates="subproduct",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="TacticType.name",
    )

    __table_args__ = (
        UniqueConstraint("product_id", "slug", name="uq_subproduct_product_slug"),
        Index("ix_subproducts_product", "product_id"),
    )


# ─────────────────────────────────────────────
# 3. 택틱 타입 (CSV 파일/헤더 매칭 기준)
# ─────────────────────────────────────────────
class TacticType(Base):
    __tablename__ = "tactic_types"

    id = Column(Integer, primary_key=True)
    subproduct_id = Column(Integer, ForeignKey("subproducts.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False)
    data_value = Column(String(200))
    filename_stem = Column(String(200))
    expected_filenames = Column(JSON, default=list)
    aliases = Column(JSON, default=list)
    headers = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    subproduct = relationship("Subproduct", back_populates="tactic_types")

    __table_args__ = (
        UniqueConstraint("subproduct_id", "slug", name="uq_tactic_type_subproduct_slug"),
        Index("ix_tactic_types_subproduct", "subproduct_id"),
    )


# ─────────────────────────────────────────────
# 4. Lumina 추출기 / 벤치마크
# ─────────────────────────────────────────────
class LuminaExtractor(Base):
    __tablename__ = "lumina_extractors"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    path = Column(String(500), nullable=False)  # lineItems[].product
    when_conditions = Column(JSON)  # {"lineItems[].status": "Live"}
    aggregate_type = Column(String(20))  # first | unique | sum | join | None
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="lumina_extractors")


class Benchmark(Base):
    __tablename__ = "benchmarks"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    metric_name = Column(String(100), nullable=False)
    goal_value = Column(Float)
    warning_threshold = Column(Float)
    unit = Column(String(20))  # percentage | ratio | USD | count | seconds
    direction = Column(String(20))  # higher_better | lower_better
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="benchmarks")

    __table_args__ = (
        UniqueConstraint("product_id", "metric_name", name="uq_benchmark_product_metric"),
    )


# ─────────────────────────────────────────────
# 5. 리포트 섹션 + 상품/서브상품 오버라이드
# ─────────────────────────────────────────────
class ReportSection(Base):
    __tablename__ = "report_sections"

    id = Column(Integer, primary_key=True)
    section_key = Column(String(100), nullable=False, unique=True)
    section_name = Column(String(200), nullable=False)
    display_order = Column(Integer, default=100, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    default_instructions = Column(Text)
    data_sources = Column(JSON, default=list)
    output_format = Column(String(50))
    min_length = Column(Integer)
    max_length = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProductReportSection(Base):
    """Product-scope override. NULL columns fall through to the global section."""

    __tablename__ = "product_report_sections"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(Integer, ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False)
    is_enabled = Column(Boolean)
    custom_instructions = Column(Text)
    custom_data_sources = Column(JSON)
    custom_min_length = Column(Integer)
    custom_max_length = Column(Integer)
    display_order = Column(Integer)

    __table_args__ = (
        UniqueConstraint("product_id", "section_id", name="uq_product_section"),
    )


class SubproductReportSection(Base):
    __tablename__ = "subproduct_report_sections"

    id = Column(Integer, primary_key=True)
    subproduct_id = Column(Integer, ForeignKey("subproducts.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(Integer, ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False)
    is_enabled = Column(Boolean)
    custom_instructions = Column(Text)
    custom_data_sources = Column(JSON)
    custom_min_length = Column(Integer)
    custom_max_length = Column(Integer)
    display_order = Column(Integer)

    __table_args__ = (
        UniqueConstraint("subproduct_id", "section_id", name="uq_subproduct_section"),
    )


# ─────────────────────────────────────────────
# 6. AI 전역 설정 / 테스트 하네스
# ─────────────────────────────────────────────
class AIGlobalSetting(Base):
    __tablename__ = "ai_global_settings"

    id = Column(Integer, primary_key=True)
    setting_key = Column(String(100), nullable=False, unique=True)
    setting_value = Column(Text)
    setting_type = Column(String(20), default="string", nullable=False)  # string|number|boolean|json
    category = Column(String(50), default="general", nullable=False)
    description = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AITestConfig(Base):
    __tablename__ = "ai_test_configs"

    id = Column(Integer, primary_key=True)
    config_name = Column(String(200), nullable=False)
    test_scenario = Column(Text)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    subproduct_id = Column(Integer, ForeignKey("subproducts.id", ondelete="SET NULL"), nullable=True)
    test_data = Column(JSON)
    ai_model = Column(String(100), default="claude-sonnet-4-20250514")
    temperature = Column(Float, default=0.7)
    tone = Column(String(30), default="professional")
    custom_instructions = Column(Text)
    enabled_sections = Column(JSON, default=list)
    last_test_result = Column(JSON)
    last_test_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


# ─────────────────────────────────────────────
# 7. 스키마 버전 스냅샷 (append-only)
# ─────────────────────────────────────────────
class SchemaVersion(Base):
    __tablename__ = "schema_versions"

    id = Column(Integer, primary_key=True)
    version_number = Column(String(30), nullable=False)  # 2025.01.31.142501
    description = Column(Text)
    schema_data = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(100), default="system")
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_schema_versions_created", "created_at"),
    )


# ─────────────────────────────────────────────
# 8. Lumina 캠페인 / 분석 결과
# ─────────────────────────────────────────────
class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(24), nullable=False, unique=True)
    order_number = Column(String(100))
    name = Column(String(500))
    advertiser = Column(String(300))
    status = Column(String(20))  # not_started | ongoing | completed | unknown
    start_date = Column(String(40))
    end_date = Column(String(40))
    line_items = Column(JSON, default=list)
    raw_data = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True)
    campaign_name = Column(String(500))
    company_name = Column(String(300))
    ai_model = Column(String(100))
    tone = Column(String(30))
    used_fallback = Column(Boolean, default=False)
    analysis = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_analyses_campaign", "campaign_id"),
    )
