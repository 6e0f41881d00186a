"""Pydantic 스키마 -- API 요청/응답 직렬화 + JSON 컬럼 경계 검증.

JSON 컬럼 규칙:
  - platforms / expected_filenames / aliases / headers / data_sources: list[str].
  - when_conditions: {path: expected} (expected가 list면 포함 여부로 판단).
  - test_data / schema_data: 임의 JSON 문서 (dict).
  키 패턴(section_key, metric_name)은 ^[a-z0-9_]+$ 만 허용, 자동 보정하지 않음.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

KEY_PATTERN = r"^[a-z0-9_]+$"

AggregateType = Literal["first", "unique", "sum", "join"]
BenchmarkUnit = Literal["percentage", "ratio", "USD", "count", "seconds"]
BenchmarkDirection = Literal["higher_better", "lower_better"]
SettingType = Literal["string", "number", "boolean", "json"]


# ── Tactic Type ──
class TacticTypeBase(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    data_value: str | None = None
    filename_stem: str | None = None
    expected_filenames: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)


class TacticTypeIn(TacticTypeBase):
    subproduct_id: int


class TacticTypeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    slug: str | None = None
    data_value: str | None = None
    filename_stem: str | None = None
    expected_filenames: list[str] | None = None
    aliases: list[str] | None = None
    headers: list[str] | None = None


class TacticTypeOut(TacticTypeBase):
    id: int
    subproduct_id: int
    slug: str
    model_config = ConfigDict(from_attributes=True)


# ── Subproduct ──
class SubproductBase(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    platforms: list[str] = Field(default_factory=list)
    notes: str | None = None
    ai_guidelines: str | None = None
    inherit_from_product: bool = True


class SubproductNested(SubproductBase):
    tactic_types: list[TacticTypeBase] = Field(default_factory=list)


class SubproductIn(SubproductNested):
    product_id: int


class SubproductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    slug: str | None = None
    platforms: list[str] | None = None
    notes: str | None = None
    ai_guidelines: str | None = None
    inherit_from_product: bool | None = None


class SubproductOut(SubproductBase):
    id: int
    product_id: int
    slug: str
    tactic_types: list[TacticTypeOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


# ── Lumina Extractor ──
class LuminaExtractorBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    when_conditions: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("when_conditions", "when"),
    )
    aggregate_type: AggregateType | None = Field(
        default=None, validation_alias=AliasChoices("aggregate_type", "aggregate"),
    )


class LuminaExtractorIn(LuminaExtractorBase):
    product_id: int


class LuminaExtractorUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    path: str | None = Field(default=None, min_length=1)
    when_conditions: dict[str, Any] | None = None
    aggregate_type: AggregateType | None = None


class LuminaExtractorOut(LuminaExtractorBase):
    id: int
    product_id: int
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Benchmark ──
class BenchmarkBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    metric_name: str = Field(
        pattern=KEY_PATTERN, validation_alias=AliasChoices("metric_name", "metric"),
    )
    goal_value: float | None = Field(default=None, validation_alias=AliasChoices("goal_value", "goal"))
    warning_threshold: float | None = Field(
        default=None, validation_alias=AliasChoices("warning_threshold", "warning"),
    )
    unit: BenchmarkUnit | None = None
    direction: BenchmarkDirection | None = None


class BenchmarkIn(BenchmarkBase):
    product_id: int


class BenchmarkUpdate(BaseModel):
    metric_name: str | None = Field(default=None, pattern=KEY_PATTERN)
    goal_value: float | None = None
    warning_threshold: float | None = None
    unit: BenchmarkUnit | None = None
    direction: BenchmarkDirection | None = None


class BenchmarkOut(BenchmarkBase):
    id: int
    product_id: int
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Product ──
class ProductBase(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    platforms: list[str] = Field(default_factory=list)
    notes: str | None = None
    ai_guidelines: str | None = None
    ai_prompt: str | None = None


class ProductIn(ProductBase):
    """Nested create: one request builds the whole product subtree."""

    subproducts: list[SubproductNested] = Field(default_factory=list)
    lumina_extractors: list[LuminaExtractorBase] = Field(default_factory=list)
    benchmarks: list[BenchmarkBase] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    slug: str | None = None
    platforms: list[str] | None = None
    notes: str | None = None
    ai_guidelines: str | None = None
    ai_prompt: str | None = None


class ProductOut(ProductBase):
    id: int
    slug: str
    created_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class ProductDetailOut(ProductOut):
    subproducts: list[SubproductOut] = Field(default_factory=list)
    lumina_extractors: list[LuminaExtractorOut] = Field(default_factory=list)
    benchmarks: list[BenchmarkOut] = Field(default_factory=list)


# ── Schema snapshot / version ──
class SchemaSnapshot(BaseModel):
    version: str = "2.0"
    generated_at: str | None = None
    products: list[ProductIn] = Field(default_factory=list)


class SnapshotImportIn(BaseModel):
    document: dict[str, Any]
    clear_existing: bool = False


class SaveVersionIn(BaseModel):
    description: str | None = None
    created_by: str | None = None


class SchemaVersionOut(BaseModel):
    id: int
    version_number: str
    description: str | None = None
    is_active: bool
    created_by: str | None = None
    created_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


# ── Report Section ──
def _check_lengths(min_length: int | None, max_length: int | None):
    if min_length is not None and max_length is not None and min_length > max_length:
        raise ValueError(f"min_length ({min_length}) must not exceed max_length ({max_length})")


class ReportSectionIn(BaseModel):
    section_key: str = Field(pattern=KEY_PATTERN)
    section_name: str = Field(min_length=1)
    display_order: int = 100
    is_enabled: bool = True
    is_required: bool = False
    default_instructions: str | None = None
    data_sources: list[str] = Field(default_factory=list)
    output_format: str | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)

    @field_validator("section_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("section_name is required")
        return v.strip()

    @field_validator("display_order")
    @classmethod
    def _clamp_order(cls, v: int) -> int:
        return max(1, v)

    @model_validator(mode="after")
    def _check_length_range(self):
        _check_lengths(self.min_length, self.max_length)
        return self


class ReportSectionUpdate(BaseModel):
    section_key: str | None = Field(default=None, pattern=KEY_PATTERN)
    section_name: str | None = Field(default=None, min_length=1)
    display_order: int | None = None
    is_enabled: bool | None = None
    is_required: bool | None = None
    default_instructions: str | None = None
    data_sources: list[str] | None = None
    output_format: str | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)

    @field_validator("display_order")
    @classmethod
    def _clamp_order(cls, v: int | None) -> int | None:
        return None if v is None else max(1, v)

    @model_validator(mode="after")
    def _check_length_range(self):
        _check_lengths(self.min_length, self.max_length)
        return self


class ReportSectionOut(BaseModel):
    id: int
    section_key: str
    section_name: str
    display_order: int
    is_enabled: bool
    is_required: bool
    default_instructions: str | None = None
    data_sources: list[str] = Field(default_factory=list)
    output_format: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    model_config = ConfigDict(from_attributes=True)


class SectionOverrideIn(BaseModel):
    """Fields left as None inherit the next broader scope."""

    is_enabled: bool | None = None
    custom_instructions: str | None = None
    custom_data_sources: list[str] | None = None
    custom_min_length: int | None = Field(default=None, ge=0)
    custom_max_length: int | None = Field(default=None, ge=0)
    display_order: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_length_range(self):
        _check_lengths(self.custom_min_length, self.custom_max_length)
        return self


# ── AI settings / test harness ──
class AISettingIn(BaseModel):
    setting_value: Any = None
    setting_type: SettingType = "string"
    category: str = "general"
    description: str | None = None


class AITestConfigIn(BaseModel):
    config_name: str = Field(min_length=1)
    test_scenario: str | None = None
    product_id: int | None = None
    subproduct_id: int | None = None
    test_data: dict[str, Any] | list[Any] | None = None
    ai_model: str = "claude-sonnet-4-20250514"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    tone: str = "professional"
    custom_instructions: str | None = None
    enabled_sections: list[str] = Field(default_factory=list)


class AITestConfigOut(AITestConfigIn):
    id: int
    last_test_result: dict[str, Any] | None = None
    last_test_at: datetime | None = None
    created_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class AITestRunIn(BaseModel):
    dry_run: bool = False


class AITestRequest(BaseModel):
    prompt: str = Field(min_length=1)
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    maxTokens: int | None = Field(default=None, ge=1)


# ── Campaign / analysis ──
class LuminaRequest(BaseModel):
    orderId: str = ""


class TacticsRequest(BaseModel):
    lineItems: list[dict[str, Any]] = Field(default_factory=list)


class UploadedFile(BaseModel):
    name: str = ""
    headers: list[str] = Field(default_factory=list)
    data: list[dict[str, Any]] = Field(default_factory=list)


class AIConfig(BaseModel):
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    tone: str = "professional"
    customInstructions: str | None = None
    productId: int | None = None
    subproductId: int | None = None


class TacticIn(BaseModel):
    """A tactic from /api/tactics; productId/subproductId select its own guidelines."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    id: str | int | None = None
    productId: int | None = None
    subproductId: int | None = None


class AnalyzeRequest(BaseModel):
    campaignData: dict[str, Any] = Field(default_factory=dict)
    uploadedFiles: dict[str, list[UploadedFile]] = Field(default_factory=dict)
    companyInfo: dict[str, Any] = Field(default_factory=dict)
    tactics: list[TacticIn | str] = Field(default_factory=list)
    aiConfig: AIConfig = Field(default_factory=AIConfig)
