"""Report.AI runtime settings (pydantic-settings, read from env / .env)."""

from pydantic_settings import BaseSettings

PLACEHOLDER_PREFIX = "your-"


class ReportSettings(BaseSettings):
    """Provider keys, default model, Lumina endpoint and section storage."""

    # LLM provider keys
    anthropic_api_key: str = ""
    google_ai_api_key: str = ""
    openai_api_key: str = ""

    default_ai_model: str = "claude-sonnet-4-20250514"
    ai_timeout_sec: float = 60.0

    # Lumina order API
    lumina_api_url: str = "https://api.edwinlovett.com/order"
    lumina_timeout_sec: float = 30.0

    # 리포트 섹션 저장소: database | file
    sections_backend: str = "database"
    sections_file: str = "data/report_sections.json"

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> ReportSettings:
    """Build settings fresh so env changes apply without a restart."""
    return ReportSettings()


def is_configured(api_key: str | None) -> bool:
    """True when the key is set and is not a `your-...` placeholder."""
    return bool(api_key) and not api_key.startswith(PLACEHOLDER_PREFIX)
