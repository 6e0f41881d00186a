"""Report.AI error taxonomy shared by the processor and api layers."""


class ReportAIError(Exception):
    """Base class for domain errors."""


class ValidationError(ReportAIError):
    """Bad input shape, missing required field or uniqueness violation (400)."""


class ConfigurationError(ReportAIError):
    """Missing provider API key or unknown model id."""


class ProviderError(ReportAIError):
    """LLM / Lumina HTTP failure, non-2xx response or malformed JSON."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ReportAIError):
    """Missing product/subproduct/tactic/version id (404)."""


class PersistenceError(ReportAIError):
    """Database failure, raised after the open transaction is rolled back."""
