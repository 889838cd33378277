"""Environment-based configuration for the expense extractor."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Expense extractor settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    LOG_LEVEL: str = "INFO"

    # Extraction backend connection
    EXTRACTION_SERVICE_URL: str = "http://localhost:8000"
    EXTRACTION_ENDPOINT: str = "/process_file"

    # Extraction backend timeouts and retry (1 attempt = no automatic retry)
    EXTRACTION_TIMEOUT_SECONDS: int = 120  # OCR + LLM inference on the backend
    EXTRACTION_CONNECT_TIMEOUT: int = 10
    EXTRACTION_RETRY_ATTEMPTS: int = 1
    EXTRACTION_RETRY_DELAY: float = 2.0
    EXTRACTION_RETRY_BACKOFF: float = 2.0

    # Model preselected on a fresh or reset session
    DEFAULT_MODEL: str = "cohere/command-r-08-2024"

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
