from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env into os.environ
load_dotenv()


class Settings(BaseSettings):
    """Application configuration settings backed by environment variables."""

    datasource_config_path: str = Field(default="configs/datasources.yaml", validation_alias="DATASOURCE_CONFIG")

    max_concurrent_queries: int = Field(
        default=8,
        validation_alias="MAX_CONCURRENT_QUERIES",
        description="Max worker threads used to run the queries of one batch."
    )

    default_query_timeout_sec: float = Field(
        default=30.0,
        validation_alias="QUERY_TIMEOUT_SEC",
        description="Deadline in seconds for a batch when the request does not set one."
    )

    backend_request_timeout_sec: float = Field(
        default=10.0,
        validation_alias="BACKEND_REQUEST_TIMEOUT_SEC",
        description="Default network timeout for a single backend call."
    )

    dispose_timeout_sec: float = Field(
        default=5.0,
        validation_alias="DISPOSE_TIMEOUT_SEC",
        description="Upper bound in seconds spent closing the handles of a disposed instance."
    )

    breaker_fail_max: int = Field(
        default=5,
        validation_alias="BREAKER_FAIL_MAX",
        description="Consecutive backend failures before a datasource breaker opens."
    )
    breaker_reset_timeout_sec: int = Field(
        default=30,
        validation_alias="BREAKER_RESET_TIMEOUT_SEC",
        description="Seconds an open datasource breaker waits before a trial call."
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    observability_exporter: str = Field(
        default="none",
        validation_alias="OBSERVABILITY_EXPORTER",
        description="Exporter for metrics/traces: 'none', 'console', 'otlp'."
    )

    otlp_endpoint: Optional[str] = Field(
        default=None,
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="Endpoint for OTLP exporter (e.g. http://localhost:4317)."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def configure_env(self, env: str) -> None:
        """Loads environment-specific variables and reloads settings."""
        if not env:
            return

        load_dotenv(f".env.{env}", override=True)
        new_settings = Settings()
        self.__dict__.update(new_settings.__dict__)


settings = Settings()

# Configure logging during import
from querybridge.common.logger import configure_logging
configure_logging(
    level=settings.log_level,
    json_format=(settings.observability_exporter == "otlp")
)
