"""Configuration management using Pydantic Settings"""

from dataclasses import replace

from pydantic_settings import BaseSettings, SettingsConfigDict

from allocation_planner.domain.policy import DEFAULT_POLICY, AllocationPolicy


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./allocation_planner.db"

    # External Services
    bank_api_base: str = "http://localhost:8001"
    explanation_service_url: str | None = None  # unset = explanations disabled

    # Service
    service_name: str = "allocation-planner"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    explanation_timeout_seconds: float = 3.0
    explanation_max_retries: int = 3
    explanation_backoff_base: float = 0.5  # Exponential backoff base in seconds

    # Allocation policy overrides
    min_allocation_confidence: float = DEFAULT_POLICY.min_allocation_confidence
    debt_bucket_threshold_cents: int = DEFAULT_POLICY.debt_bucket_threshold_cents
    investment_annual_return: float = DEFAULT_POLICY.investment_annual_return
    analysis_window_months: int = DEFAULT_POLICY.analysis_window_months

    def allocation_policy(self) -> AllocationPolicy:
        """Default policy with the environment overrides applied"""
        return replace(
            DEFAULT_POLICY,
            min_allocation_confidence=self.min_allocation_confidence,
            debt_bucket_threshold_cents=self.debt_bucket_threshold_cents,
            investment_annual_return=self.investment_annual_return,
            analysis_window_months=self.analysis_window_months,
        )


settings = Settings()
