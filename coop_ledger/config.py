"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./coop_ledger.db"

    # Service
    service_name: str = "coop-ledger"
    log_level: str = "INFO"
    system_actor_id: str = "system"

    # Society defaults used until an admin saves the first settings version
    default_loan_interest_rate: Decimal = Decimal("1.5")  # monthly %
    default_standard_loan_term_months: int = 12
    default_new_member_loan_eligibility_months: int = 6
    default_loan_to_shares_savings_ratio: Decimal = Decimal("2")

    # Concurrency
    conflict_max_retries: int = 3
    conflict_backoff_base: float = 0.05  # Exponential backoff base in seconds
    accrual_max_workers: int = 1


settings = Settings()
