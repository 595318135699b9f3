# treeshop/config.py
import os
from functools import lru_cache
from typing import Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TIER_TABLE: Dict[int, float] = {1: 1.6, 2: 1.7, 3: 1.8, 4: 2.0, 5: 2.2}


class Settings(BaseSettings):
    # === General ===
    app_env: str = "local"  # local | development | production

    # === Database ===
    database_url: str = "sqlite:///./treeshop.db"

    # === Logging ===
    log_level: str = "INFO"
    log_json: bool = True

    # === Metrics ===
    metrics_enabled: bool = True

    # === Workflow defaults ===
    default_tax_rate: float = Field(0.0, ge=0.0, description="Sales tax as a fraction (0.07 = 7%)")
    proposal_validity_days: int = 30
    follow_up_days: int = 1
    invoice_due_days: int = 30

    # === Equipment cost model ===
    equipment_default_depreciation_years: int = 5
    equipment_default_maintenance_pct: float = 0.15
    maintenance_replacement_threshold: float = 12.0  # currency units per hour
    minimum_annual_equipment_hours: float = 1000.0
    underutilization_ratio: float = 0.75
    work_days_per_year: int = 200

    # === Compensation ===
    # tier multiplier (wage) and labor burden (employer cost); same defaults
    tier_multipliers: Dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_TIER_TABLE))
    burden_multipliers: Dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_TIER_TABLE))

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("tier_multipliers", "burden_multipliers")
    @classmethod
    def _tiers_complete(cls, value: Dict[int, float]) -> Dict[int, float]:
        missing = [t for t in range(1, 6) if t not in value]
        if missing:
            raise ValueError(f"tier table is missing tiers {missing}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple env overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
    elif env == "development":
        s.log_level = "DEBUG"
        s.log_json = False

    return s


# Module-level export so `from treeshop.config import settings` keeps working
settings = get_settings()
