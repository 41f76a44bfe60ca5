"""
Configuration for Verdict Service
=================================

Environment variables:
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./verdict.db)
- SQL_ECHO, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_CONNECT_TIMEOUT: engine tuning
- OPENROUTER_API_KEY: API key for OpenRouter (consensus synthesis)
- CONSENSUS_MODEL: Model used for consensus synthesis (default: openai/gpt-4o)
- SYNTHESIS_TIMEOUT: Seconds to wait for a synthesis response (default: 30)
- STARTER_CREDITS: Credits granted when a profile is created (default: 3)
"""

from typing import Dict, List, Optional
from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class TierConfig(BaseModel):
    """Pricing for one request tier"""
    credits: int
    verdicts: int


DEFAULT_TIERS: Dict[str, TierConfig] = {
    "community": TierConfig(credits=1, verdicts=3),
    "standard": TierConfig(credits=2, verdicts=5),
    "pro": TierConfig(credits=3, verdicts=3),
}


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./verdict.db"
    sql_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_connect_timeout: int = 5

    # OpenRouter (consensus synthesis)
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    consensus_model: str = "openai/gpt-4o"
    synthesis_timeout: float = 30.0
    synthesis_temperature: float = 0.3
    synthesis_max_tokens: int = 2000

    # Credits and request defaults
    starter_credits: int = 3
    default_target_verdict_count: int = 3
    default_credits_to_charge: int = 1
    default_tier: str = "community"
    tiers: Dict[str, TierConfig] = DEFAULT_TIERS

    # Consensus gate
    consensus_tier: str = "pro"
    consensus_min_verdicts: int = 2

    # HTTP
    cors_origins: List[str] = ["http://localhost:3000"]

    # Service info
    service_version: str = "1.0.0"

    def tier_config(self, tier: Optional[str]) -> TierConfig:
        """Resolve a tier name to its pricing, falling back to the default tier"""
        if tier and tier in self.tiers:
            return self.tiers[tier]
        return self.tiers[self.default_tier]

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if not self.openrouter_api_key:
            warnings.append("OPENROUTER_API_KEY not set (consensus synthesis disabled)")

        if self.synthesis_timeout <= 0:
            warnings.append("SYNTHESIS_TIMEOUT must be positive")

        if self.consensus_tier not in self.tiers:
            warnings.append(f"CONSENSUS_TIER={self.consensus_tier} is not a configured tier")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
