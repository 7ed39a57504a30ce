"""
Settings Management with Pydantic

Provides type-safe configuration management with:
- Environment variable support (.env)
- Validation
- Text-generation provider configuration
- Automation rule constants
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProviderType(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    GROQ = "groq"
    GEMINI = "gemini"


class StoreBackendType(str, Enum):
    """Supported document store backends."""
    MEMORY = "memory"
    JSON = "json"


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        extra="ignore"
    )

    provider: LLMProviderType = LLMProviderType.GROQ
    model_name: str = "llama-3.3-70b-versatile"
    temperature: float = 0.3
    max_tokens: int = 1024
    timeout: int = 30

    # API Keys (loaded from environment)
    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")
    groq_api_key: Optional[SecretStr] = Field(default=None, alias="GROQ_API_KEY")
    google_api_key: Optional[SecretStr] = Field(default=None, alias="GOOGLE_API_KEY")

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"


class StoreConfig(BaseSettings):
    """Document store configuration."""
    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        extra="ignore"
    )

    backend: StoreBackendType = StoreBackendType.MEMORY
    path: str = "./data/voxmation_db.json"


class AutomationConfig(BaseSettings):
    """Constants used by the automation rules."""
    model_config = SettingsConfigDict(
        env_prefix="AUTOMATION_",
        extra="ignore"
    )

    # Owners
    system_owner_id: str = "SYSTEM"
    default_owner_id: str = "usr-1"

    # Lead -> deal conversion
    deal_default_amount: float = 5000.0
    deal_default_mrr: float = 1000.0
    deal_default_probability: int = 20
    deal_close_target_days: int = 30

    # Closed won fulfillment
    delivery_go_live_days: int = 14
    delivery_package_tier: str = "Pro"

    # Health
    critical_ticket_penalty: int = 25
    health_base_score: int = 85
    past_due_penalty: int = 40
    open_critical_ticket_penalty: int = 20
    open_high_ticket_penalty: int = 10
    high_risk_delivery_penalty: int = 15
    at_risk_threshold: int = 50

    # Renewals
    renewal_window_days: int = 60
    renewal_probability: int = 80


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = "Voxmation OS"
    debug: bool = False
    log_level: str = "INFO"

    # Sub-configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            llm=LLMConfig(),
            store=StoreConfig(),
            automation=AutomationConfig()
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
