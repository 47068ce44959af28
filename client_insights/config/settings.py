"""
Settings Management with Pydantic

Provides type-safe configuration management with:
- Environment variable support (.env files included)
- Validation
- LLM provider configuration for the remote back end
- Processing defaults (mode, timeout, fallback, retries)
"""

import logging
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProviderType(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    AZURE_OPENAI = "azure_openai"


class ProcessingMode(str, Enum):
    """Analysis back ends, in increasing order of cost."""
    RULE_BASED = "rule-based"
    LOCAL_NLP = "local-nlp"
    REMOTE_LLM = "remote-llm"


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        extra="ignore",
        populate_by_name=True
    )

    provider: LLMProviderType = LLMProviderType.OPENAI
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 1500
    timeout: int = 15

    # API Keys (loaded from environment)
    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"

    # Azure OpenAI settings
    azure_endpoint: Optional[str] = None
    azure_api_version: str = "2024-02-15-preview"
    azure_deployment_name: Optional[str] = None

    def api_key_for_provider(self) -> Optional[str]:
        """Plain-text API key for the configured provider, if any."""
        if self.provider == LLMProviderType.ANTHROPIC:
            key = self.anthropic_api_key
        elif self.provider == LLMProviderType.OLLAMA:
            return None
        else:
            key = self.openai_api_key

        if key is None:
            return None
        return key.get_secret_value() or None


class ProcessingSettings(BaseSettings):
    """Defaults for the processing manager and the context analyzer."""
    model_config = SettingsConfigDict(
        env_prefix="INSIGHTS_",
        extra="ignore"
    )

    default_mode: ProcessingMode = ProcessingMode.REMOTE_LLM
    timeout_ms: int = 15000
    fallback_to_rule_based: bool = True
    max_retries: int = 1
    retry_backoff_ms: int = 1000

    # Remote prompt limits
    max_prompt_chars: int = 8000
    max_prompt_records: int = 50

    # Client resolution
    resolution_threshold: float = 0.3
    min_substring_length: int = 3


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = "Client Insights"
    debug: bool = False
    log_level: str = "INFO"

    # Sub-configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            llm=LLMConfig(),
            processing=ProcessingSettings()
        )


class ProcessingConfig(BaseModel):
    """
    Configuration snapshot used by one analysis call.

    Instances are immutable: updating the manager's configuration swaps in a
    new instance, so a call that captured the previous one keeps running
    against it.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: ProcessingMode = ProcessingMode.RULE_BASED
    model_variant: Optional[str] = Field(
        default=None,
        description="Model name override for the remote back end"
    )
    timeout_ms: int = Field(default=15000, ge=1000, le=60000)
    fallback_to_rule_based: bool = True
    max_retries: int = Field(default=1, ge=1, le=5)
    retry_backoff_ms: int = Field(default=1000, ge=0, le=3000)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProcessingConfig":
        """
        Build the startup configuration.

        The configured default mode is downgraded to the best mode that is
        actually available (remote -> local -> rule-based).
        """
        from .validation import get_best_available_mode

        settings = settings or get_settings()
        processing = settings.processing

        # Out-of-range timeouts fall back to the default instead of failing startup
        timeout_ms = processing.timeout_ms
        if not 1000 <= timeout_ms <= 60000:
            timeout_ms = 15000

        return cls(
            mode=get_best_available_mode(settings, preferred=processing.default_mode),
            timeout_ms=timeout_ms,
            fallback_to_rule_based=processing.fallback_to_rule_based,
            max_retries=min(max(processing.max_retries, 1), 5),
            retry_backoff_ms=min(max(processing.retry_backoff_ms, 0), 3000)
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
