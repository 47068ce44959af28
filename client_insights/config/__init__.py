"""
Configuration Management

Centralized configuration for:
- LLM providers (OpenAI, Anthropic, Ollama, Azure OpenAI)
- Processing defaults (mode, timeout, fallback, retries)
- Validation of the effective configuration
"""

from .settings import (
    Settings,
    LLMConfig,
    LLMProviderType,
    ProcessingConfig,
    ProcessingMode,
    ProcessingSettings,
    configure_logging,
    get_settings
)
from .providers import (
    LLMProvider,
    get_chat_model
)
from .validation import (
    ConfigValidationResult,
    get_available_modes,
    get_best_available_mode,
    get_config_summary,
    get_configuration_recommendations,
    validate_configuration,
    validate_mode
)

__all__ = [
    "Settings",
    "LLMConfig",
    "LLMProviderType",
    "ProcessingConfig",
    "ProcessingMode",
    "ProcessingSettings",
    "configure_logging",
    "get_settings",
    "LLMProvider",
    "get_chat_model",
    "ConfigValidationResult",
    "get_available_modes",
    "get_best_available_mode",
    "get_config_summary",
    "get_configuration_recommendations",
    "validate_configuration",
    "validate_mode"
]
