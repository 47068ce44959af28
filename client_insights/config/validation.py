"""
Configuration Validation

Runtime checks for the processing configuration:
- Which analysis modes are usable with the current credentials
- Best available mode selection (remote -> local -> rule-based)
- Errors and warnings for out-of-range parameters
- Recommendations for improving the setup
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .settings import LLMProviderType, ProcessingMode, Settings, get_settings

logger = logging.getLogger(__name__)


# Preference order used when the requested mode is unavailable
MODE_PREFERENCE = [
    ProcessingMode.REMOTE_LLM,
    ProcessingMode.LOCAL_NLP,
    ProcessingMode.RULE_BASED,
]


@dataclass
class ConfigValidationResult:
    """Outcome of a configuration check."""
    is_valid: bool = True
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    available_modes: list = field(default_factory=list)


def is_remote_available(settings: Optional[Settings] = None) -> bool:
    """Remote LLM needs credentials unless the provider is keyless (Ollama)."""
    settings = settings or get_settings()
    llm = settings.llm
    if llm.provider == LLMProviderType.OLLAMA:
        return True
    return llm.api_key_for_provider() is not None


def get_available_modes(settings: Optional[Settings] = None) -> list[ProcessingMode]:
    """Modes that can run with the current settings, cheapest first."""
    modes = [ProcessingMode.RULE_BASED, ProcessingMode.LOCAL_NLP]
    if is_remote_available(settings):
        modes.append(ProcessingMode.REMOTE_LLM)
    return modes


def validate_mode(mode: Union[str, ProcessingMode], settings: Optional[Settings] = None) -> bool:
    """Whether `mode` names a known mode that is currently available."""
    try:
        mode = ProcessingMode(mode)
    except ValueError:
        return False
    return mode in get_available_modes(settings)


def get_best_available_mode(
    settings: Optional[Settings] = None,
    preferred: Optional[Union[str, ProcessingMode]] = None
) -> ProcessingMode:
    """
    Pick the mode to run with.

    `preferred` is honoured when available; otherwise the most capable
    available mode is returned. Rule-based is always available.
    """
    available = get_available_modes(settings)

    if preferred is not None and validate_mode(preferred, settings):
        return ProcessingMode(preferred)

    for mode in MODE_PREFERENCE:
        if mode in available:
            if preferred is not None:
                logger.warning(
                    "Processing mode %s unavailable, using %s",
                    getattr(preferred, "value", preferred), mode.value
                )
            return mode

    return ProcessingMode.RULE_BASED


def validate_configuration(settings: Optional[Settings] = None) -> ConfigValidationResult:
    """Check settings for errors (unusable) and warnings (suspicious)."""
    settings = settings or get_settings()
    llm = settings.llm
    processing = settings.processing
    result = ConfigValidationResult(available_modes=get_available_modes(settings))

    # Errors
    if llm.provider == LLMProviderType.AZURE_OPENAI and not (
        llm.azure_endpoint and llm.azure_deployment_name
    ):
        result.errors.append(
            "Azure OpenAI provider requires LLM_AZURE_ENDPOINT and LLM_AZURE_DEPLOYMENT_NAME"
        )
    if processing.max_prompt_chars <= 0:
        result.errors.append("INSIGHTS_MAX_PROMPT_CHARS must be positive")
    if processing.max_prompt_records <= 0:
        result.errors.append("INSIGHTS_MAX_PROMPT_RECORDS must be positive")
    if not 0.0 <= processing.resolution_threshold <= 1.0:
        result.errors.append("INSIGHTS_RESOLUTION_THRESHOLD must be between 0 and 1")

    # Warnings
    if processing.default_mode == ProcessingMode.REMOTE_LLM and not is_remote_available(settings):
        result.warnings.append(
            f"Default mode is remote-llm but no API key is configured for "
            f"'{llm.provider.value}'; a local mode will be used"
        )
    if llm.max_tokens < 100 or llm.max_tokens > 4000:
        result.warnings.append(f"LLM max_tokens {llm.max_tokens} is outside 100-4000")
    if llm.temperature < 0 or llm.temperature > 2:
        result.warnings.append(f"LLM temperature {llm.temperature} is outside 0-2")
    if processing.timeout_ms < 1000:
        result.warnings.append(f"Timeout {processing.timeout_ms}ms is below 1000ms")
    elif processing.timeout_ms > 60000:
        result.warnings.append(f"Timeout {processing.timeout_ms}ms is above 60000ms")
    if processing.max_retries < 1 or processing.max_retries > 5:
        result.warnings.append(f"Max retries {processing.max_retries} is outside 1-5")
    if result.available_modes == [ProcessingMode.RULE_BASED]:
        result.warnings.append("Only rule-based mode is available")

    result.is_valid = not result.errors
    return result


def get_config_summary(settings: Optional[Settings] = None) -> dict[str, Any]:
    """Flat summary of the effective configuration, safe to log."""
    settings = settings or get_settings()
    validation = validate_configuration(settings)
    return {
        "default_mode": settings.processing.default_mode.value,
        "best_available_mode": get_best_available_mode(
            settings, preferred=settings.processing.default_mode
        ).value,
        "available_modes": [mode.value for mode in validation.available_modes],
        "llm_provider": settings.llm.provider.value,
        "llm_model": settings.llm.model_name,
        "remote_enabled": is_remote_available(settings),
        "fallback_enabled": settings.processing.fallback_to_rule_based,
        "timeout_ms": settings.processing.timeout_ms,
        "max_retries": settings.processing.max_retries,
        "errors": validation.errors,
        "warnings": validation.warnings,
    }


def get_configuration_recommendations(settings: Optional[Settings] = None) -> list[str]:
    """Suggestions for a more robust setup."""
    settings = settings or get_settings()
    recommendations = []

    if not is_remote_available(settings):
        recommendations.append(
            "Add OPENAI_API_KEY (or another provider key) to enable remote-llm analysis"
        )
    if settings.processing.timeout_ms < 5000:
        recommendations.append(
            "Consider increasing INSIGHTS_TIMEOUT_MS for better reliability on slow networks"
        )
    if settings.processing.max_retries < 2:
        recommendations.append(
            "Consider increasing INSIGHTS_MAX_RETRIES for better fault tolerance"
        )
    if not settings.processing.fallback_to_rule_based:
        recommendations.append(
            "Enable INSIGHTS_FALLBACK_TO_RULE_BASED so failed analyses still return insights"
        )
    if settings.debug:
        recommendations.append("Disable debug mode in production")

    return recommendations
