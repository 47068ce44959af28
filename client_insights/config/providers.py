"""
LLM Provider Factory

Provides the chat model behind the remote back end:
- OpenAI (GPT-4o, GPT-4o-mini)
- Anthropic (Claude)
- Ollama (local models)
- Azure OpenAI

Integration packages are imported lazily so the rule-based and local-NLP
back ends work without them.
"""

import logging
from typing import Optional

from .settings import LLMConfig, LLMProviderType, get_settings
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class LLMProvider:
    """
    Factory for LangChain chat models.

    One chat model is cached per model variant.
    """

    def __init__(self, config: LLMConfig = None):
        self.config = config or get_settings().llm
        self._chat_models: dict = {}

    @property
    def requires_api_key(self) -> bool:
        return self.config.provider != LLMProviderType.OLLAMA

    def has_credentials(self) -> bool:
        """Whether the configured provider can be called at all."""
        if not self.requires_api_key:
            return True
        return self.config.api_key_for_provider() is not None

    def get_chat_model(self, model_variant: Optional[str] = None):
        """
        Get chat model instance (lazy initialization).

        For Azure OpenAI the variant names a deployment; without one the
        configured deployment is used.
        """
        if self.config.provider == LLMProviderType.AZURE_OPENAI:
            model_name = model_variant or self.config.azure_deployment_name
        else:
            model_name = model_variant or self.config.model_name
        if model_name not in self._chat_models:
            self._chat_models[model_name] = self._create_chat_model(model_name)
        return self._chat_models[model_name]

    def _create_chat_model(self, model_name: str):
        """Create chat model based on provider configuration."""
        provider = self.config.provider

        if self.requires_api_key and not self.has_credentials():
            raise ConfigurationError(
                f"No API key configured for LLM provider '{provider.value}'",
                mode="remote-llm"
            )

        logger.debug("Creating %s chat model %s", provider.value, model_name)

        if provider == LLMProviderType.OPENAI:
            return self._create_openai_chat(model_name)
        elif provider == LLMProviderType.ANTHROPIC:
            return self._create_anthropic_chat(model_name)
        elif provider == LLMProviderType.OLLAMA:
            return self._create_ollama_chat(model_name)
        elif provider == LLMProviderType.AZURE_OPENAI:
            return self._create_azure_openai_chat(model_name)
        else:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}", mode="remote-llm")

    def _create_openai_chat(self, model_name: str):
        """Create OpenAI Chat model."""
        try:
            from langchain_openai import ChatOpenAI
        except ImportError as e:
            raise ConfigurationError(
                "Install langchain-openai: pip install langchain-openai", mode="remote-llm"
            ) from e

        return ChatOpenAI(
            model=model_name,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=self.config.api_key_for_provider(),
            timeout=self.config.timeout,
            max_retries=0
        )

    def _create_anthropic_chat(self, model_name: str):
        """Create Anthropic Chat model."""
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError as e:
            raise ConfigurationError(
                "Install langchain-anthropic: pip install langchain-anthropic", mode="remote-llm"
            ) from e

        return ChatAnthropic(
            model=model_name or "claude-3-5-sonnet-20241022",
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            api_key=self.config.api_key_for_provider(),
            timeout=self.config.timeout,
            max_retries=0
        )

    def _create_ollama_chat(self, model_name: str):
        """Create Ollama Chat model."""
        try:
            from langchain_community.chat_models import ChatOllama
        except ImportError as e:
            raise ConfigurationError(
                "Install langchain-community: pip install langchain-community", mode="remote-llm"
            ) from e

        return ChatOllama(
            model=model_name or "llama3.2",
            base_url=self.config.ollama_base_url,
            temperature=self.config.temperature,
            format="json"
        )

    def _create_azure_openai_chat(self, deployment_name: Optional[str]):
        """Create Azure OpenAI Chat model for one deployment."""
        if not self.config.azure_endpoint or not deployment_name:
            raise ConfigurationError(
                "Azure OpenAI requires LLM_AZURE_ENDPOINT and LLM_AZURE_DEPLOYMENT_NAME",
                mode="remote-llm"
            )
        try:
            from langchain_openai import AzureChatOpenAI
        except ImportError as e:
            raise ConfigurationError(
                "Install langchain-openai: pip install langchain-openai", mode="remote-llm"
            ) from e

        return AzureChatOpenAI(
            azure_endpoint=self.config.azure_endpoint,
            azure_deployment=deployment_name,
            api_version=self.config.azure_api_version,
            api_key=self.config.api_key_for_provider(),
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            max_retries=0
        )

    def with_structured_output(
        self,
        schema,
        model_variant: Optional[str] = None,
        include_raw: bool = False
    ):
        """Get chat model with structured output."""
        return structured_output(self.get_chat_model(model_variant), schema, include_raw=include_raw)


def structured_output(chat, schema, include_raw: bool = False):
    """
    Bind a pydantic `schema` to `chat`.

    Uses the model's native structured output (tool calling / JSON schema).
    Models without it get a PydanticOutputParser over their text reply.
    With `include_raw` both paths return {"raw", "parsed", "parsing_error"}.
    """
    try:
        return chat.with_structured_output(schema, include_raw=include_raw)
    except NotImplementedError:
        logger.debug("%s has no native structured output, parsing text", type(chat).__name__)

    from langchain_core.exceptions import OutputParserException
    from langchain_core.output_parsers import PydanticOutputParser
    from langchain_core.runnables import RunnableLambda

    parser = PydanticOutputParser(pydantic_object=schema)
    if not include_raw:
        return chat | parser

    def parse_with_raw(message):
        try:
            return {"raw": message, "parsed": parser.invoke(message), "parsing_error": None}
        except OutputParserException as e:
            return {"raw": message, "parsed": None, "parsing_error": e}

    return chat | RunnableLambda(parse_with_raw)


def get_chat_model(config: LLMConfig = None, model_variant: Optional[str] = None):
    """Get chat model instance."""
    return LLMProvider(config).get_chat_model(model_variant)
