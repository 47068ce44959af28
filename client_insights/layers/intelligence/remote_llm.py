"""
Remote LLM Back End

Contextual synthesis with a generative language model using:
- LangChain chat models (OpenAI, Anthropic, Ollama, Azure OpenAI)
- A single structured prompt covering the whole history
- Structured output bound to a pydantic schema (with_structured_output)

Failure classification:
- missing credentials / integration package -> ConfigurationError
- deadline exceeded -> BackendTimeoutError
- transport error, unparseable reply, schema mismatch -> BackendUnavailableError
"""

import asyncio
import json
import logging
from typing import Any, Optional, Sequence

from langchain_core.exceptions import OutputParserException

from .base import AnalysisBackend, BackendStats, Clock
from .heuristics import find_last_interaction
from .schemas import Highlight, InsightContent, RecommendedAction, RemoteInsightsPayload
from ...config.providers import LLMProvider, structured_output
from ...config.settings import LLMConfig, ProcessingConfig, ProcessingMode
from ...core.entities import CommunicationRecord
from ...core.errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    InsightsError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Prompts
# =============================================================================

SYSTEM_PROMPT = """You are an AI assistant for financial advisors.
Analyze client communications including emails, calendar events, chat messages and meetings
to provide actionable insights for relationship management.

Focus on:
- Investment goals and risk tolerance
- Life events that impact financial planning
- Communication patterns and client sentiment
- Meeting frequency, types, outcomes and follow-up needs
- Potential concerns or red flags

Be concise, professional, and action-oriented.
Reply with a single JSON object and nothing else."""


USER_TEMPLATE = """Analyze these communications for client {client_id} and provide structured insights.

## Communications ({record_count} records, oldest first):
{communications}

## Required JSON format:
{schema}

Rules:
- "sentiment" is one of "positive", "neutral", "negative"
- "priority" is one of "low", "medium", "high"
- "frequency_per_week" is a non-negative number
- "due_date" is YYYY-MM-DD or null
- "confidence" is a number between 0 and 1"""


RESPONSE_EXAMPLE = {
    "summary": {
        "text": "2-3 sentence overview of the client relationship and current situation",
        "topics": ["retirement", "portfolio"],
        "sentiment": "neutral",
        "frequency_per_week": 0.5
    },
    "recommended_actions": [
        {
            "title": "specific action to take",
            "rationale": "why this action is recommended",
            "priority": "medium",
            "due_date": "2024-01-15"
        }
    ],
    "highlights": [
        {"label": "Investment Goal", "value": "Retirement income by 65"}
    ],
    "confidence": 0.85
}


def extract_token_usage(response: Any) -> Optional[int]:
    """Total tokens from usage metadata, or the provider's raw token usage."""
    usage = getattr(response, "usage_metadata", None)
    if usage and usage.get("total_tokens") is not None:
        return int(usage["total_tokens"])

    metadata = getattr(response, "response_metadata", None) or {}
    token_usage = metadata.get("token_usage") or metadata.get("usage") or {}
    if token_usage.get("total_tokens") is not None:
        return int(token_usage["total_tokens"])
    return None


class RemoteLLMBackend(AnalysisBackend):
    """
    Back end calling a remote language model.

    The only back end that reports tokens used. Chat models come from the
    provider factory (one per model variant) unless one is injected.
    """

    CONFIDENCE = 0.9

    def __init__(
        self,
        llm_config: Optional[LLMConfig] = None,
        chat_model: Any = None,
        max_prompt_chars: int = 8000,
        max_prompt_records: int = 50,
        clock: Optional[Clock] = None
    ):
        super().__init__(clock)
        self._llm_config = llm_config
        self._provider: Optional[LLMProvider] = None
        self._chat_model = chat_model
        self.max_prompt_chars = max_prompt_chars
        self.max_prompt_records = max_prompt_records
        self._prompt = None
        self._chains: dict = {}

    @property
    def mode(self) -> ProcessingMode:
        return ProcessingMode.REMOTE_LLM

    @property
    def confidence(self) -> float:
        return self.CONFIDENCE

    def _get_provider(self) -> LLMProvider:
        """Lazy load LLM provider."""
        if self._provider is None:
            self._provider = LLMProvider(self._llm_config)
        return self._provider

    def _get_chain(self, model_variant: Optional[str]):
        """Prompt piped into the structured-output model, one per variant."""
        if model_variant not in self._chains:
            if self._chat_model is not None:
                structured_llm = structured_output(
                    self._chat_model, RemoteInsightsPayload, include_raw=True
                )
            else:
                structured_llm = self._get_provider().with_structured_output(
                    RemoteInsightsPayload, model_variant=model_variant, include_raw=True
                )
            self._chains[model_variant] = self._get_prompt() | structured_llm
        return self._chains[model_variant]

    def _get_prompt(self):
        if self._prompt is None:
            from langchain_core.prompts import ChatPromptTemplate

            self._prompt = ChatPromptTemplate.from_messages([
                ("system", SYSTEM_PROMPT),
                ("human", USER_TEMPLATE)
            ])
        return self._prompt

    def prepare_communications_text(self, records: Sequence[CommunicationRecord]) -> str:
        """
        Render records oldest first, keeping the most recent ones.

        At most `max_prompt_records` records are rendered and the result is
        cut at `max_prompt_chars`.
        """
        ordered = sorted(
            records,
            key=lambda r: (r.timestamp is None, r.timestamp.timestamp() if r.timestamp else 0)
        )
        if len(ordered) > self.max_prompt_records:
            ordered = ordered[-self.max_prompt_records:]

        blocks = []
        for index, record in enumerate(ordered, start=1):
            when = record.timestamp.date().isoformat() if record.timestamp else "Unknown date"
            subject = record.subject or "No subject"
            body = record.body or "No content"

            if record.is_meeting:
                attendees = ", ".join(a.display for a in record.attendees) or "Unknown attendees"
                blocks.append(
                    f"MEETING {index} ({when}):\n"
                    f"Type: {record.meeting_type or 'meeting'}\n"
                    f"Subject: {subject}\n"
                    f"Status: {record.status.value if record.status else 'unknown'}\n"
                    f"Duration: {record.duration_minutes or 'unknown'} min\n"
                    f"Attendees: {attendees}\n"
                    f"Location: {record.location or record.url or 'Location TBD'}\n"
                    f"Description: {body}\n"
                    f"---"
                )
            else:
                blocks.append(
                    f"{record.type.value.upper()} {index} ({when}):\n"
                    f"From: {record.sender or 'Unknown sender'}\n"
                    f"Subject: {subject}\n"
                    f"Content: {body}\n"
                    f"---"
                )

        return "\n".join(blocks)[:self.max_prompt_chars]

    def prompt_variables(self, client_id: str, records: Sequence[CommunicationRecord]) -> dict:
        return {
            "client_id": client_id,
            "record_count": len(records),
            "communications": self.prepare_communications_text(records),
            "schema": json.dumps(RESPONSE_EXAMPLE, indent=2)
        }

    def build_messages(self, client_id: str, records: Sequence[CommunicationRecord]):
        return self._get_prompt().format_messages(**self.prompt_variables(client_id, records))

    async def analyze(
        self,
        client_id: str,
        records: Sequence[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats]:
        if not records:
            raise ValidationError(
                f"No communications to analyze for client {client_id}",
                mode=self.mode.value
            )

        chain = self._get_chain(config.model_variant)
        variables = self.prompt_variables(client_id, records)

        try:
            result = await asyncio.wait_for(
                chain.ainvoke(variables),
                timeout=config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise BackendTimeoutError(
                f"Language model did not respond within {config.timeout_ms}ms",
                mode=self.mode.value,
                timeout_ms=config.timeout_ms
            ) from e
        except InsightsError:
            raise
        except OutputParserException as e:
            raise BackendUnavailableError(
                f"Language model reply could not be parsed: {e}",
                mode=self.mode.value
            ) from e
        except Exception as e:
            raise BackendUnavailableError(
                f"Language model request failed: {e}",
                mode=self.mode.value
            ) from e

        payload, raw = self.unpack_result(result)

        highlights = list(payload.highlights)
        if payload.confidence is not None:
            model_confidence = max(0.0, min(1.0, payload.confidence))
            highlights.append(Highlight(label="Model Confidence", value=f"{model_confidence:.2f}"))

        content = InsightContent(
            summary=payload.summary,
            last_interaction=find_last_interaction(records),
            recommended_actions=[
                RecommendedAction(id=f"llm-{index}", **action.model_dump())
                for index, action in enumerate(payload.recommended_actions, start=1)
            ],
            highlights=highlights
        )
        return content, BackendStats(confidence=self.CONFIDENCE, tokens_used=extract_token_usage(raw))

    def unpack_result(self, result: Any) -> tuple[RemoteInsightsPayload, Any]:
        """
        Split a structured-output result into the payload and the raw message.

        `include_raw` results are dicts with "raw", "parsed" and
        "parsing_error"; anything else is taken as the payload itself.
        """
        if isinstance(result, dict):
            raw = result.get("raw")
            parsed = result.get("parsed")
            error = result.get("parsing_error")
        else:
            raw, parsed, error = None, result, None

        if error is not None:
            raise BackendUnavailableError(
                f"Language model reply could not be parsed: {error}",
                mode=self.mode.value
            ) from error
        if not isinstance(parsed, RemoteInsightsPayload):
            raise BackendUnavailableError(
                "Language model returned no structured reply",
                mode=self.mode.value
            )
        return parsed, raw
