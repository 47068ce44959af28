"""
Shared fixtures for the insight engine test suite.

Provides a fixed clock, record factories, an in-memory client book and
fake back ends / chat models so no test touches the network.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from langchain_core.exceptions import OutputParserException
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda
from pydantic import ValidationError as PydanticValidationError

from client_insights.config.settings import (
    LLMConfig,
    ProcessingConfig,
    ProcessingMode,
    ProcessingSettings,
    Settings,
)
from client_insights.core.entities import (
    Client,
    CommunicationRecord,
    CommunicationType,
)
from client_insights.layers.data_ingestion.sources import (
    InMemoryClientDirectory,
    InMemoryCommunicationStore,
)
from client_insights.layers.intelligence.base import AnalysisBackend, BackendStats
from client_insights.layers.intelligence.local_nlp import LocalNLPBackend
from client_insights.layers.intelligence.rule_based import RuleBasedBackend
from client_insights.layers.intelligence.schemas import ClientSummary, InsightContent


FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(
    record_id="e1",
    type=CommunicationType.EMAIL,
    sender="client@x.com",
    subject="Hi",
    body="",
    timestamp="2024-01-01T00:00:00Z",
    **meeting_fields
):
    """Build a CommunicationRecord with sensible defaults."""
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    return CommunicationRecord(
        id=record_id,
        type=type,
        sender=sender,
        subject=subject,
        body=body,
        timestamp=timestamp,
        **meeting_fields
    )


def make_meeting(record_id, status, days_before_now, meeting_type="portfolio_review", **fields):
    """Build a meeting record relative to FIXED_NOW."""
    return make_record(
        record_id=record_id,
        type=CommunicationType.MEETING,
        subject=fields.pop("subject", "Portfolio review"),
        body=fields.pop("body", "Review of the portfolio allocation"),
        timestamp=FIXED_NOW - timedelta(days=days_before_now),
        meeting_type=meeting_type,
        status=status,
        **fields
    )


class FakeBackend(AnalysisBackend):
    """
    Configurable back end for orchestration tests.

    Behaviour per call: raise `error`, sleep `delay` seconds, then return a
    minimal valid result.
    """

    def __init__(self, mode, confidence=0.7, error=None, delay=0.0, tokens=None, errors=None):
        super().__init__(clock=lambda: FIXED_NOW)
        self._mode = mode
        self._confidence = confidence
        self.error = error
        self.errors = list(errors or [])
        self.delay = delay
        self.tokens = tokens
        self.calls = []

    @property
    def mode(self):
        return self._mode

    @property
    def confidence(self):
        return self._confidence

    async def analyze(self, client_id, records, config):
        self.calls.append((client_id, list(records), config))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        if self.error is not None:
            raise self.error
        content = InsightContent(
            summary=ClientSummary(
                text=f"{self._mode.value} summary of {len(records)} records",
                topics=[],
                sentiment="neutral",
                frequency_per_week=0.0
            )
        )
        return content, BackendStats(confidence=self._confidence, tokens_used=self.tokens)


class FakeChatModel:
    """
    Stands in for a LangChain chat model with native structured output.

    The canned `content` is validated against the bound schema the way a
    tool-calling model's arguments would be.
    """

    def __init__(self, content="", total_tokens=321, error=None, delay=0.0):
        self.content = content
        self.total_tokens = total_tokens
        self.error = error
        self.delay = delay
        self.calls = []

    def _raw_message(self):
        usage = None
        if self.total_tokens is not None:
            usage = {
                "input_tokens": self.total_tokens - 21,
                "output_tokens": 21,
                "total_tokens": self.total_tokens,
            }
        return AIMessage(content=self.content, usage_metadata=usage)

    def with_structured_output(self, schema, include_raw=False):
        async def respond(prompt_value):
            self.calls.append(prompt_value.to_messages())
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            try:
                parsed, parsing_error = schema.model_validate_json(self.content), None
            except PydanticValidationError as e:
                parsed, parsing_error = None, e
            if not include_raw:
                if parsing_error is not None:
                    raise OutputParserException(str(parsing_error))
                return parsed
            return {"raw": self._raw_message(), "parsed": parsed, "parsing_error": parsing_error}

        return RunnableLambda(respond)


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2024-03-01 12:00 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture
def rule_backend(fixed_clock):
    return RuleBasedBackend(clock=fixed_clock)


@pytest.fixture
def nlp_backend(fixed_clock):
    return LocalNLPBackend(clock=fixed_clock)


@pytest.fixture
def processing_config():
    """Rule-based config with fast retries for tests."""
    return ProcessingConfig(
        mode=ProcessingMode.RULE_BASED,
        timeout_ms=1000,
        fallback_to_rule_based=True,
        max_retries=1,
        retry_backoff_ms=0
    )


@pytest.fixture
def test_settings(monkeypatch):
    """Settings isolated from the host environment (no API keys)."""
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "LLM_PROVIDER", "INSIGHTS_DEFAULT_MODE"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        llm=LLMConfig(provider="openai"),
        processing=ProcessingSettings()
    )


@pytest.fixture
def client_book():
    """
    Directory and store with three clients.

    Alex has two emails and a chat, Maria has one email and a meeting,
    Sam has no communications.
    """
    directory = InMemoryClientDirectory([
        Client(id="c-1", name="Alex Johnson", email="alex.johnson@example.com"),
        Client(id="c-2", name="Maria Gonzalez", email="maria.gonzalez@example.com"),
        Client(id="c-3", name="Sam Lee", email="sam@lee.example.com"),
    ])
    store = InMemoryCommunicationStore(
        emails=[
            {
                "id": "e-1", "clientId": "c-1",
                "from": {"name": "Alex Johnson", "address": "alex.johnson@example.com"},
                "subject": "Portfolio question",
                "body": "Thanks, I'm pleased with performance.",
                "receivedDateTime": "2024-01-01T09:00:00Z",
            },
            {
                "id": "e-2", "clientId": "c-1",
                "from": {"name": "Alex Johnson", "address": "alex.johnson@example.com"},
                "subject": "Worried",
                "body": "I'm worried about the market crash.",
                "receivedDateTime": "2024-01-09T09:00:00Z",
            },
            {
                "id": "e-3", "clientId": "c-2",
                "from": {"name": "Maria Gonzalez", "address": "maria.gonzalez@example.com"},
                "subject": "College fund",
                "body": "Can we review the college savings plan?",
                "receivedDateTime": "2024-02-01T09:00:00Z",
            },
        ],
        chats=[
            {
                "id": "t-1", "clientId": "c-1", "from": "Alex Johnson",
                "createdDateTime": "2024-01-05T09:00:00Z",
                "content": "Quick question about fees",
            },
        ],
        meetings=[
            {
                "id": "m-1", "clientId": "c-2",
                "title": "Planning session",
                "type": "planning_session", "status": "scheduled",
                "startTime": "2024-03-10T15:00:00Z", "duration": 45,
                "meetingUrl": "https://meet.example.com/abc",
            },
        ]
    )
    return directory, store
