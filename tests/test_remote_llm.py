"""
Tests for the remote LLM back end.

A fake chat model stands in for the LangChain client; no network access.
"""

import json
from types import SimpleNamespace

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from client_insights.config.settings import ProcessingConfig, ProcessingMode
from client_insights.core.entities import MeetingStatus
from client_insights.core.errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    ConfigurationError,
    ValidationError,
)
from client_insights.layers.intelligence.remote_llm import (
    RemoteLLMBackend,
    extract_token_usage,
)

from conftest import FakeChatModel, make_meeting, make_record


def payload(**overrides):
    """A valid model reply as a dict."""
    data = {
        "summary": {
            "text": "Client is focused on retirement.",
            "topics": ["retirement", "portfolio", "retirement"],
            "sentiment": "neutral",
            "frequency_per_week": 0.5
        },
        "recommended_actions": [
            {"title": "Call client", "rationale": "Anxiety", "priority": "high", "due_date": "2024-03-02"},
            {"title": "Send report", "rationale": "Requested", "priority": "low", "due_date": None},
        ],
        "highlights": [{"label": "Investment Goal", "value": "Retire at 60"}],
        "confidence": 0.7
    }
    data.update(overrides)
    return data


@pytest.fixture
def remote_config():
    """Remote config with the shortest allowed timeout."""
    return ProcessingConfig(mode=ProcessingMode.REMOTE_LLM, timeout_ms=1000)


@pytest.fixture
def records():
    return [
        make_record("e1", subject="Old", body="First message", timestamp="2024-01-01T00:00:00Z"),
        make_record("e2", subject="New", body="Latest message", timestamp="2024-02-01T00:00:00Z"),
    ]


def backend_with(model, **kwargs):
    return RemoteLLMBackend(chat_model=model, **kwargs)


class TestRemoteAnalysis:
    @pytest.mark.asyncio
    async def test_successful_reply(self, records, remote_config):
        """A structured reply is mapped onto InsightContent with tokens from the raw message."""
        model = FakeChatModel(content=json.dumps(payload()), total_tokens=321)
        backend = backend_with(model)

        content, stats = await backend.analyze("c-1", records, remote_config)

        assert backend.mode == ProcessingMode.REMOTE_LLM
        assert stats.tokens_used == 321
        assert stats.confidence == 0.9
        assert content.summary.topics == ["retirement", "portfolio"]
        assert [a.id for a in content.recommended_actions] == ["llm-1", "llm-2"]
        assert str(content.recommended_actions[0].due_date) == "2024-03-02"
        assert content.last_interaction.subject == "New"
        assert content.meeting_insights is None
        assert len(model.calls) == 1
        assert "client c-1" in model.calls[0][1].content

    @pytest.mark.asyncio
    async def test_model_confidence_is_a_highlight(self, records, remote_config):
        """The reported confidence stays fixed; the model's own figure is shown, clipped."""
        backend = backend_with(FakeChatModel(content=json.dumps(payload(confidence=0.3))))

        content, stats = await backend.analyze("c-1", records, remote_config)

        assert stats.confidence == 0.9
        assert [(h.label, h.value) for h in content.highlights] == [
            ("Investment Goal", "Retire at 60"),
            ("Model Confidence", "0.30"),
        ]

        backend = backend_with(FakeChatModel(content=json.dumps(payload(confidence=1.4))))

        content, stats = await backend.analyze("c-1", records, remote_config)

        assert stats.confidence == 0.9
        assert content.highlights[-1].value == "1.00"

    @pytest.mark.asyncio
    async def test_model_without_native_structured_output(self, records, remote_config):
        """Models lacking tool calling have their fenced text reply parsed."""
        text = "```json\n" + json.dumps(payload()) + "\n```"
        backend = backend_with(FakeListChatModel(responses=[text]))

        content, stats = await backend.analyze("c-1", records, remote_config)

        assert content.summary.text == "Client is focused on retirement."
        assert [a.id for a in content.recommended_actions] == ["llm-1", "llm-2"]
        assert stats.confidence == 0.9
        assert stats.tokens_used is None

    @pytest.mark.asyncio
    async def test_unparseable_text_reply_is_unavailable(self, records, remote_config):
        backend = backend_with(FakeListChatModel(responses=["Sorry, I cannot help with that."]))

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.analyze("c-1", records, remote_config)

        assert "could not be parsed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_confidence_adds_no_highlight(self, records, remote_config):
        data = payload()
        del data["confidence"]
        backend = backend_with(FakeChatModel(content=json.dumps(data), total_tokens=None))

        content, stats = await backend.analyze("c-1", records, remote_config)

        assert stats.confidence == 0.9
        assert stats.tokens_used is None
        assert [h.label for h in content.highlights] == ["Investment Goal"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [
        "",
        "not json at all",
        json.dumps({"summary": {"text": "x", "sentiment": "mixed", "frequency_per_week": 1}}),
        json.dumps({"summary": {"text": "x", "sentiment": "neutral", "frequency_per_week": -1}}),
    ])
    async def test_malformed_reply_is_unavailable(self, records, remote_config, reply):
        backend = backend_with(FakeChatModel(content=reply))

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.analyze("c-1", records, remote_config)

        assert exc_info.value.mode == "remote-llm"

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self, records, remote_config):
        backend = backend_with(FakeChatModel(error=ConnectionError("connection reset")))

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.analyze("c-1", records, remote_config)

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_timeout(self, records, remote_config):
        backend = backend_with(FakeChatModel(content=json.dumps(payload()), delay=5))

        with pytest.raises(BackendTimeoutError) as exc_info:
            await backend.analyze("c-1", records, remote_config)

        assert exc_info.value.timeout_ms == 1000
        assert isinstance(exc_info.value, TimeoutError)

    @pytest.mark.asyncio
    async def test_empty_records(self, remote_config):
        backend = backend_with(FakeChatModel(content=json.dumps(payload())))

        with pytest.raises(ValidationError):
            await backend.analyze("c-1", [], remote_config)

    @pytest.mark.asyncio
    async def test_missing_api_key(self, records, remote_config, test_settings):
        """Without a key the provider factory refuses to build a model."""
        backend = RemoteLLMBackend(llm_config=test_settings.llm)

        with pytest.raises(ConfigurationError):
            await backend.analyze("c-1", records, remote_config)


class TestPrompt:
    def test_records_rendered_oldest_first(self, records):
        backend = RemoteLLMBackend(chat_model=FakeChatModel())

        text = backend.prepare_communications_text(list(reversed(records)))

        assert text.index("Subject: Old") < text.index("Subject: New")
        assert text.startswith("EMAIL 1 (2024-01-01):")

    def test_record_limit_keeps_most_recent(self, records):
        backend = RemoteLLMBackend(chat_model=FakeChatModel(), max_prompt_records=1)

        text = backend.prepare_communications_text(records)

        assert "Subject: New" in text
        assert "Subject: Old" not in text

    def test_character_limit(self, records):
        backend = RemoteLLMBackend(chat_model=FakeChatModel(), max_prompt_chars=40)

        assert len(backend.prepare_communications_text(records)) == 40

    def test_meeting_block(self):
        meeting = make_meeting("m1", MeetingStatus.COMPLETED, 3, duration_minutes=30, location="Office")
        backend = RemoteLLMBackend(chat_model=FakeChatModel())

        text = backend.prepare_communications_text([meeting])

        assert text.startswith("MEETING 1")
        assert "Status: completed" in text
        assert "Location: Office" in text

    def test_build_messages(self, records):
        backend = RemoteLLMBackend(chat_model=FakeChatModel())

        messages = backend.build_messages("c-42", records)

        assert len(messages) == 2
        assert "financial advisors" in messages[0].content
        assert "client c-42" in messages[1].content
        assert "2 records" in messages[1].content
        assert '"recommended_actions"' in messages[1].content


class TestTokenUsage:
    def test_token_usage_from_response_metadata(self):
        response = SimpleNamespace(
            usage_metadata=None,
            response_metadata={"token_usage": {"total_tokens": 50}}
        )

        assert extract_token_usage(response) == 50
        assert extract_token_usage(SimpleNamespace()) is None
