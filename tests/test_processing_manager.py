"""
Tests for the processing manager: dispatch, retries, fallback and config.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from client_insights.config.settings import ProcessingConfig, ProcessingMode
from client_insights.core.errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    ConfigurationError,
    ValidationError,
)
from client_insights.layers.intelligence.rule_based import RuleBasedBackend
from client_insights.layers.orchestration.processing_manager import (
    ProcessingManager,
    validate_records,
)

from conftest import FIXED_NOW, FakeBackend, make_record


@pytest.fixture
def records():
    return [
        make_record("e1", body="I'm worried about the market crash"),
        make_record("e2", subject="Later", body="Thanks", timestamp="2024-01-03T00:00:00Z"),
    ]


@pytest.fixture
def sleep():
    """Records backoff delays instead of sleeping."""
    return AsyncMock()


def make_manager(test_settings, sleep, mode=ProcessingMode.REMOTE_LLM, remote=None, local=None, **config):
    """Manager with a real rule-based back end and fake local/remote ones."""
    config.setdefault("timeout_ms", 1000)
    config.setdefault("retry_backoff_ms", 0)
    backends = {
        ProcessingMode.RULE_BASED: RuleBasedBackend(clock=lambda: FIXED_NOW),
        ProcessingMode.LOCAL_NLP: local or FakeBackend(ProcessingMode.LOCAL_NLP, confidence=0.8),
        ProcessingMode.REMOTE_LLM: remote or FakeBackend(ProcessingMode.REMOTE_LLM, confidence=0.9, tokens=42),
    }
    return ProcessingManager(
        ProcessingConfig(mode=mode, **config),
        backends=backends,
        settings=test_settings,
        sleep=sleep
    )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_method_matches_selected_mode(self, test_settings, sleep, records):
        manager = make_manager(test_settings, sleep, mode=ProcessingMode.RULE_BASED)

        insights = await manager.process_client_communications("c-1", records)

        assert insights.method == ProcessingMode.RULE_BASED
        assert insights.processing_metrics.confidence == 0.5
        assert insights.processing_metrics.tokens_used is None
        assert insights.processing_metrics.processing_time_ms >= 0
        assert insights.summary.sentiment == "negative"

    @pytest.mark.asyncio
    async def test_remote_reports_tokens(self, test_settings, sleep, records):
        manager = make_manager(test_settings, sleep)

        insights = await manager.process_client_communications("c-1", records)

        assert insights.method == ProcessingMode.REMOTE_LLM
        assert insights.processing_metrics.tokens_used == 42
        assert insights.processing_metrics.confidence == 0.9

    @pytest.mark.asyncio
    async def test_per_call_mode_override(self, test_settings, sleep, records):
        """A mode argument applies to one call and leaves the config alone."""
        manager = make_manager(test_settings, sleep)

        insights = await manager.process_client_communications("c-1", records, mode="local-nlp")

        assert insights.method == ProcessingMode.LOCAL_NLP
        assert manager.current_mode == ProcessingMode.REMOTE_LLM

    @pytest.mark.asyncio
    async def test_unknown_mode_override(self, test_settings, sleep, records):
        manager = make_manager(test_settings, sleep)

        with pytest.raises(ConfigurationError):
            await manager.process_client_communications("c-1", records, mode="quantum")

    @pytest.mark.asyncio
    async def test_empty_records_yield_zero_insights(self, test_settings, sleep):
        manager = make_manager(test_settings, sleep, mode=ProcessingMode.RULE_BASED)

        insights = await manager.process_client_communications("c-1", [])

        assert insights.last_interaction is None
        assert insights.recommended_actions == []
        assert insights.summary.text.startswith("0 communications")


class TestFallback:
    @pytest.mark.asyncio
    async def test_remote_failure_falls_back(self, test_settings, sleep, records):
        """A failing remote call returns rule-based insights, no exception surfaced."""
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, error=BackendUnavailableError("503", mode="remote-llm"))
        manager = make_manager(test_settings, sleep, remote=remote)

        insights = await manager.process_client_communications("c-1", records)

        assert insights.method == ProcessingMode.RULE_BASED
        assert insights.processing_metrics.confidence == 0.5
        assert insights.processing_metrics.tokens_used is None
        assert manager.metrics.calculate_fallback_rate().value == 100.0

    @pytest.mark.asyncio
    async def test_failure_propagates_without_fallback(self, test_settings, sleep, records):
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, error=BackendUnavailableError("503"))
        manager = make_manager(test_settings, sleep, remote=remote, fallback_to_rule_based=False)

        with pytest.raises(BackendUnavailableError):
            await manager.process_client_communications("c-1", records)

        failure_rate = manager.metrics.calculate_failure_rate()
        assert failure_rate.value == 100.0
        assert failure_rate.breakdown["by_error_type"] == {"BackendUnavailableError": 1}

    @pytest.mark.asyncio
    async def test_timeout(self, test_settings, sleep, records):
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, delay=5)
        manager = make_manager(test_settings, sleep, remote=remote, fallback_to_rule_based=False)

        with pytest.raises(BackendTimeoutError) as exc_info:
            await manager.process_client_communications("c-1", records)

        assert exc_info.value.timeout_ms == 1000
        assert exc_info.value.mode == "remote-llm"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, test_settings, sleep, records):
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, error=RuntimeError("boom"))
        manager = make_manager(test_settings, sleep, remote=remote, fallback_to_rule_based=False)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await manager.process_client_communications("c-1", records)

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_local_validation_error_falls_back(self, test_settings, sleep, records):
        local = FakeBackend(ProcessingMode.LOCAL_NLP, error=ValidationError("no text", mode="local-nlp"))
        manager = make_manager(test_settings, sleep, mode=ProcessingMode.LOCAL_NLP, local=local)

        insights = await manager.process_client_communications("c-1", records)

        assert insights.method == ProcessingMode.RULE_BASED
        assert len(local.calls) == 1


class TestRetries:
    @pytest.mark.asyncio
    async def test_retry_then_succeed(self, test_settings, sleep, records):
        remote = FakeBackend(
            ProcessingMode.REMOTE_LLM,
            errors=[BackendUnavailableError("503"), BackendUnavailableError("503")]
        )
        manager = make_manager(test_settings, sleep, remote=remote, max_retries=3, retry_backoff_ms=500)

        insights = await manager.process_client_communications("c-1", records)

        assert insights.method == ProcessingMode.REMOTE_LLM
        assert len(remote.calls) == 3
        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, test_settings, sleep, records):
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, error=BackendUnavailableError("503"))
        manager = make_manager(
            test_settings, sleep, remote=remote,
            max_retries=3, retry_backoff_ms=2000, fallback_to_rule_based=False
        )

        with pytest.raises(BackendUnavailableError):
            await manager.process_client_communications("c-1", records)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 3.0]

    @pytest.mark.asyncio
    async def test_configuration_error_is_not_retried(self, test_settings, sleep, records):
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, error=ConfigurationError("no key"))
        manager = make_manager(test_settings, sleep, remote=remote, max_retries=3)

        insights = await manager.process_client_communications("c-1", records)

        assert len(remote.calls) == 1
        assert insights.method == ProcessingMode.RULE_BASED
        sleep.assert_not_awaited()


class TestConfiguration:
    def test_get_current_config_is_a_copy(self, test_settings, sleep):
        manager = make_manager(test_settings, sleep)

        config = manager.get_current_config()

        assert config == manager.get_current_config()
        assert config is not manager.get_current_config()

    def test_update_config(self, test_settings, sleep):
        manager = make_manager(test_settings, sleep)

        updated = manager.update_config(mode=ProcessingMode.LOCAL_NLP, timeout_ms=5000)

        assert updated.mode == ProcessingMode.LOCAL_NLP
        assert manager.current_mode == ProcessingMode.LOCAL_NLP
        assert manager.get_current_config().timeout_ms == 5000

    @pytest.mark.parametrize("changes", [
        {"timeout_ms": 10},
        {"max_retries": 0},
        {"retry_backoff_ms": 5000},
        {"mode": "quantum"},
        {"unknown_field": 1},
    ])
    def test_invalid_update_leaves_config_unchanged(self, test_settings, sleep, changes):
        manager = make_manager(test_settings, sleep)
        before = manager.get_current_config()

        with pytest.raises(ConfigurationError):
            manager.update_config(changes)

        assert manager.get_current_config() == before

    def test_update_to_unregistered_mode(self, test_settings, sleep):
        manager = ProcessingManager(
            ProcessingConfig(mode=ProcessingMode.RULE_BASED),
            backends={ProcessingMode.RULE_BASED: RuleBasedBackend()},
            settings=test_settings,
            sleep=sleep
        )

        with pytest.raises(ConfigurationError):
            manager.update_config(mode=ProcessingMode.REMOTE_LLM)

    @pytest.mark.asyncio
    async def test_in_flight_call_keeps_its_snapshot(self, test_settings, sleep, records):
        """Changing the mode mid-call does not affect the running call."""
        remote = FakeBackend(ProcessingMode.REMOTE_LLM, delay=0.05)
        manager = make_manager(test_settings, sleep, remote=remote)

        task = asyncio.ensure_future(manager.process_client_communications("c-1", records))
        await asyncio.sleep(0)
        manager.update_config(mode=ProcessingMode.RULE_BASED)
        insights = await task

        assert insights.method == ProcessingMode.REMOTE_LLM
        assert remote.calls[0][2].mode == ProcessingMode.REMOTE_LLM
        assert manager.current_mode == ProcessingMode.RULE_BASED


class TestRecordValidation:
    @pytest.mark.parametrize("bad_input", [None, "records", b"records", {"id": "e1"}, 42])
    def test_rejects_non_sequences(self, bad_input):
        with pytest.raises(ValidationError):
            validate_records(bad_input)

    def test_rejects_foreign_items(self):
        with pytest.raises(ValidationError):
            validate_records([{"id": "e1"}])

    def test_rejects_missing_id(self):
        with pytest.raises(ValidationError):
            validate_records([make_record(record_id="")])

    def test_rejects_missing_timestamp(self):
        with pytest.raises(ValidationError):
            validate_records([make_record(timestamp=None)])

    def test_rejects_duplicate_ids(self):
        with pytest.raises(ValidationError):
            validate_records([make_record("e1"), make_record("e1")])

    def test_accepts_generators(self):
        assert len(validate_records(make_record(f"e{i}") for i in range(3))) == 3

    @pytest.mark.asyncio
    async def test_invalid_records_surface_even_with_fallback(self, test_settings, sleep):
        manager = make_manager(test_settings, sleep)

        with pytest.raises(ValidationError):
            await manager.process_client_communications("c-1", [make_record(timestamp=None)])
