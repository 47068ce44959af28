"""
Processing Manager - Dispatch, timeout and fallback across back ends

Owns the active ProcessingConfig and turns a client's records into
Insights:
1. Snapshot the config (a mode override applies to this call only)
2. Validate the records
3. Dispatch to the selected back end with the configured timeout,
   retrying with linear backoff
4. On failure, fall back once to the rule-based back end if allowed
5. Stamp processing metrics with the back end actually used

The config is immutable; update_config() swaps in a new instance, so calls
already in flight keep the snapshot they started with.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..intelligence.base import AnalysisBackend, BackendStats
from ..intelligence.local_nlp import LocalNLPBackend
from ..intelligence.remote_llm import RemoteLLMBackend
from ..intelligence.rule_based import RuleBasedBackend
from ..intelligence.schemas import InsightContent, Insights, ProcessingMetrics
from ...config.settings import ProcessingConfig, ProcessingMode, Settings, get_settings
from ...core.entities import CommunicationRecord
from ...core.errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    ConfigurationError,
    InsightsError,
    ValidationError,
)
from ...metrics.calculator import MetricsCalculator

logger = logging.getLogger(__name__)


MAX_BACKOFF_MS = 3000

# Errors a retry cannot fix
NON_RETRYABLE = (ConfigurationError, ValidationError)


def build_default_backends(settings: Optional[Settings] = None) -> dict[ProcessingMode, AnalysisBackend]:
    """One back end per mode, configured from settings."""
    settings = settings or get_settings()
    return {
        ProcessingMode.RULE_BASED: RuleBasedBackend(),
        ProcessingMode.LOCAL_NLP: LocalNLPBackend(),
        ProcessingMode.REMOTE_LLM: RemoteLLMBackend(
            llm_config=settings.llm,
            max_prompt_chars=settings.processing.max_prompt_chars,
            max_prompt_records=settings.processing.max_prompt_records
        ),
    }


def validate_records(records: Any) -> list[CommunicationRecord]:
    """
    Reject malformed input before any back end sees it.

    Records must be CommunicationRecords with a non-empty id, a timestamp,
    and ids unique within the set.
    """
    if records is None or isinstance(records, (str, bytes, dict)):
        raise ValidationError(f"Expected a sequence of records, got {type(records).__name__}")
    try:
        items = list(records)
    except TypeError as e:
        raise ValidationError(f"Expected a sequence of records, got {type(records).__name__}") from e

    seen = set()
    for index, record in enumerate(items):
        if not isinstance(record, CommunicationRecord):
            raise ValidationError(f"Record {index} is not a CommunicationRecord: {type(record).__name__}")
        if not record.id:
            raise ValidationError(f"Record {index} has no id")
        if record.timestamp is None:
            raise ValidationError(f"Record {record.id!r} has no valid timestamp")
        if record.id in seen:
            raise ValidationError(f"Duplicate record id {record.id!r}")
        seen.add(record.id)

    return items


class ProcessingManager:
    """
    Orchestrates the analysis back ends.

    Managers are plain instances: create one per application (or per
    test) and pass it to whatever needs it.
    """

    def __init__(
        self,
        config: Optional[ProcessingConfig] = None,
        backends: Optional[dict[ProcessingMode, AnalysisBackend]] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCalculator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        settings = settings or get_settings()
        self._config = config or ProcessingConfig.from_settings(settings)
        self._backends = backends if backends is not None else build_default_backends(settings)
        self.metrics = metrics or MetricsCalculator()
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def get_current_config(self) -> ProcessingConfig:
        """Read-only copy of the live configuration."""
        return self._config.model_copy()

    @property
    def current_mode(self) -> ProcessingMode:
        return self._config.mode

    def update_config(self, partial: Optional[dict] = None, **changes) -> ProcessingConfig:
        """
        Replace the live configuration with `changes` applied.

        Affects subsequent calls only. Invalid values raise
        ConfigurationError and leave the configuration unchanged.
        """
        merged = self._config.model_dump()
        merged.update(partial or {})
        merged.update(changes)
        try:
            new_config = ProcessingConfig(**merged)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid processing configuration: {e}") from e

        if new_config.mode not in self._backends:
            raise ConfigurationError(f"No back end registered for mode {new_config.mode.value}")

        if new_config.mode != self._config.mode:
            logger.info("Processing mode changed from %s to %s", self._config.mode.value, new_config.mode.value)
        self._config = new_config
        return self.get_current_config()

    def backend_for(self, mode: ProcessingMode) -> AnalysisBackend:
        try:
            return self._backends[mode]
        except KeyError:
            raise ConfigurationError(f"No back end registered for mode {mode.value}", mode=mode.value)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_client_communications(
        self,
        client_id: str,
        records: Iterable[CommunicationRecord],
        mode: Optional[Union[str, ProcessingMode]] = None
    ) -> Insights:
        """
        Analyze `records` for `client_id`.

        Returns complete Insights or raises a typed InsightsError.
        """
        config = self._config
        if mode is not None:
            try:
                config = config.model_copy(update={"mode": ProcessingMode(mode)})
            except ValueError as e:
                raise ConfigurationError(f"Unknown processing mode: {mode!r}") from e

        started = time.perf_counter()
        try:
            items = validate_records(records)
            content, stats, method, fell_back = await self._process(client_id, items, config)
        except InsightsError as e:
            self.metrics.record_failure(config.mode.value, self._elapsed_ms(started), e)
            raise

        elapsed_ms = self._elapsed_ms(started)
        insights = Insights(
            **content.model_dump(),
            processing_metrics=ProcessingMetrics(
                processing_time_ms=elapsed_ms,
                tokens_used=stats.tokens_used,
                confidence=stats.confidence if stats.confidence is not None else self.backend_for(method).confidence,
                method=method
            )
        )

        self.metrics.record_success(
            requested_mode=config.mode.value,
            method=method.value,
            latency_ms=elapsed_ms,
            tokens_used=stats.tokens_used,
            fell_back=fell_back
        )
        logger.info(
            "Analyzed %d records for %s with %s in %.1fms",
            len(items), client_id, method.value, elapsed_ms
        )
        return insights

    async def _process(
        self,
        client_id: str,
        records: list[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats, ProcessingMode, bool]:
        try:
            content, stats = await self._dispatch_with_retries(client_id, records, config)
            return content, stats, config.mode, False
        except InsightsError as e:
            if not config.fallback_to_rule_based or config.mode == ProcessingMode.RULE_BASED:
                raise
            logger.warning(
                "%s failed for %s (%s: %s), falling back to rule-based",
                config.mode.value, client_id, type(e).__name__, e
            )

        fallback = self.backend_for(ProcessingMode.RULE_BASED)
        content, stats = await self._run_backend(fallback, client_id, records, config)
        return content, stats, ProcessingMode.RULE_BASED, True

    async def _dispatch_with_retries(
        self,
        client_id: str,
        records: list[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats]:
        backend = self.backend_for(config.mode)
        last_error: Optional[InsightsError] = None

        for attempt in range(1, config.max_retries + 1):
            try:
                return await self._run_backend(backend, client_id, records, config)
            except NON_RETRYABLE:
                raise
            except InsightsError as e:
                last_error = e
                logger.warning(
                    "Attempt %d/%d with %s failed: %s",
                    attempt, config.max_retries, config.mode.value, e
                )
                if attempt < config.max_retries:
                    delay_ms = min(config.retry_backoff_ms * attempt, MAX_BACKOFF_MS)
                    await self._sleep(delay_ms / 1000)

        raise last_error

    async def _run_backend(
        self,
        backend: AnalysisBackend,
        client_id: str,
        records: list[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats]:
        """One bounded call to one back end; every failure becomes an InsightsError."""
        logger.debug("Dispatching %d records for %s to %s", len(records), client_id, backend.mode.value)
        try:
            return await asyncio.wait_for(
                backend.analyze(client_id, records, config),
                timeout=config.timeout_seconds
            )
        except InsightsError:
            raise
        except asyncio.TimeoutError as e:
            raise BackendTimeoutError(
                f"Exceeded {config.timeout_ms}ms deadline",
                mode=backend.mode.value,
                timeout_ms=config.timeout_ms
            ) from e
        except Exception as e:
            logger.exception("Unexpected error in %s back end", backend.mode.value)
            raise BackendUnavailableError(
                f"Unexpected back end error: {e}",
                mode=backend.mode.value
            ) from e

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000
