"""
Context Analyzer - Publish/subscribe hub for client insights

Re-runs analysis whenever the selected context changes (an email, a client,
a meeting) and broadcasts the result to every subscriber.

Each trigger:
1. Resolves the client from a free-text identifier
2. Loads the client's records through the normalizer
3. Runs the processing manager
4. Publishes a ContextEvent, unless a newer trigger for the same client
   has started in the meantime

An unresolved identifier is an explicit NO_MATCH result, not an error.
Errors raised by processing propagate to the caller of the trigger.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Callable, Optional, Union

from ..data_ingestion.identity_resolution import ClientResolver, MatchResult
from ..data_ingestion.normalizer import CommunicationNormalizer
from ..data_ingestion.sources import ClientDirectory, CommunicationStore
from ..intelligence.schemas import Insights
from .processing_manager import ProcessingManager
from ...config.settings import ProcessingMode, Settings, get_settings
from ...core.entities import Client, CommunicationRecord

logger = logging.getLogger(__name__)


class TriggerKind(Enum):
    """What changed in the UI."""
    EMAIL = "email"
    CLIENT = "client"
    MEETING = "meeting"
    MODE_SWITCH = "mode_switch"


class TriggerStatus(Enum):
    """Outcome of a trigger."""
    PUBLISHED = "published"
    NO_MATCH = "no_match"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class ContextEvent:
    """Insights broadcast once per successful trigger."""
    client_email: str
    client_id: Optional[str]
    insights: Insights
    communications: tuple[CommunicationRecord, ...]
    trigger: TriggerKind = TriggerKind.CLIENT
    meeting_id: Optional[str] = None
    generation: int = 0


@dataclass
class TriggerResult:
    """Result of a trigger call."""
    status: TriggerStatus
    identifier: str = ""
    client: Optional[Client] = None
    match: Optional[MatchResult] = None
    event: Optional[ContextEvent] = None
    reason: str = ""

    @property
    def published(self) -> bool:
        return self.status == TriggerStatus.PUBLISHED


Listener = Callable[[ContextEvent], None]


class _Subscription:
    __slots__ = ("listener", "active")

    def __init__(self, listener: Listener):
        self.listener = listener
        self.active = True


class ContextAnalyzer:
    """
    Resolves context changes into published insights.

    Listeners are called synchronously, in subscription order. A listener
    that raises is logged and skipped; later listeners still run.
    """

    def __init__(
        self,
        manager: ProcessingManager,
        directory: ClientDirectory,
        store: CommunicationStore,
        resolver: Optional[ClientResolver] = None,
        normalizer: Optional[CommunicationNormalizer] = None,
        settings: Optional[Settings] = None
    ):
        processing = (settings or get_settings()).processing
        self.manager = manager
        self.directory = directory
        self.store = store
        self.resolver = resolver or ClientResolver(
            directory,
            threshold=processing.resolution_threshold,
            min_substring_length=processing.min_substring_length
        )
        self.normalizer = normalizer or CommunicationNormalizer(store)

        self._subscriptions: list[_Subscription] = []
        self._generations: dict[str, int] = {}
        self._counter = count(1)
        self._last_requested: Optional[Client] = None

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns an idempotent unsubscribe function."""
        subscription = _Subscription(listener)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription.active:
                subscription.active = False
                self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def _publish(self, event: ContextEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.listener(event)
            except Exception:
                logger.exception("Context listener %r failed", subscription.listener)

    # -------------------------------------------------------------------------
    # Generations
    # -------------------------------------------------------------------------

    def _start_generation(self, client_id: str) -> int:
        generation = next(self._counter)
        self._generations[client_id] = generation
        return generation

    def _is_current(self, client_id: str, generation: int) -> bool:
        return self._generations.get(client_id) == generation

    def invalidate_all(self) -> None:
        """Mark every in-flight analysis as stale."""
        for client_id in list(self._generations):
            self._generations[client_id] = next(self._counter)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def trigger_analysis_for_email(self, identifier: Optional[str]) -> TriggerResult:
        """An email from `identifier` was selected."""
        return await self._trigger(identifier, TriggerKind.EMAIL)

    async def trigger_analysis_for_client(self, identifier: Optional[str]) -> TriggerResult:
        """A client was selected."""
        return await self._trigger(identifier, TriggerKind.CLIENT)

    async def trigger_analysis_for_meeting(
        self,
        meeting_id: str,
        client_identifier: Optional[str]
    ) -> TriggerResult:
        """
        A meeting was scheduled or updated.

        When the identifier does not resolve, the meeting's own clientId
        (if the store knows the meeting) is used instead.
        """
        match = self.resolver.resolve(client_identifier)
        if match is None:
            meeting = self.store.get_meeting(meeting_id)
            client = self.directory.get(meeting.get("clientId")) if meeting else None
            if client is not None:
                return await self._analyze_and_publish(
                    client, None, client_identifier or "", TriggerKind.MEETING, meeting_id
                )
        return await self._trigger(
            client_identifier, TriggerKind.MEETING, meeting_id=meeting_id, match=match
        )

    async def _trigger(
        self,
        identifier: Optional[str],
        kind: TriggerKind,
        meeting_id: Optional[str] = None,
        match: Optional[MatchResult] = None
    ) -> TriggerResult:
        match = match or self.resolver.resolve(identifier)
        if match is None:
            logger.debug("%s trigger for %r matched no client", kind.value, identifier)
            return TriggerResult(
                status=TriggerStatus.NO_MATCH,
                identifier=identifier or "",
                reason="No client matches identifier"
            )
        return await self._analyze_and_publish(match.client, match, identifier or "", kind, meeting_id)

    async def _analyze_and_publish(
        self,
        client: Client,
        match: Optional[MatchResult],
        identifier: str,
        kind: TriggerKind,
        meeting_id: Optional[str] = None
    ) -> TriggerResult:
        self._last_requested = client
        generation = self._start_generation(client.id)
        records = self.normalizer.load_for_client(client)
        insights = await self.manager.process_client_communications(client.id, records)

        if not self._is_current(client.id, generation):
            logger.info(
                "Discarding superseded analysis for %s (generation %d)", client.id, generation
            )
            return TriggerResult(
                status=TriggerStatus.SUPERSEDED,
                identifier=identifier,
                client=client,
                match=match,
                reason="A newer analysis for this client started"
            )

        event = ContextEvent(
            client_email=client.email,
            client_id=client.id,
            insights=insights,
            communications=tuple(records),
            trigger=kind,
            meeting_id=meeting_id,
            generation=generation
        )
        self._publish(event)
        return TriggerResult(
            status=TriggerStatus.PUBLISHED,
            identifier=identifier,
            client=client,
            match=match,
            event=event
        )

    # -------------------------------------------------------------------------
    # Direct analysis and mode switching
    # -------------------------------------------------------------------------

    async def analyze_client(self, identifier: str) -> Insights:
        """
        Analyze without publishing.

        Raises UnknownClientError when the identifier does not resolve.
        """
        match = self.resolver.require(identifier)
        records = self.normalizer.load_for_client(match.client)
        return await self.manager.process_client_communications(match.client.id, records)

    async def switch_mode(
        self,
        mode: Union[str, ProcessingMode],
        retrigger: bool = True
    ) -> Optional[TriggerResult]:
        """
        Change the processing mode for subsequent analyses.

        In-flight analyses become stale. With `retrigger`, the most recently
        requested client is analyzed again under the new mode, even if its
        analysis was still in flight.
        """
        self.manager.update_config(mode=mode)
        self.invalidate_all()

        if not retrigger or self._last_requested is None:
            return None
        client = self._last_requested
        return await self._analyze_and_publish(
            client, None, client.email, TriggerKind.MODE_SWITCH
        )
