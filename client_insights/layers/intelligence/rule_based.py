"""
Rule-Based Back End

Deterministic keyword analysis. Always available and the mandatory
fallback target, so it must succeed on any well-formed record list,
including an empty one.
"""

import logging
from typing import Sequence

from .base import AnalysisBackend, BackendStats
from .heuristics import (
    detect_topics,
    extract_highlights,
    find_last_interaction,
    frequency_per_week,
    generate_meeting_insights,
    keyword_sentiment,
    suggest_actions,
    text_blob,
)
from .schemas import ClientSummary, InsightContent
from ...config.settings import ProcessingConfig, ProcessingMode
from ...core.entities import CommunicationRecord

logger = logging.getLogger(__name__)


EMPTY_SUMMARY_TEXT = "0 communications on record for this client; no insights available yet."


class RuleBasedBackend(AnalysisBackend):
    """
    Keyword rules over the whole communication history.

    - Sentiment: signed keyword counts, negatives weighted 1.5x
    - Topics: fixed keyword-to-category dictionary
    - Frequency: records per week over the observed span (floor one week)
    - Actions and highlights: small if/then rules
    """

    CONFIDENCE = 0.5

    @property
    def mode(self) -> ProcessingMode:
        return ProcessingMode.RULE_BASED

    @property
    def confidence(self) -> float:
        return self.CONFIDENCE

    async def analyze(
        self,
        client_id: str,
        records: Sequence[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats]:
        return self.analyze_sync(client_id, records), BackendStats(confidence=self.CONFIDENCE)

    def analyze_sync(self, client_id: str, records: Sequence[CommunicationRecord]) -> InsightContent:
        """Synchronous core of analyze(); pure apart from the clock."""
        if not records:
            logger.debug("No communications for client %s", client_id)
            return InsightContent(
                summary=ClientSummary(
                    text=EMPTY_SUMMARY_TEXT,
                    topics=[],
                    sentiment="neutral",
                    frequency_per_week=0.0
                )
            )

        now = self.now()
        blob = text_blob(records)
        topics = detect_topics(blob)
        sentiment, _ = keyword_sentiment(blob)
        frequency = frequency_per_week(records)

        count = len(records)
        noun = "communication" if count == 1 else "communications"
        text = (
            f"{count} {noun} analyzed. "
            f"Client communications discuss {', '.join(topics) if topics else 'general topics'}. "
            f"Overall sentiment appears {sentiment}. "
            f"Estimated frequency ~{frequency}/week."
        )

        return InsightContent(
            summary=ClientSummary(
                text=text,
                topics=topics,
                sentiment=sentiment,
                frequency_per_week=frequency
            ),
            last_interaction=find_last_interaction(records),
            recommended_actions=suggest_actions(records, sentiment, now),
            highlights=extract_highlights(records),
            meeting_insights=generate_meeting_insights(records, now)
        )
