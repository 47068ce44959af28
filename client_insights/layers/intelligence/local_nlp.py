"""
Local NLP Back End

Statistical analysis with in-process primitives (nltk tokenization, AFINN
sentiment, keyword weighting, regex entities). No network access.

Financial-advisory specifics:
- Investment profile (goals, risk tolerance, time horizon)
- Life events and concerns
- Communication cadence and relationship health
"""

import logging
from datetime import timedelta
from typing import Sequence

from .base import AnalysisBackend, BackendStats
from .heuristics import (
    find_last_interaction,
    frequency_per_week,
    generate_meeting_insights,
    meeting_highlights,
    timestamps,
)
from .nlp import (
    extract_entities,
    score_sentiment,
    tokenize,
    top_keywords,
    weighted_keywords,
)
from .schemas import ClientSummary, Highlight, InsightContent, RecommendedAction
from ...config.settings import ProcessingConfig, ProcessingMode
from ...core.entities import CommunicationRecord
from ...core.errors import ValidationError

logger = logging.getLogger(__name__)


FINANCIAL_KEYWORDS: dict[str, list[str]] = {
    "goals": ["retirement", "college", "house", "vacation", "wedding", "emergency fund", "education", "travel"],
    "risk_terms": ["conservative", "aggressive", "moderate", "volatile", "stable", "safe", "risky"],
    "products": ["401k", "ira", "roth", "stocks", "bonds", "etf", "mutual fund", "portfolio", "investment"],
    "life_events": ["marriage", "divorce", "birth", "death", "job change", "promotion", "retirement", "graduation"],
    "concerns": ["worried", "concerned", "anxious", "uncertain", "confused", "disappointed", "frustrated"],
}

# Average days between communications -> cadence label
CADENCE_BUCKETS = [
    (10, "weekly"),
    (35, "monthly"),
    (100, "quarterly"),
]

# Cadence label -> communications per week
CADENCE_PER_WEEK = {
    "weekly": 1.0,
    "monthly": 0.25,
    "quarterly": 0.08,
    "irregular": 0.1,
}

MAX_TOPICS = 8
MAX_ACTIONS = 4
SENTIMENT_CUTOFF = 0.1


def classify_cadence(records: Sequence[CommunicationRecord]) -> str:
    """Bucket the average interval between communications."""
    stamps = timestamps(records)
    if len(stamps) < 2:
        return "insufficient_data"

    intervals = [
        (later - earlier).total_seconds() / 86400
        for earlier, later in zip(stamps, stamps[1:])
    ]
    average = sum(intervals) / len(intervals)

    for limit, label in CADENCE_BUCKETS:
        if average <= limit:
            return label
    return "irregular"


def infer_time_horizon(tokens: Sequence[str], text: str) -> str:
    if "retirement" in tokens or "long term" in text:
        return "long"
    if "house" in tokens or "college" in tokens:
        return "medium"
    if "emergency" in tokens or "short term" in text:
        return "short"
    return "unknown"


def infer_risk_tolerance(tokens: Sequence[str]) -> str:
    present = set(tokens)
    if present & {"conservative", "safe", "stable"}:
        return "conservative"
    if present & {"aggressive", "risky", "volatile"}:
        return "aggressive"
    if "moderate" in present:
        return "moderate"
    return "unknown"


def relationship_score(cadence: str, sentiment: float, concern_count: int) -> int:
    """Relationship health on a 1-10 scale."""
    score = 5.0
    if cadence == "weekly":
        score += 2
    elif cadence == "monthly":
        score += 1
    elif cadence == "irregular":
        score -= 1

    score += sentiment * 2
    score -= min(concern_count * 0.5, 2)
    return int(max(1, min(10, round(score))))


def _contains(tokens: Sequence[str], text: str, keyword: str) -> bool:
    return keyword in text if " " in keyword else keyword in tokens


class LocalNLPBackend(AnalysisBackend):
    """
    Local statistical analysis.

    Fails only on malformed input: a record set with no text after
    filtering raises ValidationError.
    """

    CONFIDENCE = 0.8

    @property
    def mode(self) -> ProcessingMode:
        return ProcessingMode.LOCAL_NLP

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
        usable = [record for record in records if record.text.strip()]
        if not usable:
            raise ValidationError(
                f"No analyzable text for client {client_id}",
                mode=self.mode.value
            )

        now = self.now()
        text = " ".join(record.text for record in usable)
        lower = text.lower()
        tokens = tokenize(text)

        sentiment = score_sentiment(text)
        normalized = sentiment.normalized
        if normalized > SENTIMENT_CUTOFF:
            label = "positive"
        elif normalized < -SENTIMENT_CUTOFF:
            label = "negative"
        else:
            label = "neutral"

        goals = [g for g in FINANCIAL_KEYWORDS["goals"] if _contains(tokens, lower, g)]
        life_events = [e for e in FINANCIAL_KEYWORDS["life_events"] if _contains(tokens, lower, e)]
        risk_tolerance = infer_risk_tolerance(tokens)
        time_horizon = infer_time_horizon(tokens, lower)
        concerns = self._identify_concerns(usable)

        all_keywords = [kw for group in FINANCIAL_KEYWORDS.values() for kw in group]
        topics = top_keywords(weighted_keywords(usable, dict.fromkeys(all_keywords)), MAX_TOPICS)

        cadence = classify_cadence(records)
        if cadence == "insufficient_data":
            per_week = frequency_per_week(records)
        else:
            per_week = CADENCE_PER_WEEK[cadence]

        health = relationship_score(cadence, normalized, len(concerns))
        entities = extract_entities(text)

        summary_text = (
            f"{self._client_label(usable, client_id)} is actively engaged in "
            f"{goals[0] if goals else 'financial planning'} discussions with {label} sentiment. "
            f"Recent communications show {len(records)} interactions with focus on "
            f"{risk_tolerance if risk_tolerance != 'unknown' else 'general'} investment approach."
        )

        actions = self._next_actions(goals, concerns, cadence, now)

        highlights = [
            Highlight(label="Risk Tolerance", value=risk_tolerance.title()),
            Highlight(label="Time Horizon", value=time_horizon.title()),
            Highlight(label="Relationship Health", value=f"{health}/10"),
            Highlight(label="Communication Cadence", value=cadence.replace("_", " ").title()),
        ]
        if goals:
            highlights.append(Highlight(label="Investment Goals", value=", ".join(goals)))
        if life_events:
            highlights.append(Highlight(label="Life Events", value=", ".join(life_events)))
        if entities.money:
            highlights.append(Highlight(label="Amounts Mentioned", value=", ".join(entities.money[:3])))
        if entities.dates:
            highlights.append(Highlight(label="Dates Mentioned", value=", ".join(entities.dates[:3])))
        if entities.people:
            highlights.append(Highlight(label="People Mentioned", value=", ".join(entities.people[:3])))
        highlights.extend(meeting_highlights(records))

        logger.debug(
            "Local NLP for %s: score=%.2f comparative=%.3f cadence=%s topics=%s",
            client_id, sentiment.score, sentiment.comparative, cadence, topics
        )

        return InsightContent(
            summary=ClientSummary(
                text=summary_text,
                topics=topics,
                sentiment=label,
                frequency_per_week=per_week
            ),
            last_interaction=find_last_interaction(records),
            recommended_actions=actions,
            highlights=highlights,
            meeting_insights=generate_meeting_insights(records, now)
        )

    @staticmethod
    def _client_label(records: Sequence[CommunicationRecord], client_id: str) -> str:
        sender = records[0].sender or ""
        if "<" in sender:
            name = sender.split("<", 1)[0].strip().strip('"')
            if name:
                return name
        if "@" in sender:
            return sender.split("@", 1)[0]
        return sender or f"Client {client_id}"

    @staticmethod
    def _identify_concerns(records: Sequence[CommunicationRecord]) -> list[str]:
        concerns = []
        for record in records:
            tokens = tokenize(record.text)
            about = record.subject or "communication"
            for word in FINANCIAL_KEYWORDS["concerns"]:
                if word in tokens:
                    concerns.append(f"Client expressed {word} about {about}")
            if record.text.count("?") > 2:
                concerns.append(f"Client has multiple questions about: {about}")
        return list(dict.fromkeys(concerns))

    @staticmethod
    def _next_actions(goals, concerns, cadence, now) -> list[RecommendedAction]:
        today = now.date()
        actions = []

        if concerns:
            actions.append(RecommendedAction(
                id="nlp-concerns",
                title="Address client concerns and questions",
                rationale="Client has expressed concerns that need immediate attention",
                priority="high",
                due_date=today + timedelta(days=1)
            ))
        if goals:
            actions.append(RecommendedAction(
                id="nlp-goal-review",
                title=f"Review {goals[0]} strategy",
                rationale=f"Client has specific goal: {goals[0]}",
                priority="medium",
                due_date=today + timedelta(days=7)
            ))
        if cadence == "irregular":
            actions.append(RecommendedAction(
                id="nlp-cadence",
                title="Schedule regular check-in meeting",
                rationale="Communication frequency is irregular - needs more engagement",
                priority="medium",
                due_date=today + timedelta(days=3)
            ))
        actions.append(RecommendedAction(
            id="nlp-market-update",
            title="Send market update and portfolio performance review",
            rationale="Regular proactive communication to maintain engagement",
            priority="low"
        ))
        return actions[:MAX_ACTIONS]
