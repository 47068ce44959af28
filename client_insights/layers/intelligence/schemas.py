"""
Pydantic Schemas for Insights

These schemas define the engine's output contract, shared by every
analysis back end, plus the JSON payload the remote LLM must return.
A result either validates completely or is rejected.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...config.settings import ProcessingMode
from ...core.entities import CommunicationType


Sentiment = Literal["positive", "neutral", "negative"]
Priority = Literal["low", "medium", "high"]


# =============================================================================
# Insight Components
# =============================================================================

class ClientSummary(BaseModel):
    """Overview of a client's communication history."""
    text: str = Field(
        description="2-3 sentence overview of the client relationship"
    )
    topics: List[str] = Field(
        description="Main discussion topics, without duplicates",
        default_factory=list
    )
    sentiment: Sentiment = Field(
        description="Overall client sentiment across communications"
    )
    frequency_per_week: float = Field(
        description="Average number of communications per week",
        ge=0.0
    )

    @field_validator("topics")
    @classmethod
    def _dedupe_topics(cls, topics: List[str]) -> List[str]:
        seen = set()
        unique = []
        for topic in topics:
            key = topic.strip().lower()
            if key and key not in seen:
                seen.add(key)
                unique.append(topic.strip())
        return unique


class LastInteraction(BaseModel):
    """The most recent communication."""
    when: datetime
    type: CommunicationType
    subject: Optional[str] = None
    snippet: Optional[str] = None


class RecommendedAction(BaseModel):
    """A next-best action for the advisor."""
    id: str
    title: str = Field(description="Specific action to take")
    rationale: str = Field(description="Why this action is recommended")
    priority: Priority = Field(description="Urgency of the action")
    due_date: Optional[date] = Field(default=None, description="Suggested due date")


class Highlight(BaseModel):
    """A labelled fact about the client."""
    label: str
    value: str


class ProcessingMetrics(BaseModel):
    """How a result was produced."""
    processing_time_ms: float = Field(ge=0.0)
    tokens_used: Optional[int] = Field(default=None, ge=0)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    method: ProcessingMode


# =============================================================================
# Meeting Insights
# =============================================================================

class MeetingFrequency(BaseModel):
    total_meetings: int = 0
    average_per_month: float = 0.0
    last_meeting_date: Optional[datetime] = None
    next_scheduled_meeting: Optional[datetime] = None


class MeetingPatterns(BaseModel):
    preferred_meeting_types: List[str] = Field(default_factory=list, max_length=2)
    average_duration: int = 0
    virtual: int = 0
    in_person: int = 0
    completion_rate: int = Field(default=0, ge=0, le=100)


class MeetingEngagement(BaseModel):
    level: Literal["high", "medium", "low"] = "medium"
    indicators: List[str] = Field(default_factory=list)
    follow_up_actions: List[str] = Field(default_factory=list)


class MeetingTopics(BaseModel):
    frequently_discussed: List[str] = Field(default_factory=list)
    meeting_specific: List[str] = Field(default_factory=list)
    email_topics: List[str] = Field(default_factory=list)
    meeting_topics: List[str] = Field(default_factory=list)


class MeetingInsights(BaseModel):
    """Meeting cadence, patterns and engagement for one client."""
    frequency: MeetingFrequency = Field(default_factory=MeetingFrequency)
    patterns: MeetingPatterns = Field(default_factory=MeetingPatterns)
    engagement: MeetingEngagement = Field(default_factory=MeetingEngagement)
    topics: MeetingTopics = Field(default_factory=MeetingTopics)


# =============================================================================
# Results
# =============================================================================

class InsightContent(BaseModel):
    """What an analysis back end produces, before the manager stamps metrics."""
    summary: ClientSummary
    last_interaction: Optional[LastInteraction] = None
    recommended_actions: List[RecommendedAction] = Field(default_factory=list)
    highlights: List[Highlight] = Field(default_factory=list)
    meeting_insights: Optional[MeetingInsights] = None


class Insights(InsightContent):
    """The engine's output for one analysis call."""
    processing_metrics: ProcessingMetrics

    @property
    def method(self) -> ProcessingMode:
        """Back end that actually produced this result."""
        return self.processing_metrics.method


# =============================================================================
# Remote LLM Payload
# =============================================================================

class RemoteAction(BaseModel):
    """A recommended action as returned by the language model."""
    title: str = Field(description="Specific action to take")
    rationale: str = Field(description="Why this action is recommended")
    priority: Priority = Field(description="Urgency of the action")
    due_date: Optional[date] = Field(default=None, description="Suggested due date (YYYY-MM-DD)")


class RemoteInsightsPayload(BaseModel):
    """JSON object the remote language model must return."""
    summary: ClientSummary
    recommended_actions: List[RemoteAction] = Field(default_factory=list)
    highlights: List[Highlight] = Field(default_factory=list)
    confidence: Optional[float] = Field(
        default=None,
        description="Model's confidence in the analysis, 0 to 1"
    )
