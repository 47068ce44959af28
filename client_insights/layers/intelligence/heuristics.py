"""
Communication Heuristics

Deterministic building blocks shared by the rule-based and local-NLP back
ends:
- Topic detection from a fixed keyword-to-category dictionary
- Signed keyword sentiment
- Communication frequency and last interaction
- Rule-driven next-best actions and highlights
- Meeting cadence and engagement insights
"""

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Sequence

from .schemas import (
    Highlight,
    LastInteraction,
    MeetingEngagement,
    MeetingFrequency,
    MeetingInsights,
    MeetingPatterns,
    MeetingTopics,
    RecommendedAction,
)
from ...core.entities import CommunicationRecord, CommunicationType, MeetingStatus


# =============================================================================
# Keyword Dictionaries
# =============================================================================

def _words(*patterns: str) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(patterns) + r")\b", re.IGNORECASE)


# Insertion order is the order topics are reported in
TOPIC_KEYWORDS: dict[str, re.Pattern] = {
    "portfolio": _words(r"portfolios?", r"allocations?", r"rebalanc\w*", r"holdings?"),
    "retirement": _words(r"retire\w*", r"401k", r"ira", r"roth", r"pension\w*"),
    "tax": _words(r"tax\w*", r"deductions?", r"capital gains?"),
    "performance": _words(r"performance", r"returns?", r"benchmarks?", r"alpha", r"beta"),
    "risk": _words(r"risk\w*", r"volatil\w*", r"drawdowns?", r"hedg\w*", r"market drop", r"crash\w*"),
    "fees": _words(r"fees?", r"billing", r"invoices?", r"costs?"),
    "goals": _words(r"goals?", r"college", r"house", r"wedding", r"vacation"),
    "meeting": _words(r"meet\w*", r"calls?", r"schedul\w*", r"zoom", r"teams"),
    "market_anxiety": _words(
        r"market crash", r"market drop", r"worried", r"anxious", r"nervous",
        r"panic\w*", r"can'?t afford", r"move to cash"
    ),
}

POSITIVE_WORDS = _words(
    r"thanks?", r"thank you", r"thankful", r"great", r"appreciat\w*", r"good",
    r"pleased", r"glad", r"happy", r"excellent", r"outstanding", r"fantastic",
    r"wonderful", r"amazing", r"confident", r"satisfied"
)

NEGATIVE_WORDS = _words(
    r"concern\w*", r"issues?", r"problems?", r"delay\w*", r"bad", r"unhappy",
    r"angry", r"frustrat\w*", r"worr\w*", r"anxious", r"anxiety", r"nervous",
    r"scared", r"afraid", r"panic\w*", r"crash\w*", r"drops?", r"dropped",
    r"loss\w*", r"lose", r"losing", r"can'?t afford", r"volatil\w*",
    r"uncertain\w*", r"stress\w*", r"pressure"
)

LIFE_EVENT_WORDS = _words(
    r"wedding", r"anniversary", r"baby", r"graduation", r"move", r"relocation"
)
PREFERENCE_WORDS = _words(r"etfs?", r"index funds?", r"dividends?", r"esg")

# Negative words outweigh positive ones
NEGATIVE_WEIGHT = 1.5
SENTIMENT_THRESHOLD = 1.0

SNIPPET_LENGTH = 140
OVERDUE_MEETING_DAYS = 30


# =============================================================================
# Summary Helpers
# =============================================================================

def text_blob(records: Sequence[CommunicationRecord]) -> str:
    return " \n ".join(record.text for record in records)


def detect_topics(text: str) -> list[str]:
    """Categories whose keywords appear in `text`, in dictionary order."""
    return [topic for topic, pattern in TOPIC_KEYWORDS.items() if pattern.search(text)]


def keyword_sentiment(text: str) -> tuple[str, float]:
    """
    Signed keyword sentiment.

    Returns (label, score) where score = positives - 1.5 * negatives.
    """
    positives = len(POSITIVE_WORDS.findall(text))
    negatives = len(NEGATIVE_WORDS.findall(text))
    score = positives - NEGATIVE_WEIGHT * negatives

    if score >= SENTIMENT_THRESHOLD:
        return "positive", score
    if score <= -SENTIMENT_THRESHOLD:
        return "negative", score
    return "neutral", score


def timestamps(records: Sequence[CommunicationRecord]) -> list[datetime]:
    return sorted(record.timestamp for record in records if record.timestamp is not None)


def frequency_per_week(records: Sequence[CommunicationRecord]) -> float:
    """
    Records per week across the observed span.

    The span is floored at one week, so a burst of messages on one day
    reports the raw count.
    """
    stamps = timestamps(records)
    if not stamps:
        return 0.0
    span_days = (stamps[-1] - stamps[0]).total_seconds() / 86400
    weeks = max(1.0, span_days / 7)
    return round(len(stamps) / weeks, 1)


def find_last_interaction(records: Sequence[CommunicationRecord]) -> Optional[LastInteraction]:
    """
    The record with the maximum timestamp.

    Ties resolve to the earliest record in input order.
    """
    latest: Optional[CommunicationRecord] = None
    for record in records:
        if record.timestamp is None:
            continue
        if latest is None or record.timestamp > latest.timestamp:
            latest = record

    if latest is None:
        return None

    return LastInteraction(
        when=latest.timestamp,
        type=latest.type,
        subject=latest.subject,
        snippet=(latest.body or "")[:SNIPPET_LENGTH] or None
    )


# =============================================================================
# Meeting Helpers
# =============================================================================

def meetings_of(records: Sequence[CommunicationRecord]) -> list[CommunicationRecord]:
    return [record for record in records if record.is_meeting]


def _by_status(meetings: Sequence[CommunicationRecord], status: MeetingStatus) -> list[CommunicationRecord]:
    return [meeting for meeting in meetings if meeting.status == status]


def _latest(meetings: Sequence[CommunicationRecord]) -> Optional[CommunicationRecord]:
    dated = [meeting for meeting in meetings if meeting.timestamp is not None]
    return max(dated, key=lambda meeting: meeting.timestamp) if dated else None


def _earliest(meetings: Sequence[CommunicationRecord]) -> Optional[CommunicationRecord]:
    dated = [meeting for meeting in meetings if meeting.timestamp is not None]
    return min(dated, key=lambda meeting: meeting.timestamp) if dated else None


def format_meeting_type(meeting_type: str) -> str:
    return meeting_type.replace("_", " ").title()


def days_since(moment: datetime, now: datetime) -> int:
    return int((now - moment).total_seconds() // 86400)


# =============================================================================
# Recommended Actions
# =============================================================================

def suggest_actions(
    records: Sequence[CommunicationRecord],
    sentiment: str,
    now: datetime
) -> list[RecommendedAction]:
    """
    Rule-driven next-best actions.

    Rules are keyed on detected topics, sentiment and meeting state. An
    empty record set yields no actions.
    """
    if not records:
        return []

    meetings = meetings_of(records)
    today = now.date()

    def due(days: int):
        return today + timedelta(days=days)

    has_meeting_talk = any(TOPIC_KEYWORDS["meeting"].search(r.text) for r in records)
    has_portfolio_talk = any(TOPIC_KEYWORDS["portfolio"].search(r.text) for r in records)
    has_market_anxiety = any(TOPIC_KEYWORDS["market_anxiety"].search(r.text) for r in records)

    actions = []

    if has_market_anxiety:
        actions.append(RecommendedAction(
            id="nba-anxiety",
            title="Schedule urgent risk tolerance review",
            rationale="Client expressed market anxiety and concerns about portfolio safety. "
                      "Immediate reassurance and risk assessment needed.",
            priority="high",
            due_date=due(1)
        ))
    elif sentiment == "negative":
        actions.append(RecommendedAction(
            id="nba-concerns",
            title="Check in on client concerns",
            rationale="Recent communications carry negative sentiment.",
            priority="high",
            due_date=due(1)
        ))

    scheduled = _by_status(meetings, MeetingStatus.SCHEDULED)
    completed = _by_status(meetings, MeetingStatus.COMPLETED)
    cancelled = _by_status(meetings, MeetingStatus.CANCELLED)

    if cancelled:
        actions.append(RecommendedAction(
            id="nba-meeting-cancelled",
            title="Follow up on cancelled meeting",
            rationale=f"{len(cancelled)} meeting(s) cancelled recently. "
                      f"Check in on client availability and reschedule.",
            priority="high",
            due_date=due(1)
        ))

    if not scheduled and completed:
        last_meeting = _latest(completed)
        if last_meeting is not None:
            gap = days_since(last_meeting.timestamp, now)
            if gap > OVERDUE_MEETING_DAYS:
                actions.append(RecommendedAction(
                    id="nba-meeting-overdue",
                    title="Schedule next client meeting",
                    rationale=f"Last meeting was {gap} days ago. Time for regular check-in.",
                    priority="medium",
                    due_date=due(3)
                ))

    if not has_meeting_talk and not meetings:
        actions.append(RecommendedAction(
            id="nba-propose-meeting",
            title="Propose next meeting times",
            rationale="No recent scheduling detected; maintain cadence.",
            priority="medium",
            due_date=due(2)
        ))

    if has_portfolio_talk:
        actions.append(RecommendedAction(
            id="nba-portfolio-summary",
            title="Send portfolio change summary",
            rationale="Recent portfolio discussions detected; summarize and request confirmation.",
            priority="high",
            due_date=due(1)
        ))

    if not actions:
        actions.append(RecommendedAction(
            id="nba-market-insights",
            title="Share market insights",
            rationale="Keep client engaged with relevant updates.",
            priority="low"
        ))

    return actions


# =============================================================================
# Highlights
# =============================================================================

def extract_highlights(records: Sequence[CommunicationRecord]) -> list[Highlight]:
    """Labelled facts about the client. Empty input yields no highlights."""
    if not records:
        return []

    blob = text_blob(records)
    highlights = []

    if TOPIC_KEYWORDS["market_anxiety"].search(blob):
        highlights.append(Highlight(label="Risk Profile", value="Expressed market anxiety and safety concerns"))
    if TOPIC_KEYWORDS["goals"].search(blob) or TOPIC_KEYWORDS["retirement"].search(blob):
        highlights.append(Highlight(label="Investment Goal", value="Long-term retirement planning"))
    if LIFE_EVENT_WORDS.search(blob):
        highlights.append(Highlight(label="Life Event", value="Upcoming personal milestone"))
    if PREFERENCE_WORDS.search(blob):
        highlights.append(Highlight(label="Preference", value="Prefers diversified/ESG strategies"))

    highlights.extend(meeting_highlights(records))

    if not highlights:
        highlights.append(Highlight(label="Preference", value="No explicit preferences detected"))
    return highlights


def meeting_highlights(records: Sequence[CommunicationRecord]) -> list[Highlight]:
    meetings = meetings_of(records)
    if not meetings:
        return []

    highlights = []
    completed = _by_status(meetings, MeetingStatus.COMPLETED)
    scheduled = _by_status(meetings, MeetingStatus.SCHEDULED)

    if completed:
        average = sum(m.duration_minutes or 60 for m in completed) / len(completed)
        highlights.append(Highlight(
            label="Meeting Engagement",
            value=f"{len(completed)} completed meetings (avg {round(average)} min)"
        ))
    if scheduled:
        highlights.append(Highlight(
            label="Upcoming Meetings",
            value=f"{len(scheduled)} scheduled meeting(s)"
        ))

    types = Counter(m.meeting_type for m in meetings if m.meeting_type)
    if types:
        most_common = types.most_common(1)[0][0]
        highlights.append(Highlight(label="Preferred Meeting Type", value=format_meeting_type(most_common)))

    return highlights


# =============================================================================
# Meeting Insights
# =============================================================================

def generate_meeting_insights(
    records: Sequence[CommunicationRecord],
    now: datetime
) -> Optional[MeetingInsights]:
    """Meeting cadence, patterns, engagement and topics. None without meetings."""
    meetings = meetings_of(records)
    if not meetings:
        return None

    completed = _by_status(meetings, MeetingStatus.COMPLETED)
    scheduled = _by_status(meetings, MeetingStatus.SCHEDULED)
    cancelled = _by_status(meetings, MeetingStatus.CANCELLED)

    total = len(meetings)
    first = _earliest(meetings)
    last_completed = _latest(completed)
    upcoming = _earliest(scheduled)

    months = 1
    if first is not None:
        months = max(1, days_since(first.timestamp, now) // 30)
    average_per_month = total / months

    type_counts = Counter(m.meeting_type for m in meetings if m.meeting_type)
    preferred = [meeting_type for meeting_type, _ in type_counts.most_common(2)]

    durations = [m.duration_minutes for m in completed if m.duration_minutes]
    average_duration = sum(durations) / len(durations) if durations else 0

    virtual = sum(1 for m in meetings if m.url)
    in_person = sum(1 for m in meetings if m.location and not m.url)
    completion_rate = len(completed) / total * 100

    level = "medium"
    indicators = []
    follow_ups = []

    if average_per_month >= 2:
        level = "high"
        indicators.append("High meeting frequency")
    elif average_per_month < 0.5:
        level = "low"
        indicators.append("Low meeting frequency")

    if completion_rate >= 80:
        indicators.append("High meeting completion rate")
    elif completion_rate < 60:
        indicators.append("Low meeting completion rate")
        follow_ups.append("Address meeting cancellation patterns")

    if cancelled:
        follow_ups.append("Follow up on cancelled meetings")

    if not scheduled and last_completed is not None:
        if days_since(last_completed.timestamp, now) > OVERDUE_MEETING_DAYS:
            follow_ups.append("Schedule next meeting - overdue")

    meeting_topics = detect_topics(" ".join(
        " ".join(part for part in (m.text, m.agenda, m.notes) if part) for m in meetings
    ))
    email_topics = detect_topics(" ".join(
        r.text for r in records if r.type == CommunicationType.EMAIL
    ))

    return MeetingInsights(
        frequency=MeetingFrequency(
            total_meetings=total,
            average_per_month=round(average_per_month, 1),
            last_meeting_date=last_completed.timestamp if last_completed else None,
            next_scheduled_meeting=upcoming.timestamp if upcoming else None
        ),
        patterns=MeetingPatterns(
            preferred_meeting_types=preferred,
            average_duration=round(average_duration),
            virtual=virtual,
            in_person=in_person,
            completion_rate=round(completion_rate)
        ),
        engagement=MeetingEngagement(
            level=level,
            indicators=indicators,
            follow_up_actions=follow_ups
        ),
        topics=MeetingTopics(
            frequently_discussed=list(dict.fromkeys(meeting_topics + email_topics)),
            meeting_specific=[topic for topic in meeting_topics if topic not in email_topics],
            email_topics=email_topics,
            meeting_topics=meeting_topics
        )
    )
