"""
Core Domain Entities

Canonical representations shared by every layer:
- Client: a directory entry
- CommunicationRecord: one email, calendar event, chat message or meeting
- Attendee: a meeting participant

CommunicationRecords are derived on demand from the source stores and are
never persisted by the engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class CommunicationType(str, Enum):
    """Kinds of client communication."""
    EMAIL = "email"
    EVENT = "event"
    CHAT = "chat"
    MEETING = "meeting"


class MeetingStatus(str, Enum):
    """Lifecycle of a meeting."""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MeetingType(str, Enum):
    """Meeting categories used by the advisor calendar."""
    SCHEDULED_CALL = "scheduled_call"
    PORTFOLIO_REVIEW = "portfolio_review"
    PLANNING_SESSION = "planning_session"
    URGENT_CONSULTATION = "urgent_consultation"


# Weight of each record type when ranking evidence (meetings and emails
# outrank chat messages)
TYPE_WEIGHTS: dict[CommunicationType, float] = {
    CommunicationType.MEETING: 1.25,
    CommunicationType.EMAIL: 1.0,
    CommunicationType.EVENT: 0.75,
    CommunicationType.CHAT: 0.5,
}


@dataclass
class Client:
    """A client directory entry."""
    id: str
    name: str
    email: str


@dataclass
class Attendee:
    """A meeting participant."""
    name: str = ""
    email: str = ""

    @property
    def display(self) -> str:
        return self.name or self.email


@dataclass
class CommunicationRecord:
    """
    Canonical shape of one client communication.

    `sender` carries the free-text "from" of the source record. The meeting
    fields are only populated for records of type MEETING.
    """
    id: str
    type: CommunicationType
    sender: str = ""
    subject: Optional[str] = None
    body: str = ""
    timestamp: Optional[datetime] = None

    # Meeting-only fields
    meeting_type: Optional[str] = None
    status: Optional[MeetingStatus] = None
    duration_minutes: Optional[int] = None
    location: Optional[str] = None
    url: Optional[str] = None
    agenda: Optional[str] = None
    notes: Optional[str] = None
    attendees: list[Attendee] = field(default_factory=list)

    @property
    def is_meeting(self) -> bool:
        return self.type == CommunicationType.MEETING

    @property
    def text(self) -> str:
        """Subject and body joined as one analyzable string."""
        return " ".join(part for part in (self.subject, self.body) if part)

    @property
    def weight(self) -> float:
        return TYPE_WEIGHTS.get(self.type, 1.0)
