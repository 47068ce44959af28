"""
Layer 1: Data Ingestion and Representation

Sources:
- Client directory ({id, name, email})
- Communication stores (emails, calendar events, chats, meetings)

Representation:
- Canonical CommunicationRecord per communication

Identity resolution:
- Ranked matching of free-text sender identifiers to clients
"""

from .sources import (
    ClientDirectory,
    CommunicationStore,
    InMemoryClientDirectory,
    InMemoryCommunicationStore
)
from .normalizer import (
    RecordNormalizer,
    EmailNormalizer,
    CalendarEventNormalizer,
    ChatNormalizer,
    MeetingNormalizer,
    CommunicationNormalizer,
    parse_timestamp
)
from .identity_resolution import (
    ClientResolver,
    MatchConfidence,
    MatchResult,
    MatchTier
)

__all__ = [
    "ClientDirectory",
    "CommunicationStore",
    "InMemoryClientDirectory",
    "InMemoryCommunicationStore",
    "RecordNormalizer",
    "EmailNormalizer",
    "CalendarEventNormalizer",
    "ChatNormalizer",
    "MeetingNormalizer",
    "CommunicationNormalizer",
    "parse_timestamp",
    "ClientResolver",
    "MatchConfidence",
    "MatchResult",
    "MatchTier"
]
