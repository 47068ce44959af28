"""
Core domain models and the error taxonomy for the insight engine.
"""

from .entities import (
    Attendee,
    Client,
    CommunicationRecord,
    CommunicationType,
    MeetingStatus,
    MeetingType,
)
from .errors import (
    InsightsError,
    ConfigurationError,
    BackendTimeoutError,
    BackendUnavailableError,
    ValidationError,
    UnknownClientError,
)

__all__ = [
    "Attendee",
    "Client",
    "CommunicationRecord",
    "CommunicationType",
    "MeetingStatus",
    "MeetingType",
    "InsightsError",
    "ConfigurationError",
    "BackendTimeoutError",
    "BackendUnavailableError",
    "ValidationError",
    "UnknownClientError",
]
