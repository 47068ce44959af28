"""
Communication Normalizer - Multi-channel record normalization

Each source channel (email, calendar event, chat, meeting) has its own raw
shape. Channel normalizers map raw dicts into the canonical
CommunicationRecord so the analysis back ends see one representation.

Key design principles:
- Type-specific signal is kept (meeting status, duration, attendees)
- Meeting description, agenda and notes are merged into the body
- No filtering: malformed records pass through and are rejected later by
  the processing manager
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from .sources import CommunicationStore
from ...core.entities import (
    Attendee,
    Client,
    CommunicationRecord,
    CommunicationType,
    MeetingStatus,
)


_DATETIME = TypeAdapter(datetime)

# Graph calendar instants carry 7 fractional digits; microseconds keep 6
_EXTRA_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 instant into an aware datetime.

    Naive values are taken as UTC and offsets are converted to UTC.
    Fractions finer than a microsecond are truncated. Returns None when the
    value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = _EXTRA_FRACTION_RE.sub(r"\1", value.strip(), count=1)
        try:
            parsed = _DATETIME.validate_python(text)
        except PydanticValidationError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _text(value: Any) -> str:
    """Flatten Graph-style bodies ({"content": ...}) and lists into text."""
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("content") or "")
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value if item)
    return str(value)


def _address(value: Any) -> str:
    """Render a {name, address} party (or plain string) as free text."""
    if value is None:
        return ""
    if isinstance(value, dict):
        if "emailAddress" in value:
            value = value["emailAddress"]
        name = value.get("name") or ""
        address = value.get("address") or value.get("email") or ""
        if name and address:
            return f"{name} <{address}>"
        return name or address
    return str(value)


def _attendees(raw: Any) -> list[Attendee]:
    attendees = []
    for item in raw or []:
        if isinstance(item, dict):
            attendees.append(Attendee(
                name=item.get("name") or "",
                email=item.get("address") or item.get("email") or ""
            ))
        elif item:
            attendees.append(Attendee(name=str(item)))
    return attendees


class RecordNormalizer(ABC):
    """
    Abstract base class for channel normalizers.

    Each channel implements this interface to turn a raw source dict into a
    CommunicationRecord.
    """

    @property
    @abstractmethod
    def channel(self) -> CommunicationType:
        """The channel this normalizer handles."""
        pass

    @abstractmethod
    def normalize(self, raw: dict, client: Optional[Client] = None) -> CommunicationRecord:
        """Transform a raw channel dict into a CommunicationRecord."""
        pass

    @staticmethod
    def record_id(raw: dict) -> str:
        value = raw.get("id")
        return "" if value is None else str(value)

    @staticmethod
    def fallback_sender(client: Optional[Client]) -> str:
        return client.email if client else ""


class EmailNormalizer(RecordNormalizer):
    """Emails: sender, subject and body map directly."""

    @property
    def channel(self) -> CommunicationType:
        return CommunicationType.EMAIL

    def normalize(self, raw: dict, client: Optional[Client] = None) -> CommunicationRecord:
        return CommunicationRecord(
            id=self.record_id(raw),
            type=self.channel,
            sender=_address(raw.get("from")) or self.fallback_sender(client),
            subject=raw.get("subject"),
            body=_text(raw.get("body") or raw.get("bodyPreview")),
            timestamp=parse_timestamp(
                raw.get("receivedDateTime") or raw.get("timestamp")
            )
        )


class CalendarEventNormalizer(RecordNormalizer):
    """Calendar events: body is the description followed by the notes."""

    @property
    def channel(self) -> CommunicationType:
        return CommunicationType.EVENT

    def normalize(self, raw: dict, client: Optional[Client] = None) -> CommunicationRecord:
        body_parts = [_text(raw.get("description") or raw.get("bodyPreview")), _text(raw.get("notes"))]
        start = raw.get("start")
        if isinstance(start, dict):
            start = start.get("dateTime")

        return CommunicationRecord(
            id=self.record_id(raw),
            type=self.channel,
            sender=_address(raw.get("organizer")) or self.fallback_sender(client),
            subject=raw.get("subject"),
            body="\n".join(part for part in body_parts if part),
            timestamp=parse_timestamp(start or raw.get("timestamp")),
            notes=raw.get("notes"),
            attendees=_attendees(raw.get("attendees"))
        )


class ChatNormalizer(RecordNormalizer):
    """Chat messages: no subject, so the first 60 characters stand in."""

    SUBJECT_LENGTH = 60

    @property
    def channel(self) -> CommunicationType:
        return CommunicationType.CHAT

    def normalize(self, raw: dict, client: Optional[Client] = None) -> CommunicationRecord:
        content = _text(raw.get("content") or raw.get("body"))
        return CommunicationRecord(
            id=self.record_id(raw),
            type=self.channel,
            sender=_address(raw.get("from")) or self.fallback_sender(client),
            subject=content[:self.SUBJECT_LENGTH],
            body=content,
            timestamp=parse_timestamp(
                raw.get("createdDateTime") or raw.get("timestamp")
            )
        )


class MeetingNormalizer(RecordNormalizer):
    """
    Meetings: keeps type, status, duration, location and attendees.

    The body concatenates description, agenda and notes so text-based back
    ends read all meeting content as prose.
    """

    @property
    def channel(self) -> CommunicationType:
        return CommunicationType.MEETING

    def normalize(self, raw: dict, client: Optional[Client] = None) -> CommunicationRecord:
        description = _text(raw.get("description"))
        agenda = _text(raw.get("agenda"))
        notes = _text(raw.get("notes"))
        body_parts = [description]
        if agenda:
            body_parts.append(f"Agenda: {agenda}")
        if notes:
            body_parts.append(f"Notes: {notes}")

        start = parse_timestamp(raw.get("startTime") or raw.get("start") or raw.get("timestamp"))
        end = parse_timestamp(raw.get("endTime") or raw.get("end"))

        duration = raw.get("duration") or raw.get("durationMinutes")
        if duration is None and start and end:
            duration = int((end - start).total_seconds() // 60)

        status = raw.get("status")
        try:
            status = MeetingStatus(status) if status else None
        except ValueError:
            status = None

        return CommunicationRecord(
            id=self.record_id(raw),
            type=self.channel,
            sender=_address(raw.get("organizer")) or self.fallback_sender(client),
            subject=raw.get("title") or raw.get("subject"),
            body="\n".join(part for part in body_parts if part),
            timestamp=start,
            meeting_type=raw.get("type") or raw.get("meetingType"),
            status=status,
            duration_minutes=duration,
            location=raw.get("location"),
            url=raw.get("meetingUrl") or raw.get("url"),
            agenda=agenda or None,
            notes=notes or None,
            attendees=_attendees(raw.get("attendees"))
        )


class CommunicationNormalizer:
    """
    Merges every channel for a client into one record list.

    Order is emails, then calendar events, then chats, then meetings, each
    in store order.
    """

    def __init__(self, store: CommunicationStore):
        self.store = store
        self._normalizers: dict[CommunicationType, RecordNormalizer] = {
            normalizer.channel: normalizer
            for normalizer in (
                EmailNormalizer(),
                CalendarEventNormalizer(),
                ChatNormalizer(),
                MeetingNormalizer(),
            )
        }

    def normalize(
        self,
        channel: CommunicationType,
        raw: dict,
        client: Optional[Client] = None
    ) -> CommunicationRecord:
        return self._normalizers[channel].normalize(raw, client)

    def load_for_client(self, client: Client) -> list[CommunicationRecord]:
        """All communications for `client` as CommunicationRecords."""
        sources = [
            (CommunicationType.EMAIL, self.store.emails_for_client(client.id)),
            (CommunicationType.EVENT, self.store.events_for_client(client.id)),
            (CommunicationType.CHAT, self.store.chats_for_client(client.id)),
            (CommunicationType.MEETING, self.store.meetings_for_client(client.id)),
        ]
        return [
            self.normalize(channel, raw, client)
            for channel, items in sources
            for raw in items
        ]
