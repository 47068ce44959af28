"""
Source Stores - Collaborator interfaces for directory and communication data

The engine does not own client or communication data. It reads it through
two interfaces:
- ClientDirectory: {id, name, email} entries in a stable order
- CommunicationStore: raw email, calendar event, chat and meeting dicts
  keyed by client id

In-memory implementations are provided for demos and tests.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ...core.entities import Client


class ClientDirectory(ABC):
    """Lookup of known clients."""

    @abstractmethod
    def all_clients(self) -> list[Client]:
        """All clients, in directory order."""
        pass

    def get(self, client_id: str) -> Optional[Client]:
        for client in self.all_clients():
            if client.id == client_id:
                return client
        return None


class CommunicationStore(ABC):
    """
    Raw communication records for a client.

    Each method returns source-shaped dicts; normalization into
    CommunicationRecords happens in the normalizer.
    """

    @abstractmethod
    def emails_for_client(self, client_id: str) -> list[dict]:
        pass

    @abstractmethod
    def events_for_client(self, client_id: str) -> list[dict]:
        pass

    @abstractmethod
    def chats_for_client(self, client_id: str) -> list[dict]:
        pass

    @abstractmethod
    def meetings_for_client(self, client_id: str) -> list[dict]:
        pass

    @abstractmethod
    def get_meeting(self, meeting_id: str) -> Optional[dict]:
        pass


class InMemoryClientDirectory(ClientDirectory):
    """Directory backed by a list."""

    def __init__(self, clients: Iterable[Client] = ()):
        self._clients: list[Client] = list(clients)

    def add(self, client: Client) -> None:
        self._clients.append(client)

    def all_clients(self) -> list[Client]:
        return list(self._clients)


class InMemoryCommunicationStore(CommunicationStore):
    """
    Store backed by per-channel lists of raw dicts.

    Every raw dict carries a `clientId` key identifying its owner.
    """

    def __init__(
        self,
        emails: Iterable[dict] = (),
        events: Iterable[dict] = (),
        chats: Iterable[dict] = (),
        meetings: Iterable[dict] = ()
    ):
        self.emails = list(emails)
        self.events = list(events)
        self.chats = list(chats)
        self.meetings = list(meetings)

    @staticmethod
    def _for_client(items: list[dict], client_id: str) -> list[dict]:
        return [item for item in items if item.get("clientId") == client_id]

    def emails_for_client(self, client_id: str) -> list[dict]:
        return self._for_client(self.emails, client_id)

    def events_for_client(self, client_id: str) -> list[dict]:
        return self._for_client(self.events, client_id)

    def chats_for_client(self, client_id: str) -> list[dict]:
        return self._for_client(self.chats, client_id)

    def meetings_for_client(self, client_id: str) -> list[dict]:
        return self._for_client(self.meetings, client_id)

    def get_meeting(self, meeting_id: str) -> Optional[dict]:
        for meeting in self.meetings:
            if meeting.get("id") == meeting_id:
                return meeting
        return None

    def add_meeting(self, meeting: dict) -> None:
        self.meetings.append(meeting)
