"""
Analysis Back End Interface

All back ends share one contract:

    analyze(client_id, records, config) -> (InsightContent, BackendStats)

They never return partial insights: on failure they raise one of the typed
errors in core.errors. The processing manager adds timing and the method
tag.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .schemas import InsightContent
from ...config.settings import ProcessingConfig, ProcessingMode
from ...core.entities import CommunicationRecord


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BackendStats:
    """Per-call figures a back end reports alongside its insights."""
    confidence: Optional[float] = None
    tokens_used: Optional[int] = None


class AnalysisBackend(ABC):
    """
    Abstract base class for analysis back ends.

    Each back end declares the mode it implements and its nominal
    confidence.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now

    @property
    @abstractmethod
    def mode(self) -> ProcessingMode:
        """The processing mode this back end implements."""
        pass

    @property
    @abstractmethod
    def confidence(self) -> float:
        """Nominal confidence reported with results."""
        pass

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    async def analyze(
        self,
        client_id: str,
        records: Sequence[CommunicationRecord],
        config: ProcessingConfig
    ) -> tuple[InsightContent, BackendStats]:
        """Analyze `records` for `client_id` under the given config snapshot."""
        pass
