"""
Identity Resolution - Client lookup from free-text sender identifiers

Triggers arrive with whatever the UI had at hand: a bare address, a
"Name <address>" header, or a display name. The resolver scores every
directory entry and returns the best match, or explicitly no match.

Matching tiers, strongest first:
1. Exact email (case-insensitive)
2. Exact display name (case-insensitive, whitespace-normalised)
3. Substring: the identifier's local part is contained in a client's name
   or email local part (or the reverse), scored by Levenshtein similarity
   and accepted only above a threshold

A stronger tier always wins. Within a tier the highest score wins, and
ties go to the earliest directory entry.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .sources import ClientDirectory
from ...core.entities import Client
from ...core.errors import UnknownClientError

logger = logging.getLogger(__name__)


_HEADER_RE = re.compile(r"^\s*\"?(?P<name>[^\"<]*?)\"?\s*<(?P<address>[^>]+)>\s*$")
_SEPARATORS_RE = re.compile(r"[._\-+]+")
_WHITESPACE_RE = re.compile(r"\s+")


class MatchTier(Enum):
    """Strategy that produced a match, ordered by strength."""
    EMAIL = 3
    NAME = 2
    SUBSTRING = 1


class MatchConfidence(Enum):
    """Confidence levels for client matches."""
    EXACT = "exact"           # Exact email match
    HIGH = "high"             # Exact name, or a close substring match
    MEDIUM = "medium"
    LOW = "low"               # Weak substring match


@dataclass
class MatchResult:
    """Result of a successful resolution."""
    client: Client
    tier: MatchTier
    score: float
    confidence: MatchConfidence
    match_reasons: list = field(default_factory=list)


@dataclass
class ParsedIdentifier:
    """A sender identifier split into its usable parts."""
    raw: str
    name: str = ""
    email: str = ""

    @property
    def local_part(self) -> str:
        if self.email:
            return self.email.split("@", 1)[0]
        return self.name


def parse_identifier(identifier: str) -> ParsedIdentifier:
    """Split "Name <addr>", "addr" or "Name" into name and email parts."""
    identifier = (identifier or "").strip()
    match = _HEADER_RE.match(identifier)
    if match:
        return ParsedIdentifier(
            raw=identifier,
            name=match.group("name").strip(),
            email=match.group("address").strip()
        )
    if "@" in identifier:
        return ParsedIdentifier(raw=identifier, email=identifier)
    return ParsedIdentifier(raw=identifier, name=identifier)


def normalize_name(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip().lower()


def normalize_token(value: str) -> str:
    """Lowercase and turn address separators into spaces."""
    return normalize_name(_SEPARATORS_RE.sub(" ", value or ""))


def levenshtein_similarity(s1: str, s2: str) -> float:
    """Calculate normalized Levenshtein similarity."""
    s1, s2 = s1.lower(), s2.lower()

    if s1 == s2:
        return 1.0

    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0

    matrix = [[0] * (len2 + 1) for _ in range(len1 + 1)]

    for i in range(len1 + 1):
        matrix[i][0] = i
    for j in range(len2 + 1):
        matrix[0][j] = j

    for i in range(1, len1 + 1):
        for j in range(1, len2 + 1):
            cost = 0 if s1[i-1] == s2[j-1] else 1
            matrix[i][j] = min(
                matrix[i-1][j] + 1,
                matrix[i][j-1] + 1,
                matrix[i-1][j-1] + cost
            )

    distance = matrix[len1][len2]
    return 1.0 - (distance / max(len1, len2))


class ClientResolver:
    """
    Ranked matcher over a client directory.

    Scores every directory entry against the identifier and returns the
    highest-ranked match, or None when nothing clears the threshold.
    """

    def __init__(
        self,
        directory: ClientDirectory,
        threshold: float = 0.3,
        min_substring_length: int = 3
    ):
        self.directory = directory
        self.threshold = threshold
        self.min_substring_length = min_substring_length

    def resolve(self, identifier: Optional[str]) -> Optional[MatchResult]:
        """Best match for `identifier`, or None."""
        if not identifier or not identifier.strip():
            return None

        parsed = parse_identifier(identifier)
        best: Optional[MatchResult] = None

        for client in self.directory.all_clients():
            candidate = self._score(parsed, client)
            if candidate is None:
                continue
            # Strict comparison keeps the earliest entry on ties
            if best is None or (candidate.tier.value, candidate.score) > (best.tier.value, best.score):
                best = candidate

        if best is None:
            logger.debug("No client matches identifier %r", identifier)
        else:
            logger.debug(
                "Resolved %r to client %s via %s (%.2f)",
                identifier, best.client.id, best.tier.name.lower(), best.score
            )
        return best

    def require(self, identifier: Optional[str]) -> MatchResult:
        """Like resolve(), but raises UnknownClientError on no match."""
        match = self.resolve(identifier)
        if match is None:
            raise UnknownClientError(identifier or "")
        return match

    def _score(self, parsed: ParsedIdentifier, client: Client) -> Optional[MatchResult]:
        if parsed.email and parsed.email.lower() == (client.email or "").lower():
            return MatchResult(
                client=client,
                tier=MatchTier.EMAIL,
                score=1.0,
                confidence=MatchConfidence.EXACT,
                match_reasons=["Exact email match"]
            )

        if parsed.name and normalize_name(parsed.name) == normalize_name(client.name):
            return MatchResult(
                client=client,
                tier=MatchTier.NAME,
                score=0.95,
                confidence=MatchConfidence.HIGH,
                match_reasons=["Exact display name match"]
            )

        return self._score_substring(parsed, client)

    def _score_substring(self, parsed: ParsedIdentifier, client: Client) -> Optional[MatchResult]:
        needle = normalize_token(parsed.local_part)
        if len(needle) < self.min_substring_length:
            return None

        candidates = [
            normalize_token(client.name),
            normalize_token((client.email or "").split("@", 1)[0]),
        ]

        best_score = 0.0
        best_reason = ""
        for candidate in candidates:
            if not candidate:
                continue
            contained = needle in candidate or (
                len(candidate) >= self.min_substring_length and candidate in needle
            )
            if not contained:
                continue
            score = levenshtein_similarity(needle, candidate)
            if score > best_score:
                best_score = score
                best_reason = f"'{needle}' overlaps '{candidate}' (similarity {score:.2f})"

        if best_score < self.threshold or best_score == 0.0:
            return None

        if best_score >= 0.8:
            confidence = MatchConfidence.HIGH
        elif best_score >= 0.6:
            confidence = MatchConfidence.MEDIUM
        else:
            confidence = MatchConfidence.LOW

        return MatchResult(
            client=client,
            tier=MatchTier.SUBSTRING,
            score=best_score,
            confidence=confidence,
            match_reasons=[best_reason]
        )
