"""
Local NLP Primitives

Pure, in-process text functions used by the local-NLP back end:
- Tokenization (nltk RegexpTokenizer)
- AFINN-165 lexicon sentiment (afinn) with negation handling
- Light entity extraction (money, dates, email addresses, people,
  organizations)
- Record-weighted keyword scoring

No network I/O and no model downloads; the AFINN word list ships with
the afinn package.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Sequence

from afinn import Afinn
from nltk.tokenize import RegexpTokenizer

from ...core.entities import CommunicationRecord


_TOKENIZER = RegexpTokenizer(r"[a-z0-9]+(?:'[a-z]+)?")

NEGATORS = frozenset({
    "not", "no", "never", "don't", "dont", "isn't", "wasn't", "aren't",
    "can't", "cannot", "won't", "didn't", "doesn't", "hardly",
})

_MONTHS = (
    "january|february|march|april|may|june|july|august|september|october|"
    "november|december|jan|feb|mar|apr|jun|jul|aug|sep|sept|oct|nov|dec"
)
_WEEKDAYS = "monday|tuesday|wednesday|thursday|friday|saturday|sunday"

MONEY_RE = re.compile(
    r"\$\s?\d[\d,]*(?:\.\d+)?(?:\s?(?:k|m|bn|thousand|million|billion)\b)?"
    r"|\b\d[\d,]*(?:\.\d+)?\s?(?:dollars|usd)\b",
    re.IGNORECASE
)
DATE_RE = re.compile(
    r"\b\d{4}-\d{2}-\d{2}\b"
    r"|\b\d{1,2}/\d{1,2}/\d{2,4}\b"
    rf"|\b(?:{_MONTHS})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?\b"
    rf"|\b(?:next|this|last)\s+(?:week|month|quarter|year|{_WEEKDAYS})\b"
    r"|\b(?:tomorrow|today|yesterday)\b",
    re.IGNORECASE
)
EMAIL_RE = re.compile(r"\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+\b")
PERSON_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z]\.)?\s+[A-Z][a-z]+)\b")
ORGANIZATION_RE = re.compile(
    r"\b((?:[A-Z][\w&]*\s+){0,3}(?:Inc|LLC|Ltd|Corp|Corporation|Bank|Group|Partners|Capital|Fund)\b)"
)

_NOT_PERSON_WORDS = {
    word.capitalize() for word in (_MONTHS + "|" + _WEEKDAYS).split("|")
} | {"Dear", "Hi", "Hello", "Thanks", "Best", "Regards", "Kind", "Agenda", "Notes"}


@dataclass
class SentimentScore:
    """Result of lexicon sentiment scoring."""
    score: float = 0.0
    comparative: float = 0.0
    token_count: int = 0
    positive: list = field(default_factory=list)
    negative: list = field(default_factory=list)

    @property
    def normalized(self) -> float:
        """Comparative score scaled into [-1, 1]."""
        return max(-1.0, min(1.0, self.comparative * 5))


@dataclass
class Entities:
    """Entities found in free text."""
    people: list = field(default_factory=list)
    organizations: list = field(default_factory=list)
    dates: list = field(default_factory=list)
    money: list = field(default_factory=list)
    emails: list = field(default_factory=list)


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens; apostrophes inside words are kept."""
    return _TOKENIZER.tokenize((text or "").lower())


@lru_cache(maxsize=1)
def _afinn() -> Afinn:
    return Afinn(language="en")


@lru_cache(maxsize=4096)
def word_valence(word: str) -> float:
    """AFINN-165 valence of a single word on the -5..+5 scale, 0 if unscored."""
    return _afinn().score(word)


def score_sentiment(text: str) -> SentimentScore:
    """
    Sum AFINN valences over the tokens of `text`.

    Negators are not scored themselves; one directly before a scored
    word flips its sign.
    """
    tokens = tokenize(text)
    result = SentimentScore(token_count=len(tokens))

    for index, token in enumerate(tokens):
        if token in NEGATORS:
            continue
        valence = word_valence(token)
        if not valence:
            continue
        if index > 0 and tokens[index - 1] in NEGATORS:
            valence = -valence
        result.score += valence
        if valence > 0:
            result.positive.append(token)
        elif valence < 0:
            result.negative.append(token)

    if tokens:
        result.comparative = result.score / len(tokens)
    return result


def _unique(items: Iterable[str]) -> list[str]:
    return list(OrderedDict((item.strip(), None) for item in items if item.strip()))


def _overlaps(a: re.Match, b: re.Match) -> bool:
    return a.start() < b.end() and b.start() < a.end()


def extract_entities(text: str) -> Entities:
    """
    Regex entity extraction; results are de-duplicated in order found.

    Names inside an organization ("Acme Capital") are not people.
    """
    text = text or ""
    organizations = list(ORGANIZATION_RE.finditer(text))
    people = [
        match.group(1) for match in PERSON_RE.finditer(text)
        if match.group(1).split()[0] not in _NOT_PERSON_WORDS
        and not any(_overlaps(match, org) for org in organizations)
    ]
    return Entities(
        people=_unique(people),
        organizations=_unique(match.group(1) for match in organizations),
        dates=_unique(match.group(0) for match in DATE_RE.finditer(text)),
        money=_unique(match.group(0) for match in MONEY_RE.finditer(text)),
        emails=_unique(EMAIL_RE.findall(text))
    )


def contains_phrase(tokens: Sequence[str], phrase: str) -> int:
    """Occurrences of a (possibly multi-word) phrase in a token list."""
    parts = tokenize(phrase)
    if not parts:
        return 0
    width = len(parts)
    return sum(
        1 for i in range(len(tokens) - width + 1)
        if list(tokens[i:i + width]) == parts
    )


def weighted_keywords(
    records: Sequence[CommunicationRecord],
    keywords: Iterable[str]
) -> dict[str, float]:
    """
    Keyword weights summed over records.

    Each occurrence counts with the weight of its record type, so a phrase
    raised in a meeting or email counts more than one in a chat message.
    """
    keywords = list(keywords)
    weights: dict[str, float] = {}
    for record in records:
        tokens = tokenize(record.text)
        for keyword in keywords:
            hits = contains_phrase(tokens, keyword)
            if hits:
                weights[keyword] = weights.get(keyword, 0.0) + hits * record.weight
    return weights


def top_keywords(weights: dict[str, float], limit: int) -> list[str]:
    """Highest-weighted keywords; ties keep first-seen order."""
    ranked = sorted(enumerate(weights.items()), key=lambda item: (-item[1][1], item[0]))
    return [keyword for _, (keyword, _) in ranked[:limit]]
