"""
Tests for the local NLP primitives and back end.
"""

from datetime import datetime, timedelta, timezone

import pytest

from client_insights.config.settings import ProcessingMode
from client_insights.core.entities import CommunicationType
from client_insights.core.errors import ValidationError
from client_insights.layers.intelligence.local_nlp import (
    classify_cadence,
    relationship_score,
)
from client_insights.layers.intelligence.nlp import (
    contains_phrase,
    extract_entities,
    score_sentiment,
    tokenize,
    top_keywords,
    weighted_keywords,
    word_valence,
)

from conftest import make_record


class TestPrimitives:
    def test_tokenize_keeps_contractions(self):
        assert tokenize("I'm NOT sure, 401k?") == ["i'm", "not", "sure", "401k"]

    def test_sentiment_negation_flips_valence(self):
        assert score_sentiment("good").score == 3
        assert score_sentiment("not good").score == -3

    def test_sentiment_covers_full_afinn_lexicon(self):
        """Words well outside everyday advisory vocabulary still score."""
        assert word_valence("superb") > 0
        assert word_valence("fraud") < 0
        assert "superb" in score_sentiment("a superb quarter").positive
        assert "fraud" in score_sentiment("we found fraud").negative

    def test_negators_alone_are_neutral(self):
        assert score_sentiment("no").score == 0
        assert score_sentiment("never not").score == 0

    def test_normalized_sentiment_is_clamped(self):
        result = score_sentiment("great great great")

        assert result.comparative == 3
        assert result.normalized == 1.0

    def test_empty_sentiment(self):
        result = score_sentiment("")

        assert result.token_count == 0
        assert result.normalized == 0.0

    def test_extract_entities(self):
        entities = extract_entities(
            "Spoke with John Smith on March 5 about moving $25,000 to Acme Capital. "
            "Reach me at john@acme.com"
        )

        assert entities.people == ["John Smith"]
        assert "March 5" in entities.dates
        assert "$25,000" in entities.money
        assert entities.organizations == ["Acme Capital"]
        assert entities.emails == ["john@acme.com"]

    def test_contains_phrase(self):
        tokens = tokenize("Set up an emergency fund and another emergency fund")

        assert contains_phrase(tokens, "emergency fund") == 2
        assert contains_phrase(tokens, "mutual fund") == 0

    def test_weighted_keywords_favor_emails_over_chats(self):
        records = [
            make_record("t1", type=CommunicationType.CHAT, body="bonds"),
            make_record("e1", body="stocks"),
        ]

        weights = weighted_keywords(records, ["bonds", "stocks"])

        assert weights == {"bonds": 0.5, "stocks": 1.0}
        assert top_keywords(weights, 1) == ["stocks"]


class TestCadence:
    @pytest.mark.parametrize("gap_days,label", [
        (7, "weekly"),
        (30, "monthly"),
        (90, "quarterly"),
        (200, "irregular"),
    ])
    def test_classify(self, gap_days, label):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        records = [
            make_record("e1", timestamp=start),
            make_record("e2", timestamp=start + timedelta(days=gap_days)),
        ]

        assert classify_cadence(records) == label

    def test_single_record_is_insufficient(self):
        assert classify_cadence([make_record()]) == "insufficient_data"

    def test_relationship_score_bounds(self):
        assert relationship_score("weekly", 1.0, 0) == 9
        assert relationship_score("irregular", -1.0, 10) == 1


class TestLocalNLPBackend:
    def test_profile_from_worried_retirement_email(self, nlp_backend):
        records = [
            make_record("e1", subject="Retirement",
                        body="I'm worried about my retirement. Is the portfolio safe? "
                             "We moved $50,000 last year.",
                        timestamp="2024-01-01T00:00:00Z"),
            make_record("e2", subject="Follow up", body="Thanks for the call",
                        timestamp="2024-01-08T00:00:00Z"),
        ]

        content = nlp_backend.analyze_sync("c-1", records)
        highlights = {h.label: h.value for h in content.highlights}
        action_ids = [a.id for a in content.recommended_actions]

        assert "retirement" in content.summary.topics
        assert "portfolio" in content.summary.topics
        assert content.summary.frequency_per_week == 1.0
        assert highlights["Risk Tolerance"] == "Conservative"
        assert highlights["Time Horizon"] == "Long"
        assert highlights["Communication Cadence"] == "Weekly"
        assert highlights["Amounts Mentioned"] == "$50,000"
        assert action_ids[:2] == ["nlp-concerns", "nlp-goal-review"]
        assert action_ids[-1] == "nlp-market-update"
        assert content.last_interaction.subject == "Follow up"

    def test_positive_sentiment(self, nlp_backend):
        content = nlp_backend.analyze_sync("c-1", [make_record(body="Thanks, I'm pleased")])

        assert content.summary.sentiment == "positive"

    def test_irregular_cadence_adds_check_in(self, nlp_backend):
        records = [
            make_record("e1", body="Hello", timestamp="2023-01-01T00:00:00Z"),
            make_record("e2", body="Hello again", timestamp="2023-12-01T00:00:00Z"),
        ]

        content = nlp_backend.analyze_sync("c-1", records)

        assert "nlp-cadence" in [a.id for a in content.recommended_actions]
        assert content.summary.frequency_per_week == 0.1

    def test_actions_are_capped(self, nlp_backend):
        records = [
            make_record("e1", body="Worried about college costs", timestamp="2022-01-01T00:00:00Z"),
            make_record("e2", body="Still worried", timestamp="2023-06-01T00:00:00Z"),
        ]

        content = nlp_backend.analyze_sync("c-1", records)

        assert len(content.recommended_actions) == 4

    def test_no_text_raises(self, nlp_backend):
        with pytest.raises(ValidationError) as exc_info:
            nlp_backend.analyze_sync("c-1", [make_record(subject=None, body="")])

        assert exc_info.value.mode == "local-nlp"

    @pytest.mark.asyncio
    async def test_analyze_reports_confidence(self, nlp_backend, processing_config):
        _, stats = await nlp_backend.analyze("c-1", [make_record(body="Hello")], processing_config)

        assert nlp_backend.mode == ProcessingMode.LOCAL_NLP
        assert stats.confidence == 0.8
