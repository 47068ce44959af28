"""
Layer 2: Intelligence Layer - Analysis Back Ends

Three interchangeable back ends behind one analyze() contract:
- Rule-based: deterministic keyword rules, always available
- Local NLP: in-process lexicon sentiment and keyword weighting
- Remote LLM: contextual synthesis by a language model via LangChain

All return the same validated Insights schema.
"""

from .schemas import (
    ClientSummary,
    LastInteraction,
    RecommendedAction,
    Highlight,
    ProcessingMetrics,
    MeetingInsights,
    InsightContent,
    Insights,
    RemoteInsightsPayload
)
from .base import AnalysisBackend, BackendStats
from .rule_based import RuleBasedBackend
from .local_nlp import LocalNLPBackend
from .remote_llm import RemoteLLMBackend

__all__ = [
    "ClientSummary",
    "LastInteraction",
    "RecommendedAction",
    "Highlight",
    "ProcessingMetrics",
    "MeetingInsights",
    "InsightContent",
    "Insights",
    "RemoteInsightsPayload",
    "AnalysisBackend",
    "BackendStats",
    "RuleBasedBackend",
    "LocalNLPBackend",
    "RemoteLLMBackend"
]
