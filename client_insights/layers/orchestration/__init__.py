"""
Layer 3: Orchestration

Processing:
- Config snapshot per call
- Timeout, retries and rule-based fallback

Context:
- Client resolution from free-text identifiers
- Publish/subscribe fan-out of fresh insights
- Generation counter discarding superseded results
"""

from .processing_manager import (
    ProcessingManager,
    build_default_backends,
    validate_records
)
from .context_analyzer import (
    ContextAnalyzer,
    ContextEvent,
    TriggerKind,
    TriggerResult,
    TriggerStatus
)

__all__ = [
    "ProcessingManager",
    "build_default_backends",
    "validate_records",
    "ContextAnalyzer",
    "ContextEvent",
    "TriggerKind",
    "TriggerResult",
    "TriggerStatus"
]
