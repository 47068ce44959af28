"""
Insight engine layers.

1. Data Ingestion: sources, normalization, identity resolution
2. Intelligence: analysis back ends
3. Orchestration: processing manager and context analyzer
"""
