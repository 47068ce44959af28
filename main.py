#!/usr/bin/env python3
"""
Client Insights - Main Demo

This script runs the insight engine end to end on a small in-memory book
of clients:
1. Validates the configuration and lists the available modes
2. Subscribes a printing listener to the context analyzer
3. Triggers analysis from an email, a client and a meeting
4. Switches processing mode and re-publishes
5. Prints the processing metrics
"""

import asyncio
from datetime import datetime, timedelta, timezone

from client_insights.config import (
    ProcessingConfig,
    configure_logging,
    get_available_modes,
    get_configuration_recommendations,
    get_settings,
    validate_configuration
)
from client_insights.core import Client
from client_insights.layers.data_ingestion import (
    InMemoryClientDirectory,
    InMemoryCommunicationStore
)
from client_insights.layers.orchestration import (
    ContextAnalyzer,
    ContextEvent,
    ProcessingManager
)


def build_sample_book():
    """Two clients with a few weeks of mixed communications."""
    now = datetime.now(timezone.utc)

    def ago(days: int) -> str:
        return (now - timedelta(days=days)).isoformat()

    directory = InMemoryClientDirectory([
        Client(id="c-1", name="Alex Johnson", email="alex.johnson@example.com"),
        Client(id="c-2", name="Maria Gonzalez", email="maria.gonzalez@example.com"),
    ])

    store = InMemoryCommunicationStore(
        emails=[
            {
                "id": "e-1", "clientId": "c-1",
                "from": {"name": "Alex Johnson", "address": "alex.johnson@example.com"},
                "subject": "Portfolio rebalance",
                "body": "Thanks for the update. I'm pleased with performance but want to "
                        "rebalance toward low-fee ETFs before retirement.",
                "receivedDateTime": ago(21),
            },
            {
                "id": "e-2", "clientId": "c-1",
                "from": {"name": "Alex Johnson", "address": "alex.johnson@example.com"},
                "subject": "Market drop",
                "body": "I'm worried about the market crash on the news. Should we move to cash?",
                "receivedDateTime": ago(2),
            },
            {
                "id": "e-3", "clientId": "c-2",
                "from": {"name": "Maria Gonzalez", "address": "maria.gonzalez@example.com"},
                "subject": "College savings",
                "body": "Great meeting last week. Can we review the 529 plan for college?",
                "receivedDateTime": ago(5),
            },
        ],
        events=[
            {
                "id": "ev-1", "clientId": "c-2",
                "subject": "Quarterly check-in",
                "start": ago(12), "end": ago(12),
                "organizer": {"name": "You", "address": "advisor@example.com"},
                "attendees": [{"name": "Maria Gonzalez", "address": "maria.gonzalez@example.com"}],
                "notes": "Discussed tax-loss harvesting and house down payment timeline.",
            },
        ],
        chats=[
            {
                "id": "t-1", "clientId": "c-1", "from": "Alex Johnson",
                "createdDateTime": ago(1),
                "content": "Can we talk tomorrow? Still nervous about volatility.",
            },
        ],
        meetings=[
            {
                "id": "m-1", "clientId": "c-1",
                "title": "Annual portfolio review",
                "type": "portfolio_review", "status": "completed",
                "startTime": ago(45), "duration": 60,
                "location": "Office",
                "agenda": ["Performance", "Rebalancing"],
                "notes": "Client comfortable with moderate risk.",
            },
        ]
    )
    return directory, store


def print_event(event: ContextEvent) -> None:
    insights = event.insights
    metrics = insights.processing_metrics
    print("-" * 60)
    print(f"Client: {event.client_email} ({event.trigger.value}, generation {event.generation})")
    print(f"Method: {metrics.method.value}  confidence={metrics.confidence}  "
          f"time={metrics.processing_time_ms:.1f}ms  tokens={metrics.tokens_used}")
    print(f"Summary: {insights.summary.text}")
    print(f"Topics: {', '.join(insights.summary.topics) or 'none'}")
    print(f"Sentiment: {insights.summary.sentiment}  "
          f"Frequency: {insights.summary.frequency_per_week}/week")
    if insights.last_interaction:
        last = insights.last_interaction
        print(f"Last interaction: {last.when:%Y-%m-%d} {last.type.value} - {last.subject}")
    for action in insights.recommended_actions:
        due = f" (due {action.due_date})" if action.due_date else ""
        print(f"  [{action.priority}] {action.title}{due}")
    for highlight in insights.highlights:
        print(f"  * {highlight.label}: {highlight.value}")


async def run_demo():
    settings = get_settings()

    print("=" * 60)
    print("CONFIGURATION")
    print("=" * 60)
    validation = validate_configuration(settings)
    print(f"Available modes: {', '.join(m.value for m in get_available_modes(settings))}")
    for warning in validation.warnings:
        print(f"  warning: {warning}")
    for recommendation in get_configuration_recommendations(settings):
        print(f"  tip: {recommendation}")
    print()

    directory, store = build_sample_book()
    manager = ProcessingManager(ProcessingConfig.from_settings(settings), settings=settings)
    analyzer = ContextAnalyzer(manager, directory, store, settings=settings)
    unsubscribe = analyzer.subscribe(print_event)

    print(f"Starting mode: {manager.current_mode.value}")
    await analyzer.trigger_analysis_for_email("Alex Johnson <alex.johnson@example.com>")
    await analyzer.trigger_analysis_for_client("maria")
    await analyzer.trigger_analysis_for_meeting("m-1", "alex.johnson@example.com")

    result = await analyzer.trigger_analysis_for_client("unknown@nowhere.test")
    print("-" * 60)
    print(f"Unknown client trigger: {result.status.value}")

    print()
    print("Switching to local-nlp...")
    await analyzer.switch_mode("local-nlp")

    unsubscribe()

    print()
    print("=" * 60)
    print("PROCESSING METRICS")
    print("=" * 60)
    for name, value in manager.metrics.calculate_all_metrics().items():
        print(f"  {name:<24} {value.value:>10.2f} {value.unit:<8} (n={value.sample_size})")


def main():
    """Main entry point."""
    configure_logging()
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
