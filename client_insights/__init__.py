"""
Client Insights

Insight-synthesis engine that turns a client's communication history
(emails, calendar events, chats, meetings) into structured insights using
interchangeable analysis back ends with automatic fallback.
"""

__version__ = "0.1.0"
