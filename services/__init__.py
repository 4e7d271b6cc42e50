"""
Application services

- event_publisher: SSE connection registry and broadcasts
- presence: who is online and viewing which activity
- activity_sampler: bounded, staff-balanced activity context for the AI
- chat_relay: windowed streaming of model output
- workload_analytics: per-staff load metrics and insights
"""

from .event_publisher import EventPublisher, SSEConnection, event_publisher, format_sse, make_event, SSE_HEADERS
from .presence import PresenceService, presence_service
from .activity_sampler import sample_activities, serialize_for_ai
from .chat_relay import ChatRelay, collect, find_break
from .workload_analytics import calculate_user_workloads, get_workload_insights

__all__ = [
    'EventPublisher',
    'SSEConnection',
    'event_publisher',
    'format_sse',
    'make_event',
    'SSE_HEADERS',
    'PresenceService',
    'presence_service',
    'sample_activities',
    'serialize_for_ai',
    'ChatRelay',
    'collect',
    'find_break',
    'calculate_user_workloads',
    'get_workload_insights'
]
