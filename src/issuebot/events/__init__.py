"""Pipeline event emission and Prometheus metrics."""

from src.issuebot.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
)
from src.issuebot.events.metrics import (
    BotMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
    get_metrics,
)
from src.issuebot.events.models import EventType, PipelineEvent

__all__ = [
    "BotMetrics",
    "CompositeEventEmitter",
    "EventEmitter",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "PipelineEvent",
    "generate_metrics_output",
    "get_metrics",
]
