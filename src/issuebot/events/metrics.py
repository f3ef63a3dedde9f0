"""Prometheus metrics for the issue pipeline.

Metrics Defined:
- issuebot_issues_analyzed_total: Counter of analyses, by degraded flag
- issuebot_analysis_duration_seconds: Histogram of analysis time
- issuebot_status_transitions_total: Counter of status transitions
- issuebot_auto_fix_total: Counter of auto-fix outcomes
- issuebot_rate_limited_total: Counter of dropped events
- issuebot_errors_total: Counter of pipeline errors, by stage

MetricsEventEmitter keeps these up to date from pipeline events; the
/metrics endpoint serves generate_metrics_output().
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.issuebot.events.emitter import EventEmitter
from src.issuebot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Completion calls take seconds, not minutes
DEFAULT_DURATION_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0)


class BotMetrics:
    """Container for the pipeline's Prometheus metrics.

    Pass a custom registry in tests to avoid clashing with the default one.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.issues_analyzed_total = Counter(
            "issuebot_issues_analyzed_total",
            "Issues analyzed, split by whether the fallback classification was used",
            labelnames=["repository", "degraded"],
            registry=self.registry,
        )

        self.analysis_duration_seconds = Histogram(
            "issuebot_analysis_duration_seconds",
            "Time spent analyzing an issue in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.status_transitions_total = Counter(
            "issuebot_status_transitions_total",
            "Issue status transitions",
            labelnames=["from_status", "to_status"],
            registry=self.registry,
        )

        self.auto_fix_total = Counter(
            "issuebot_auto_fix_total",
            "Auto-fix outcomes (applied, failed, rejected)",
            labelnames=["repository", "outcome"],
            registry=self.registry,
        )

        self.rate_limited_total = Counter(
            "issuebot_rate_limited_total",
            "Events dropped by the per-repository rate limiter",
            labelnames=["repository", "channel"],
            registry=self.registry,
        )

        self.errors_total = Counter(
            "issuebot_errors_total",
            "Pipeline errors by stage",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )


_default_metrics: Optional[BotMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BotMetrics:
    """Return the shared metrics for the default registry, or new metrics
    bound to a custom registry."""
    global _default_metrics

    if registry is not None:
        return BotMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BotMetrics()
    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Updates Prometheus metrics from pipeline events."""

    def __init__(self, metrics: Optional[BotMetrics] = None):
        self._metrics = metrics or get_metrics()

    @property
    def metrics(self) -> BotMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        details = event.details
        try:
            if event.event_type == EventType.STATUS_TRANSITION:
                self._metrics.status_transitions_total.labels(
                    from_status=details.get("from_status", "none"),
                    to_status=details.get("to_status", "unknown"),
                ).inc()
            elif event.event_type == EventType.ANALYSIS_COMPLETED:
                self._metrics.issues_analyzed_total.labels(
                    repository=event.repository,
                    degraded=str(bool(details.get("degraded"))).lower(),
                ).inc()
                duration = details.get("duration_seconds")
                if duration is not None:
                    self._metrics.analysis_duration_seconds.labels(
                        repository=event.repository,
                    ).observe(float(duration))
            elif event.event_type == EventType.AUTO_FIX_RESULT:
                self._metrics.auto_fix_total.labels(
                    repository=event.repository,
                    outcome=details.get("outcome", "unknown"),
                ).inc()
            elif event.event_type == EventType.RATE_LIMITED:
                self._metrics.rate_limited_total.labels(
                    repository=event.repository,
                    channel=details.get("channel", "issues"),
                ).inc()
            elif event.event_type == EventType.ERROR:
                self._metrics.errors_total.labels(
                    repository=event.repository,
                    stage=details.get("stage", "unknown"),
                ).inc()
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"issue_id": event.issue_id},
            )
