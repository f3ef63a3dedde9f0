"""Tests for pipeline event emitters and Prometheus metrics."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

from prometheus_client import CollectorRegistry

from src.issuebot.events import (
    BotMetrics,
    CompositeEventEmitter,
    EventEmitter,
    EventType,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    PipelineEvent,
    generate_metrics_output,
)


def run_async(coro):
    return asyncio.run(coro)


def _make_event(event_type: EventType, **details) -> PipelineEvent:
    return PipelineEvent(
        event_type=event_type,
        issue_id="acme/widgets#4",
        repository="acme/widgets",
        details=details,
    )


class TestPipelineEvent:
    def test_log_dict_flattens_details(self):
        event = _make_event(EventType.ERROR, stage="issue_event", error_type="CompletionError")
        data = event.to_log_dict()

        assert data["event_type"] == "error"
        assert data["issue_id"] == "acme/widgets#4"
        assert data["stage"] == "issue_event"
        assert data["timestamp"].endswith("+00:00")


class TestLoggingEventEmitter:
    def test_levels_by_event_type(self):
        emitter = LoggingEventEmitter()
        emitter._logger = MagicMock()

        run_async(emitter.emit(_make_event(EventType.ERROR, stage="x")))
        run_async(emitter.emit(_make_event(EventType.RATE_LIMITED, channel="issues")))
        run_async(emitter.emit(_make_event(EventType.ANALYSIS_COMPLETED)))

        levels = [call.args[0] for call in emitter._logger.log.call_args_list]
        assert levels == [logging.ERROR, logging.WARNING, logging.INFO]
        assert emitter._logger.log.call_args_list[1].kwargs["extra"]["channel"] == "issues"

    def test_custom_logger_name(self):
        emitter = LoggingEventEmitter(logger_name="issuebot.audit")
        assert emitter._logger.name == "issuebot.audit"


class TestCompositeEventEmitter:
    def test_failing_sink_does_not_stop_others(self):
        broken = AsyncMock(spec=EventEmitter)
        broken.emit.side_effect = RuntimeError("sink down")
        healthy = AsyncMock(spec=EventEmitter)
        composite = CompositeEventEmitter([broken, healthy])
        event = _make_event(EventType.STATUS_TRANSITION)

        run_async(composite.emit(event))

        healthy.emit.assert_awaited_once_with(event)

    def test_close_reaches_every_sink(self):
        first = AsyncMock(spec=EventEmitter)
        first.close.side_effect = RuntimeError("already closed")
        second = AsyncMock(spec=EventEmitter)

        run_async(CompositeEventEmitter([first, second]).close())

        second.close.assert_awaited_once()

    def test_emitters_property_is_a_copy(self):
        composite = CompositeEventEmitter([NullEventEmitter()])
        composite.emitters.clear()
        assert len(composite.emitters) == 1


class TestMetricsEventEmitter:
    def _emitter(self):
        registry = CollectorRegistry()
        return MetricsEventEmitter(BotMetrics(registry=registry)), registry

    def test_analysis_counts_and_duration(self):
        emitter, registry = self._emitter()

        run_async(
            emitter.emit(
                _make_event(EventType.ANALYSIS_COMPLETED, degraded=False, duration_seconds=1.5)
            )
        )
        run_async(emitter.emit(_make_event(EventType.ANALYSIS_COMPLETED, degraded=True)))

        assert registry.get_sample_value(
            "issuebot_issues_analyzed_total",
            {"repository": "acme/widgets", "degraded": "false"},
        ) == 1.0
        assert registry.get_sample_value(
            "issuebot_issues_analyzed_total",
            {"repository": "acme/widgets", "degraded": "true"},
        ) == 1.0
        assert registry.get_sample_value(
            "issuebot_analysis_duration_seconds_sum", {"repository": "acme/widgets"}
        ) == 1.5

    def test_transition_auto_fix_rate_limit_and_error_counters(self):
        emitter, registry = self._emitter()

        for event in (
            _make_event(EventType.STATUS_TRANSITION, from_status="analyzed", to_status="auto_fixing"),
            _make_event(EventType.AUTO_FIX_RESULT, outcome="rejected"),
            _make_event(EventType.RATE_LIMITED, channel="comment"),
            _make_event(EventType.ERROR, stage="issue_event"),
            _make_event(EventType.ERROR, stage="issue_event"),
        ):
            run_async(emitter.emit(event))

        assert registry.get_sample_value(
            "issuebot_status_transitions_total",
            {"from_status": "analyzed", "to_status": "auto_fixing"},
        ) == 1.0
        assert registry.get_sample_value(
            "issuebot_auto_fix_total", {"repository": "acme/widgets", "outcome": "rejected"}
        ) == 1.0
        assert registry.get_sample_value(
            "issuebot_rate_limited_total", {"repository": "acme/widgets", "channel": "comment"}
        ) == 1.0
        assert registry.get_sample_value(
            "issuebot_errors_total", {"repository": "acme/widgets", "stage": "issue_event"}
        ) == 2.0

    def test_bad_details_do_not_raise(self):
        emitter, _ = self._emitter()

        run_async(
            emitter.emit(
                _make_event(EventType.ANALYSIS_COMPLETED, duration_seconds="not-a-number")
            )
        )

    def test_metrics_output_is_prometheus_text(self):
        emitter, registry = self._emitter()
        run_async(emitter.emit(_make_event(EventType.ERROR, stage="webhook")))

        output = generate_metrics_output(registry).decode()

        assert "issuebot_errors_total" in output
        assert 'stage="webhook"' in output
