"""Event emitter implementations.

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks, isolating failures
- NullEventEmitter: Discards events
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from src.issuebot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations should not block pipeline processing and should not
    let failures escape; the orchestrator also guards every emit call.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        pass

    async def close(self) -> None:
        """Release resources. The default implementation does nothing."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Writes events as structured log entries.

    Log levels by event type:
    - ERROR: ERROR
    - RATE_LIMITED: WARNING
    - everything else: INFO
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.ERROR: logging.ERROR,
            EventType.RATE_LIMITED: logging.WARNING,
        }

    async def emit(self, event: PipelineEvent) -> None:
        self._logger.log(
            self._log_level_map.get(event.event_type, logging.INFO),
            "Pipeline event: %s for %s",
            event.event_type.value,
            event.issue_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Delegates to several emitters; one failing sink does not affect others."""

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "issue_id": event.issue_id,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    async def emit(self, event: PipelineEvent) -> None:
        pass
