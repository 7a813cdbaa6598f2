from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, List

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class SinkEvent(BaseModel):
    """One audit or notification record emitted by a live evaluation."""

    kind: str  # action_outcome / sod_violation / evaluation
    subject_id: str
    rule_id: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)


class Sink(ABC):
    @abstractmethod
    def publish(self, event: SinkEvent) -> None:
        pass


class MemorySink(Sink):
    def __init__(self):
        self._events: List[SinkEvent] = []
        self._lock = Lock()

    def publish(self, event: SinkEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[SinkEvent]:
        with self._lock:
            return list(self._events)

    def of_kind(self, kind: str) -> List[SinkEvent]:
        return [event for event in self.events if event.kind == kind]


class LoggingSink(Sink):
    def __init__(self, logger_name: str = "accessgate.audit"):
        self._logger = logging.getLogger(logger_name)

    def publish(self, event: SinkEvent) -> None:
        self._logger.info(
            "%s subject=%s rule=%s %s",
            event.kind,
            event.subject_id,
            event.rule_id or "-",
            event.payload,
        )


def publish_all(sinks: List[Sink], event: SinkEvent) -> None:
    """A failing sink is logged and does not stop delivery to the others."""
    for sink in sinks:
        try:
            sink.publish(event)
        except Exception:
            logger.exception("Sink %s failed to publish %s event", type(sink).__name__, event.kind)
