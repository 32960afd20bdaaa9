"""
Event Logger - structured, tagged logging for harness runs.

Every component records what it does as a tagged event so a run can be
inspected afterwards (in memory or from a JSONL file).

Tags:
- FAULT: check failures, disposal errors, driver faults
- CHECK: registrations, outcomes, scoring, tiering
- MEASURE: benchmark, throughput and memory measurements

Tunable variables (marked with # PARAM):
- output_path: JSONL file to append events to
- console_output: forward events to stdlib logging
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class EventTag(Enum):
    """Classification of harness events."""
    FAULT = "F"
    CHECK = "C"
    MEASURE = "M"


@dataclass
class HarnessEvent:
    """Structured event with a tag."""

    timestamp: str
    tag: str  # EventTag value
    component: str  # Module emitting the event
    action: str
    details: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class HarnessLogger:
    """
    Structured logger with event tags.

    Usage:
        logger = HarnessLogger("runner")
        logger.log_fault("check_failed", {"name": "create"})
        logger.log_check("outcome", {"name": "create", "status": "passed"})
        logger.log_measure("benchmark", metrics={"mean_ns": 120.0})
    """

    def __init__(
        self,
        component: str,
        output_path: Path | str | None = None,  # PARAM: JSONL output
        console_output: bool = True,  # PARAM: forward to logging
    ):
        self.component = component
        self.output_path = Path(output_path) if output_path else None
        self.console_output = console_output
        self._events: list[HarnessEvent] = []
        self._log = logging.getLogger(f"harness.{component}")

        if self.output_path:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def child(self, component: str) -> "HarnessLogger":
        """Logger for a sub-component sharing this logger's sinks."""
        return HarnessLogger(
            component,
            output_path=self.output_path,
            console_output=self.console_output,
        )

    def _create_event(
        self,
        tag: EventTag,
        action: str,
        details: dict[str, Any] | None = None,
        metrics: dict[str, float] | None = None,
    ) -> HarnessEvent:
        return HarnessEvent(
            timestamp=datetime.now().isoformat(),
            tag=tag.value,
            component=self.component,
            action=action,
            details=details or {},
            metrics=metrics or {},
        )

    def _emit(self, event: HarnessEvent) -> None:
        """Send the event to the configured sinks."""
        self._events.append(event)

        if self.console_output:
            level = logging.WARNING if event.tag == EventTag.FAULT.value else logging.INFO
            self._log.log(
                level,
                "[%s] %s.%s | %s | metrics=%s",
                event.tag, event.component, event.action,
                event.details, event.metrics,
            )

        if self.output_path:
            with open(self.output_path, "a", encoding="utf-8") as f:
                f.write(event.to_json() + "\n")

    def log_fault(
        self,
        action: str,
        details: dict[str, Any] | None = None,
        metrics: dict[str, float] | None = None,
    ) -> None:
        """
        FAULT event: something broke.

        Examples:
        - A check raised
        - A tracked handle could not be disposed
        - The driver failed outside a check
        """
        self._emit(self._create_event(EventTag.FAULT, action, details, metrics))

    def log_check(
        self,
        action: str,
        details: dict[str, Any] | None = None,
        metrics: dict[str, float] | None = None,
    ) -> None:
        """CHECK event: registrations, outcomes, scores."""
        self._emit(self._create_event(EventTag.CHECK, action, details, metrics))

    def log_measure(
        self,
        action: str,
        details: dict[str, Any] | None = None,
        metrics: dict[str, float] | None = None,
    ) -> None:
        """MEASURE event: timing and memory numbers."""
        self._emit(self._create_event(EventTag.MEASURE, action, details, metrics))

    def get_events(self, tag: EventTag | None = None) -> list[HarnessEvent]:
        """Events recorded so far, optionally filtered by tag."""
        if tag is None:
            return self._events.copy()
        return [e for e in self._events if e.tag == tag.value]

    def get_summary(self) -> dict[str, int]:
        """Event counts per tag."""
        return {
            "F": len(self.get_events(EventTag.FAULT)),
            "C": len(self.get_events(EventTag.CHECK)),
            "M": len(self.get_events(EventTag.MEASURE)),
            "total": len(self._events),
        }

    def clear(self) -> None:
        """Drop in-memory events (the file is untouched)."""
        self._events.clear()


def null_logger(component: str) -> HarnessLogger:
    """Logger that only keeps events in memory."""
    return HarnessLogger(component, console_output=False)
