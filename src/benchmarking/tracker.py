"""
Resource Tracker

Owns every handle a check creates through the SUT adapter and disposes
all of them in one cleanup pass, whatever the checks' outcomes were.
"""
import gc
import weakref
from typing import Any, Optional, TypeVar

from src.core.adapter import SUTAdapter
from src.core.errors import CleanupFailure
from src.verification.event_logger import HarnessLogger

T = TypeVar("T")


class ResourceTracker:
    """
    Scoped ownership of SUT handles.

    Usage:
        shape = tracker.track(adapter.create("rect"))
        ...
        tracker.cleanup()  # once, after every check has run
    """

    def __init__(self, adapter: SUTAdapter, logger: Optional[HarnessLogger] = None):
        self.adapter = adapter
        self._logger = logger or HarnessLogger("tracker", console_output=False)
        self._tracked: list[Any] = []

    def track(self, resource: T) -> T:
        """Take ownership of a handle and return it unchanged."""
        self._tracked.append(resource)
        return resource

    def create(self, kind: str) -> Any:
        """Create through the adapter and track in one step."""
        return self.track(self.adapter.create(kind))

    def __len__(self) -> int:
        return len(self._tracked)

    def cleanup(self) -> int:
        """
        Dispose every tracked handle exactly once.

        A failing dispose is logged and skipped; it never stops the pass.

        Returns:
            Number of disposal attempts made.
        """
        pending, self._tracked = self._tracked, []
        failures = 0
        for resource in pending:
            try:
                self.adapter.dispose(resource)
            except Exception as exc:
                failures += 1
                error = CleanupFailure(f"{type(exc).__name__}: {exc}")
                self._logger.log_fault("dispose_failed", {"error": str(error)})

        self._logger.log_check(
            "cleanup",
            {"attempted": len(pending), "failed": failures},
        )
        return len(pending)


def is_released(ref: weakref.ref) -> bool:
    """
    Whether the object behind a weak reference has been collected.

    Forces a collection pass first. Diagnostic only: a live referent does
    not mean disposal failed, only that something still holds it.
    """
    gc.collect()
    return ref() is None
