"""
SUT Adapter - capability interface for the subject under test.

The harness never hardcodes what the subject's objects are. It only needs
to create them by kind, mutate and read properties, and dispose them.

Tunable variables (marked with # PARAM):
- schema: kind -> {property name -> python type} for the mock subject
- fail_dispose: make every dispose() raise (cleanup failure paths)
- unsupported_kinds: kinds the mock pretends not to know
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from src.core.errors import (
    AdapterFailure,
    InvalidProperty,
    TypeMismatch,
    UnknownHandle,
    UnsupportedKind,
)
from src.verification.event_logger import HarnessLogger


# ============== Interface ==============

class SUTAdapter(Protocol):
    """Protocol every subject-under-test adapter implements."""

    def create(self, kind: str) -> Any:
        """Create an object of the given kind and return its handle."""
        ...

    def set_property(self, handle: Any, name: str, value: Any) -> None:
        """Set a property. Raises InvalidProperty or TypeMismatch."""
        ...

    def get_property(self, handle: Any, name: str) -> Any:
        """Read a property."""
        ...

    def dispose(self, handle: Any) -> None:
        """Dispose the handle. A second call must not fault."""
        ...


# ============== Mock Subject ==============

DEFAULT_SCHEMA: dict[str, dict[str, type]] = {
    "rect": {"x": float, "y": float, "width": float, "height": float, "visible": bool},
    "circle": {"x": float, "y": float, "radius": float, "visible": bool},
    "label": {"text": str, "size": int, "visible": bool},
    "group": {"name": str, "visible": bool},
}


@dataclass
class MockObject:
    """In-memory object created by the mock subject."""
    handle_id: int
    kind: str
    properties: dict[str, Any] = field(default_factory=dict)
    disposed: bool = False


class MockSUTAdapter:
    """
    In-memory subject under test.

    Objects are plain MockObject instances described by a kind -> property
    schema. Disposal drops the adapter's strong reference so the object can
    be collected once callers let go of it.
    """

    def __init__(
        self,
        schema: dict[str, dict[str, type]] | None = None,  # PARAM
        fail_dispose: bool = False,  # PARAM
        unsupported_kinds: set[str] | None = None,  # PARAM
        logger: HarnessLogger | None = None,
    ):
        self.schema = schema if schema is not None else DEFAULT_SCHEMA
        self.fail_dispose = fail_dispose
        self.unsupported_kinds = set(unsupported_kinds or ())
        self._logger = logger or HarnessLogger("mock_sut", console_output=False)

        self._next_id = 1
        self._live: dict[int, MockObject] = {}
        self.dispose_calls: list[int] = []

    @property
    def kinds(self) -> list[str]:
        return [k for k in self.schema if k not in self.unsupported_kinds]

    def create(self, kind: str) -> MockObject:
        if kind not in self.schema or kind in self.unsupported_kinds:
            raise self._reject(UnsupportedKind(kind))
        obj = MockObject(handle_id=self._next_id, kind=kind)
        self._next_id += 1
        self._live[obj.handle_id] = obj
        return obj

    def _reject(self, error: AdapterFailure) -> AdapterFailure:
        self._logger.log_check("rejected", {"error": str(error)})
        return error

    def _require_live(self, handle: MockObject) -> MockObject:
        if handle.disposed or handle.handle_id not in self._live:
            raise self._reject(UnknownHandle(f"handle {handle.handle_id} is not alive"))
        return handle

    def set_property(self, handle: MockObject, name: str, value: Any) -> None:
        obj = self._require_live(handle)
        props = self.schema[obj.kind]
        if name not in props:
            raise self._reject(InvalidProperty(obj.kind, name))
        expected = props[name]
        # bool is an int subclass; keep the two apart
        if isinstance(value, bool) and expected is not bool:
            raise self._reject(TypeMismatch(name, expected, type(value)))
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if not isinstance(value, expected):
            raise self._reject(TypeMismatch(name, expected, type(value)))
        obj.properties[name] = value

    def get_property(self, handle: MockObject, name: str) -> Any:
        obj = self._require_live(handle)
        if name not in self.schema[obj.kind]:
            raise self._reject(InvalidProperty(obj.kind, name))
        return obj.properties.get(name)

    def dispose(self, handle: MockObject) -> None:
        self.dispose_calls.append(handle.handle_id)
        if self.fail_dispose:
            self._logger.log_fault("dispose_failed", {"handle": handle.handle_id})
            raise RuntimeError(f"dispose failed for handle {handle.handle_id}")
        if handle.disposed:
            return
        handle.disposed = True
        self._live.pop(handle.handle_id, None)

    def live_handles(self) -> list[int]:
        """Ids of handles created and not yet disposed."""
        return list(self._live)

    def get_stats(self) -> dict:
        return {
            "kinds": self.kinds,
            "live": len(self._live),
            "created": self._next_id - 1,
            "dispose_calls": len(self.dispose_calls),
        }


# ============== Factory ==============

def create_adapter(
    adapter_type: Literal["mock"] = "mock",
    **kwargs,
) -> SUTAdapter:
    """
    Factory for SUT adapters.

    Args:
        adapter_type: Adapter to build. Only the in-memory mock ships here;
            real subjects are passed to the driver directly.
        **kwargs: Extra arguments for the adapter.

    Returns:
        Configured adapter.
    """
    if adapter_type == "mock":
        return MockSUTAdapter(**kwargs)
    raise ValueError(f"unknown adapter type: {adapter_type!r}")
