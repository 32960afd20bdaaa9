"""
Error taxonomy for the compatibility harness.

Faults raised inside a check body are converted to outcomes at the runner
boundary; only DriverFault escapes a run.

- AssertionFailure: an expected-value check did not hold
- AdapterFailure: the SUT adapter rejected an operation
- CriticalAbort: a critical check failed and the run stopped
- CleanupFailure: disposal of a tracked resource failed (never surfaced)
- DriverFault: a fault outside any check boundary
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Tag carried by every non-passing outcome."""
    ASSERTION = "assertion"
    ADAPTER = "adapter"
    RUNTIME = "runtime"
    CLEANUP = "cleanup"
    DRIVER = "driver"


class HarnessError(Exception):
    """Base class for harness errors."""
    kind: ErrorKind = ErrorKind.RUNTIME


class AssertionFailure(HarnessError):
    """A check's expected value did not hold."""
    kind = ErrorKind.ASSERTION


# ============== Adapter Errors ==============

class AdapterFailure(HarnessError):
    """The SUT adapter rejected an operation."""
    kind = ErrorKind.ADAPTER


class UnsupportedKind(AdapterFailure):
    """create() was called with a kind the adapter does not know."""

    def __init__(self, kind: str):
        super().__init__(f"unsupported kind: {kind!r}")
        self.object_kind = kind


class InvalidProperty(AdapterFailure):
    """The property does not exist on the handle's kind."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"invalid property {name!r} for kind {kind!r}")
        self.object_kind = kind
        self.name = name


class TypeMismatch(AdapterFailure):
    """The value's type does not match the property's declared type."""

    def __init__(self, name: str, expected: type, actual: type):
        super().__init__(
            f"type mismatch for {name!r}: expected {expected.__name__}, "
            f"got {actual.__name__}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class UnknownHandle(AdapterFailure):
    """The handle was never issued by this adapter, or is already disposed."""


# ============== Run-level Errors ==============

class CriticalAbort(HarnessError):
    """A critical check failed; the remaining checks were not run."""

    def __init__(self, test_name: str, detail: str = ""):
        message = f"critical check {test_name!r} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.test_name = test_name
        self.detail = detail


class CleanupFailure(HarnessError):
    """Disposal of a tracked resource failed."""
    kind = ErrorKind.CLEANUP


class DriverFault(HarnessError):
    """A fault outside any check boundary."""
    kind = ErrorKind.DRIVER


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception caught at the runner boundary to its ErrorKind."""
    if isinstance(exc, HarnessError):
        return exc.kind
    if isinstance(exc, AssertionError):
        return ErrorKind.ASSERTION
    return ErrorKind.RUNTIME
