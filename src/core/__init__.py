# Core module: subject-under-test adapter and error taxonomy
from src.core.adapter import (
    SUTAdapter,
    MockSUTAdapter,
    DEFAULT_SCHEMA,
    create_adapter,
)
from src.core.errors import (
    ErrorKind,
    HarnessError,
    AssertionFailure,
    AdapterFailure,
    UnsupportedKind,
    InvalidProperty,
    TypeMismatch,
    UnknownHandle,
    CriticalAbort,
    CleanupFailure,
    DriverFault,
)

__all__ = [
    "SUTAdapter",
    "MockSUTAdapter",
    "DEFAULT_SCHEMA",
    "create_adapter",
    "ErrorKind",
    "HarnessError",
    "AssertionFailure",
    "AdapterFailure",
    "UnsupportedKind",
    "InvalidProperty",
    "TypeMismatch",
    "UnknownHandle",
    "CriticalAbort",
    "CleanupFailure",
    "DriverFault",
]
