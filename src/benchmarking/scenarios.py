"""
Compatibility Check Pack

Generic checks that run against any SUT adapter, grouped by category:
- CORE (critical): objects can be created and disposed at all
- CONTRACT: properties round-trip and bad input is rejected
- PERFORMANCE: creation cost, throughput under load, memory drift
"""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.core.adapter import SUTAdapter
from src.core.errors import AdapterFailure, AssertionFailure, UnsupportedKind
from src.verification.event_logger import HarnessLogger

from .harness import CheckBody, TestRegistry
from .memory import LeakCheckResult, MemorySampler
from .timing import BenchmarkEngine
from .tracker import ResourceTracker, is_released
from .weights import WeightTable

if TYPE_CHECKING:
    from .driver import HarnessConfig


class Category(Enum):
    """Check categories."""
    CORE = "core"
    CONTRACT = "contract"
    PERFORMANCE = "performance"


# =============================================================================
# RUN CONTEXT
# =============================================================================
@dataclass
class RunContext:
    """Per-run collaborators handed to every check factory."""
    adapter: SUTAdapter
    config: "HarnessConfig"
    tracker: ResourceTracker
    engine: BenchmarkEngine
    sampler: MemorySampler
    logger: HarnessLogger
    leak_result: Optional[LeakCheckResult] = None

    @property
    def kinds(self) -> list[str]:
        return list(self.config.kinds)

    @property
    def probe(self) -> tuple[str, str, Any]:
        """(kind, property, value) used by property checks."""
        return self.config.property_kind, self.config.property_name, self.config.property_value


def _dispose_now(ctx: RunContext, handle: Any) -> None:
    """
    Dispose a short-lived handle in line.

    Short-lived handles are not tracked up front: the tracker would keep them
    reachable and skew the leak and reachability measurements. A handle whose
    disposal fails is handed to the tracker so cleanup tries it again.
    """
    try:
        ctx.adapter.dispose(handle)
    except Exception:
        ctx.tracker.track(handle)
        raise


def _round_trip(ctx: RunContext) -> None:
    """Create, mutate and dispose one object; disposal happens on every path."""
    kind, name, value = ctx.probe
    handle = ctx.adapter.create(kind)
    try:
        ctx.adapter.set_property(handle, name, value)
    finally:
        _dispose_now(ctx, handle)


def _expect_rejection(action: Callable[[], Any], expected: type, what: str) -> str:
    try:
        action()
    except expected as exc:
        return f"rejected: {exc}"
    raise AssertionFailure(f"{what} was accepted")


# =============================================================================
# CORE
# =============================================================================
def _create_dispose(ctx: RunContext) -> CheckBody:
    def body():
        for kind in ctx.kinds:
            handle = ctx.tracker.create(kind)
            if handle is None:
                raise AssertionFailure(f"create({kind!r}) returned None")
        return f"created {len(ctx.kinds)} kinds"
    return body


def _dispose_idempotent(ctx: RunContext) -> CheckBody:
    def body():
        handle = ctx.tracker.create(ctx.probe[0])
        ctx.adapter.dispose(handle)
        ctx.adapter.dispose(handle)
    return body


# =============================================================================
# CONTRACT
# =============================================================================
def _property_roundtrip(ctx: RunContext) -> CheckBody:
    def body():
        kind, name, value = ctx.probe
        handle = ctx.tracker.create(kind)
        ctx.adapter.set_property(handle, name, value)
        actual = ctx.adapter.get_property(handle, name)
        if actual != value:
            raise AssertionFailure(f"{name}: expected {value!r}, got {actual!r}")
    return body


def _invalid_property_rejected(ctx: RunContext) -> CheckBody:
    def body():
        handle = ctx.tracker.create(ctx.probe[0])
        return _expect_rejection(
            lambda: ctx.adapter.set_property(handle, ctx.config.invalid_property, 1),
            AdapterFailure,
            f"property {ctx.config.invalid_property!r}",
        )
    return body


def _type_mismatch_rejected(ctx: RunContext) -> CheckBody:
    def body():
        kind, name, _ = ctx.probe
        handle = ctx.tracker.create(kind)
        return _expect_rejection(
            lambda: ctx.adapter.set_property(handle, name, ctx.config.mismatched_value),
            AdapterFailure,
            f"{name}={ctx.config.mismatched_value!r}",
        )
    return body


def _unsupported_kind_rejected(ctx: RunContext) -> CheckBody:
    def body():
        def attempt():
            ctx.tracker.track(ctx.adapter.create(ctx.config.unsupported_kind))
        return _expect_rejection(attempt, UnsupportedKind, f"kind {ctx.config.unsupported_kind!r}")
    return body


def _bulk_create(ctx: RunContext) -> CheckBody:
    def body():
        kind, name, value = ctx.probe
        count = ctx.config.bulk_count
        handles = [ctx.tracker.create(kind) for _ in range(count)]
        for handle in handles:
            ctx.adapter.set_property(handle, name, value)
        mismatched = sum(1 for h in handles if ctx.adapter.get_property(h, name) != value)
        if mismatched:
            raise AssertionFailure(f"{mismatched}/{count} objects lost {name!r}")
        return f"{count} objects"
    return body


# =============================================================================
# PERFORMANCE
# =============================================================================
def _create_dispose_benchmark(ctx: RunContext) -> CheckBody:
    def body():
        mean_ns = ctx.engine.benchmark(
            "create+set+dispose",
            lambda: _round_trip(ctx),
            ctx.config.iterations,
        )
        return f"{mean_ns:,.0f} ns/op"
    return body


def _property_set_benchmark(ctx: RunContext) -> CheckBody:
    def body():
        kind, name, value = ctx.probe
        handle = ctx.tracker.create(kind)
        mean_ns = ctx.engine.benchmark(
            "set_property",
            lambda: ctx.adapter.set_property(handle, name, value),
            ctx.config.iterations,
        )
        return f"{mean_ns:,.0f} ns/op"
    return body


def _stress_throughput(ctx: RunContext) -> CheckBody:
    def body():
        ops = ctx.engine.throughput(
            "stress create+set+dispose",
            lambda: _round_trip(ctx),
            ctx.config.stress_seconds,
        )
        return f"{ops:,.0f} ops/s"
    return body


def _memory_leak(ctx: RunContext) -> CheckBody:
    def body():
        result = ctx.sampler.leak_check(
            lambda: _round_trip(ctx),
            cycles=ctx.config.leak_cycles,
            tolerance=ctx.config.leak_tolerance,
        )
        ctx.leak_result = result
        if result.leaked:
            raise AssertionFailure(
                f"memory grew {result.growth_fraction:.0%} over {result.cycles} cycles "
                f"(tolerance {result.tolerance:.0%})"
            )
        return f"growth {result.growth_fraction:+.1%}"
    return body


def _memory_sampling(ctx: RunContext) -> CheckBody:
    def body():
        count = ctx.config.memory_samples
        samples = ctx.sampler.sample_blocking(count, ctx.config.memory_interval)
        if len(samples) != count:
            raise AssertionFailure(f"expected {count} samples, got {len(samples)}")
        return f"{count} samples"
    return body


def _released_after_dispose(ctx: RunContext) -> CheckBody:
    def body():
        handle = ctx.adapter.create(ctx.probe[0])
        try:
            ref = weakref.ref(handle)
        except TypeError:
            _dispose_now(ctx, handle)
            return "skipped: handles are not weak-referenceable"
        _dispose_now(ctx, handle)
        del handle
        if not is_released(ref):
            raise AssertionFailure("handle still reachable after dispose")
    return body


# =============================================================================
# CHECK DEFINITIONS
# =============================================================================
@dataclass
class CheckSpec:
    """A check in the default pack."""
    name: str
    category: Category
    factory: Callable[[RunContext], CheckBody]
    weight: int = 1
    critical: bool = False
    tags: list[str] = field(default_factory=list)
    description: str = ""


CORE_CHECKS = [
    CheckSpec(
        name="create_dispose",
        category=Category.CORE,
        factory=_create_dispose,
        weight=5,
        critical=True,
        description="Every configured kind can be created.",
    ),
    CheckSpec(
        name="dispose_idempotent",
        category=Category.CORE,
        factory=_dispose_idempotent,
        weight=3,
        critical=True,
        description="Disposing a handle twice does not fault.",
    ),
]

CONTRACT_CHECKS = [
    CheckSpec(
        name="property_roundtrip",
        category=Category.CONTRACT,
        factory=_property_roundtrip,
        weight=4,
        description="A property reads back the value it was set to.",
    ),
    CheckSpec(
        name="invalid_property_rejected",
        category=Category.CONTRACT,
        factory=_invalid_property_rejected,
        weight=2,
    ),
    CheckSpec(
        name="type_mismatch_rejected",
        category=Category.CONTRACT,
        factory=_type_mismatch_rejected,
        weight=2,
    ),
    CheckSpec(
        name="unsupported_kind_rejected",
        category=Category.CONTRACT,
        factory=_unsupported_kind_rejected,
        weight=2,
    ),
    CheckSpec(
        name="bulk_create",
        category=Category.CONTRACT,
        factory=_bulk_create,
        weight=8,
        tags=["integration"],
        description="Many objects keep their properties independently.",
    ),
]

PERFORMANCE_CHECKS = [
    CheckSpec(
        name="create_dispose_benchmark",
        category=Category.PERFORMANCE,
        factory=_create_dispose_benchmark,
        weight=2,
        tags=["benchmark"],
    ),
    CheckSpec(
        name="property_set_benchmark",
        category=Category.PERFORMANCE,
        factory=_property_set_benchmark,
        weight=2,
        tags=["benchmark"],
    ),
    CheckSpec(
        name="stress_throughput",
        category=Category.PERFORMANCE,
        factory=_stress_throughput,
        weight=3,
        tags=["stress"],
    ),
    CheckSpec(
        name="memory_leak",
        category=Category.PERFORMANCE,
        factory=_memory_leak,
        weight=3,
        tags=["memory"],
    ),
    CheckSpec(
        name="memory_sampling",
        category=Category.PERFORMANCE,
        factory=_memory_sampling,
        weight=1,
        tags=["memory"],
    ),
    CheckSpec(
        name="released_after_dispose",
        category=Category.PERFORMANCE,
        factory=_released_after_dispose,
        weight=1,
        tags=["memory", "diagnostic"],
    ),
]

ALL_CHECKS = CORE_CHECKS + CONTRACT_CHECKS + PERFORMANCE_CHECKS

CHECKS_BY_CATEGORY = {
    Category.CORE: CORE_CHECKS,
    Category.CONTRACT: CONTRACT_CHECKS,
    Category.PERFORMANCE: PERFORMANCE_CHECKS,
}


def get_checks(category: Optional[Category] = None) -> list[CheckSpec]:
    """All checks, or only those in one category."""
    if category is None:
        return ALL_CHECKS
    return CHECKS_BY_CATEGORY.get(category, [])


def get_check_by_name(name: str) -> Optional[CheckSpec]:
    for check in ALL_CHECKS:
        if check.name == name:
            return check
    return None


def default_weights() -> WeightTable:
    """Weight table holding the pack's declared weights."""
    return WeightTable({c.name: c.weight for c in ALL_CHECKS})


def build_registry(
    ctx: RunContext,
    checks: Optional[list[CheckSpec]] = None,
    weights: Optional[WeightTable] = None,
) -> TestRegistry:
    """
    Register checks bound to a run context.

    Weights come from the weight table (pack defaults unless given), so
    configured overrides apply without touching the check definitions.
    """
    if checks is None:
        checks = ALL_CHECKS
    registry = TestRegistry(weights or default_weights())
    for check in checks:
        registry.register(
            check.name,
            check.factory(ctx),
            critical=check.critical,
            tags=[check.category.value, *check.tags],
        )
    return registry
