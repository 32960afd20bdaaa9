"""
Compatibility Harness

Holds checks in registration order and runs them one at a time against
the subject under test. Each check body runs inside a failure boundary:
whatever it raises becomes a recorded outcome. A failing critical check
stops the run.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from src.core.errors import ErrorKind, classify_exception
from src.verification.event_logger import HarnessLogger

from .results import OutcomeStatus, ResultAggregator, TestOutcome
from .weights import WeightTable


# A check body takes no arguments. Returning None/True passes, returning a
# string passes with that detail, returning False fails, raising fails.
CheckBody = Callable[[], Any]


# =============================================================================
# TEST CASES
# =============================================================================
@dataclass(frozen=True)
class TestCase:
    """A registered check."""
    __test__ = False

    name: str
    body: CheckBody
    weight: int = 1
    critical: bool = False
    tags: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError("test case name must not be empty")
        if self.weight <= 0:
            raise ValueError(f"weight for {self.name!r} must be > 0, got {self.weight}")


class TestRegistry:
    """
    Ordered collection of checks.

    Registering a name twice replaces the earlier entry in place: the
    replacement keeps the slot of the first registration.
    """
    __test__ = False

    def __init__(self, weights: Optional[WeightTable] = None):
        self.weights = weights or WeightTable()
        self._cases: dict[str, TestCase] = {}

    def register(
        self,
        name: str,
        body: CheckBody,
        weight: Optional[int] = None,
        critical: bool = False,
        tags: Iterable[str] = (),
    ) -> TestCase:
        """
        Register a check.

        Args:
            name: Unique check name.
            body: Zero-argument callable.
            weight: Explicit weight. If None, the weight table decides.
            critical: Stop the run if this check fails.
            tags: Labels used by select().

        Returns:
            The stored TestCase.
        """
        if weight is None:
            weight = self.weights.weight_of(name)
        case = TestCase(
            name=name,
            body=body,
            weight=weight,
            critical=critical,
            tags=tuple(tags),
        )
        self._cases[name] = case
        return case

    def check(
        self,
        name: Optional[str] = None,
        weight: Optional[int] = None,
        critical: bool = False,
        tags: Iterable[str] = (),
    ) -> Callable[[CheckBody], CheckBody]:
        """Decorator form of register()."""
        def decorator(body: CheckBody) -> CheckBody:
            self.register(name or body.__name__, body, weight, critical, tags)
            return body
        return decorator

    def select(
        self,
        only: Optional[Iterable[str]] = None,
        skip: Optional[Iterable[str]] = None,
    ) -> "TestRegistry":
        """
        Filter by name or tag, keeping registration order.

        Args:
            only: Keep checks whose name or any tag is listed.
            skip: Drop checks whose name or any tag is listed.
        """
        only_set = set(only) if only else None
        skip_set = set(skip or ())

        def matches(case: TestCase, selectors: set[str]) -> bool:
            return case.name in selectors or any(t in selectors for t in case.tags)

        selected = TestRegistry(self.weights)
        for case in self._cases.values():
            if only_set is not None and not matches(case, only_set):
                continue
            if matches(case, skip_set):
                continue
            selected._cases[case.name] = case
        return selected

    def get(self, name: str) -> Optional[TestCase]:
        return self._cases.get(name)

    def names(self) -> list[str]:
        return list(self._cases)

    def __iter__(self):
        return iter(list(self._cases.values()))

    def __len__(self) -> int:
        return len(self._cases)


# =============================================================================
# RUNNER
# =============================================================================
class TestRunner:
    """
    Executes a registry's checks in order and feeds the aggregator.
    """
    __test__ = False

    def __init__(
        self,
        registry: TestRegistry,
        aggregator: Optional[ResultAggregator] = None,
        logger: Optional[HarnessLogger] = None,
    ):
        self.registry = registry
        self.aggregator = aggregator or ResultAggregator()
        self._logger = logger or HarnessLogger("runner", console_output=False)

    def run_case(self, case: TestCase) -> TestOutcome:
        """
        Run one check inside the failure boundary.

        Exceptions derived from Exception are converted into outcomes;
        KeyboardInterrupt and SystemExit propagate.
        """
        error_kind: Optional[ErrorKind] = None
        start = time.perf_counter()
        try:
            value = case.body()
        except Exception as exc:
            error_kind = classify_exception(exc)
            detail = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        else:
            if value is False:
                error_kind = ErrorKind.ASSERTION
                detail = "check returned False"
            elif isinstance(value, str):
                detail = value
            else:
                detail = "ok"
        duration_ms = (time.perf_counter() - start) * 1000

        if error_kind is None:
            status = OutcomeStatus.PASSED
        elif case.critical:
            status = OutcomeStatus.CRITICAL_FAILURE
        else:
            status = OutcomeStatus.FAILED

        return TestOutcome(
            name=case.name,
            status=status,
            detail=detail,
            weight=case.weight,
            error_kind=error_kind,
            duration_ms=duration_ms,
        )

    def run_all(self) -> ResultAggregator:
        """
        Run every registered check in registration order.

        Stops after the first critical failure; later checks are neither
        run nor recorded.

        Returns:
            The aggregator holding the recorded outcomes.
        """
        for case in self.registry:
            outcome = self.run_case(case)
            self.aggregator.record(outcome)

            details = {"name": case.name, "status": outcome.status.value, "weight": case.weight}
            metrics = {"duration_ms": outcome.duration_ms}
            if outcome.passed:
                self._logger.log_check("outcome", details, metrics)
            else:
                details["error_kind"] = outcome.error_kind.value
                details["detail"] = outcome.detail
                self._logger.log_fault("outcome", details, metrics)

            if outcome.status == OutcomeStatus.CRITICAL_FAILURE:
                skipped = len(self.registry) - len(self.aggregator.outcomes)
                self._logger.log_fault(
                    "critical_abort",
                    {"name": case.name, "skipped": skipped, "error": str(self.aggregator.abort)},
                )
                break

        totals = self.aggregator.totals()
        self._logger.log_check(
            "run_complete",
            {"aborted_by": self.aggregator.aborted_by},
            {
                "passed": totals.passed,
                "total": totals.total,
                "weighted_score": totals.weighted_score,
                "max_weighted_score": totals.max_weighted_score,
            },
        )
        return self.aggregator
