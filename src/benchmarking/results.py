"""
Result Aggregator

Collects one TestOutcome per executed check and keeps the raw and weighted
totals. One aggregator belongs to one run; nothing here is process-global.
"""
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional

from src.core.errors import CriticalAbort, ErrorKind


class OutcomeStatus(Enum):
    """Status of an executed check."""
    PASSED = "passed"
    FAILED = "failed"
    CRITICAL_FAILURE = "critical_failure"


@dataclass(frozen=True)
class TestOutcome:
    """Outcome of a single executed check. Immutable once recorded."""
    __test__ = False  # not a pytest class

    name: str
    status: OutcomeStatus
    detail: str
    weight: int
    error_kind: Optional[ErrorKind] = None
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == OutcomeStatus.PASSED


class Totals(NamedTuple):
    passed: int
    total: int
    weighted_score: int
    max_weighted_score: int


class ResultAggregator:
    """
    Accumulates outcomes in execution order.

    max_weighted_score only grows for checks that actually ran, so checks
    skipped after a critical abort never count.
    """

    def __init__(self):
        self._outcomes: list[TestOutcome] = []
        self._names: set[str] = set()
        self.passed = 0
        self.weighted_score = 0
        self.max_weighted_score = 0
        self.aborted_by: Optional[str] = None
        self.abort: Optional[CriticalAbort] = None

    def record(self, outcome: TestOutcome) -> None:
        if outcome.name in self._names:
            raise ValueError(f"outcome for {outcome.name!r} already recorded")
        self._names.add(outcome.name)
        self._outcomes.append(outcome)

        self.max_weighted_score += outcome.weight
        if outcome.passed:
            self.passed += 1
            self.weighted_score += outcome.weight
        elif outcome.status == OutcomeStatus.CRITICAL_FAILURE:
            self.aborted_by = outcome.name
            self.abort = CriticalAbort(outcome.name, outcome.detail)

    @property
    def outcomes(self) -> list[TestOutcome]:
        return list(self._outcomes)

    def totals(self) -> Totals:
        return Totals(
            passed=self.passed,
            total=len(self._outcomes),
            weighted_score=self.weighted_score,
            max_weighted_score=self.max_weighted_score,
        )

    def percentage(self) -> float:
        """Weighted percentage; 0.0 when nothing ran."""
        if self.max_weighted_score == 0:
            return 0.0
        return 100.0 * self.weighted_score / self.max_weighted_score

    @property
    def aborted(self) -> bool:
        return self.aborted_by is not None
