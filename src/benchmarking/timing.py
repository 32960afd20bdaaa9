"""
Benchmark Engine

Two measurement modes:
- benchmark(): fixed iteration count, one clock read before and one after
  the loop, mean cost per call in nanoseconds
- throughput(): fixed wall-clock budget, completed operations per second

Faults inside the measured function propagate to the caller.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from src.verification.event_logger import HarnessLogger

DEFAULT_ITERATIONS = 1000
DEFAULT_STRESS_SECONDS = 3.0


@dataclass(frozen=True)
class PerformanceMetric:
    """Mean per-call cost of a fixed-size batch."""
    label: str
    mean_duration_ns: float
    sample_count: int

    @property
    def total_duration_ns(self) -> float:
        return self.mean_duration_ns * self.sample_count


@dataclass(frozen=True)
class ThroughputMetric:
    """Operations completed within a wall-clock budget."""
    label: str
    operations: int
    elapsed_seconds: float

    @property
    def ops_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.operations / self.elapsed_seconds


Metric = Union[PerformanceMetric, ThroughputMetric]


class BenchmarkEngine:
    """
    Times repeated calls and keeps the results keyed by label.

    Reusing a label overwrites the earlier metric; the label keeps the
    position of its first insertion.
    """

    def __init__(
        self,
        clock: Callable[[], int] = time.perf_counter_ns,
        logger: Optional[HarnessLogger] = None,
    ):
        self._clock = clock
        self._logger = logger or HarnessLogger("benchmark", console_output=False)
        self._metrics: dict[str, Metric] = {}

    def benchmark(
        self,
        label: str,
        func: Callable[[], Any],
        iterations: int = DEFAULT_ITERATIONS,
    ) -> float:
        """
        Call func `iterations` times back to back.

        Args:
            label: Metric key.
            func: Zero-argument callable to measure.
            iterations: Number of calls.

        Returns:
            Mean duration per call in nanoseconds (always > 0).
        """
        if iterations <= 0:
            raise ValueError(f"iterations must be > 0, got {iterations}")

        start = self._clock()
        for _ in range(iterations):
            func()
        elapsed_ns = self._clock() - start

        # Below timer resolution still counts as one tick.
        mean_ns = max(elapsed_ns, 1) / iterations
        self._metrics[label] = PerformanceMetric(label, mean_ns, iterations)
        self._logger.log_measure(
            "benchmark",
            {"label": label},
            {"mean_duration_ns": mean_ns, "iterations": iterations},
        )
        return mean_ns

    def throughput(
        self,
        label: str,
        func: Callable[[], Any],
        duration_seconds: float = DEFAULT_STRESS_SECONDS,
    ) -> float:
        """
        Call func repeatedly until the wall-clock budget is spent.

        The clock is read once per completed operation; the last operation
        may overrun the budget slightly.

        Returns:
            Completed operations per second.
        """
        if duration_seconds < 0:
            raise ValueError(f"duration must be >= 0, got {duration_seconds}")

        budget_ns = int(duration_seconds * 1_000_000_000)
        operations = 0
        start = self._clock()
        now = start
        while now - start < budget_ns or operations == 0:
            func()
            operations += 1
            now = self._clock()

        metric = ThroughputMetric(label, operations, max(now - start, 1) / 1e9)
        self._metrics[label] = metric
        self._logger.log_measure(
            "throughput",
            {"label": label},
            {"operations": operations, "ops_per_second": metric.ops_per_second},
        )
        return metric.ops_per_second

    def get(self, label: str) -> Optional[Metric]:
        return self._metrics.get(label)

    @property
    def metrics(self) -> list[Metric]:
        """Metrics in insertion order."""
        return list(self._metrics.values())
