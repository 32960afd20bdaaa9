"""
Memory Sampler

Periodic memory snapshots and an ad hoc leak check. Memory comes from a
pluggable probe (psutil RSS in megabytes by default); without a probe, or
when the probe raises, the sampler records a zero series instead of failing.

Tunable variables (marked with # PARAM):
- interval: seconds between samples (0 in test mode)
- tolerance: allowed growth fraction before the leak check flags a leak
"""
from __future__ import annotations

import asyncio
import gc
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np
import psutil

from src.verification.event_logger import HarnessLogger

MemoryProbe = Callable[[], float]

DEFAULT_LEAK_TOLERANCE = 0.20  # PARAM
DEFAULT_LEAK_CYCLES = 100  # PARAM


def psutil_rss_mb() -> float:
    """Resident set size of this process in megabytes."""
    return psutil.Process().memory_info().rss / 1024 / 1024


@dataclass(frozen=True)
class MemorySample:
    sequence: int
    value: float


@dataclass(frozen=True)
class MemorySummary:
    """Summary of a sample series."""
    initial: float
    final: float
    peak: float
    mean: float
    count: int

    @property
    def delta(self) -> float:
        return self.final - self.initial

    def exceeds(self, threshold: float) -> bool:
        return abs(self.delta) > threshold


def summarize(samples: Sequence[MemorySample]) -> Optional[MemorySummary]:
    """Initial/final/peak/mean of a series, or None when it is empty."""
    if not samples:
        return None
    values = np.array([s.value for s in samples], dtype=np.float64)
    return MemorySummary(
        initial=float(values[0]),
        final=float(values[-1]),
        peak=float(values.max()),
        mean=float(values.mean()),
        count=len(values),
    )


@dataclass(frozen=True)
class LeakCheckResult:
    before: float
    after: float
    cycles: int
    tolerance: float

    @property
    def growth_fraction(self) -> float:
        if self.before <= 0:
            return 0.0 if self.after <= self.before else float("inf")
        return (self.after - self.before) / self.before

    @property
    def leaked(self) -> bool:
        return self.growth_fraction > self.tolerance


class MemorySampler:
    """
    Takes memory snapshots between cooperative pauses.

    Samples accumulate across calls in one append-only series; sequence
    numbers keep increasing.
    """

    def __init__(
        self,
        probe: Optional[MemoryProbe] = psutil_rss_mb,
        collect: Optional[Callable[[], Any]] = gc.collect,
        logger: Optional[HarnessLogger] = None,
    ):
        self.probe = probe
        self.collect = collect
        self._logger = logger or HarnessLogger("memory", console_output=False)
        self._samples: list[MemorySample] = []

    def current_usage(self) -> float:
        """
        Read the probe once.

        A probe that raises is treated as unavailable: the failure is logged
        once, the probe is dropped, and this and every later reading is 0.0.
        """
        if self.probe is None:
            return 0.0
        try:
            return float(self.probe())
        except Exception as exc:
            self._logger.log_fault(
                "probe_unavailable",
                {"error": f"{type(exc).__name__}: {exc}"},
            )
            self.probe = None
            return 0.0

    def _record(self) -> MemorySample:
        sample = MemorySample(sequence=len(self._samples), value=self.current_usage())
        self._samples.append(sample)
        return sample

    async def sample(self, count: int, interval: float = 1.0) -> list[MemorySample]:
        """
        Take `count` snapshots, yielding to the event loop for `interval`
        seconds between consecutive ones.

        Returns:
            The snapshots taken by this call, in sequence order.
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        taken: list[MemorySample] = []
        for i in range(count):
            if i > 0:
                await asyncio.sleep(interval)
            taken.append(self._record())
        self._log_series(taken, interval)
        return taken

    def sample_blocking(self, count: int, interval: float = 1.0) -> list[MemorySample]:
        """
        sample() for synchronous callers.

        Outside an event loop this drives sample() with asyncio.run(). When
        called from code already running inside a loop (an async host, a
        notebook) the loop cannot be re-entered, so the pauses become plain
        time.sleep() calls instead.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.sample(count, interval))

        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        taken: list[MemorySample] = []
        for i in range(count):
            if i > 0 and interval > 0:
                time.sleep(interval)
            taken.append(self._record())
        self._log_series(taken, interval)
        return taken

    def _log_series(self, taken: list[MemorySample], interval: float) -> None:
        summary = summarize(taken)
        if summary is not None:
            self._logger.log_measure(
                "memory_samples",
                {"count": len(taken), "interval": interval},
                {"initial": summary.initial, "final": summary.final, "peak": summary.peak},
            )

    def leak_check(
        self,
        cycle: Callable[[], Any],
        cycles: int = DEFAULT_LEAK_CYCLES,
        tolerance: float = DEFAULT_LEAK_TOLERANCE,
    ) -> LeakCheckResult:
        """
        Measure, run `cycles` create+dispose cycles, collect, measure again.

        Args:
            cycle: One create+dispose round trip.
            cycles: How many rounds to run.
            tolerance: Growth fraction above which a leak is flagged.
        """
        if self.collect is not None:
            self.collect()
        before = self.current_usage()
        for _ in range(cycles):
            cycle()
        if self.collect is not None:
            self.collect()
        after = self.current_usage()

        result = LeakCheckResult(before=before, after=after, cycles=cycles, tolerance=tolerance)
        log = self._logger.log_fault if result.leaked else self._logger.log_measure
        log(
            "leak_check",
            {"cycles": cycles, "leaked": result.leaked},
            {"before": before, "after": after, "growth_fraction": result.growth_fraction},
        )
        return result

    @property
    def samples(self) -> list[MemorySample]:
        return list(self._samples)

    def summary(self) -> Optional[MemorySummary]:
        return summarize(self._samples)
