"""
Run Driver

Top-level orchestration of one run: build the per-run context, register
the checks, run them, sample memory around the run and produce the report.
Tracked resources are released on every exit path, including faults in
the driver itself.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from src.core.adapter import DEFAULT_SCHEMA, SUTAdapter, create_adapter
from src.core.errors import DriverFault
from src.verification.event_logger import HarnessLogger

from .harness import TestRunner
from .memory import (
    DEFAULT_LEAK_CYCLES,
    DEFAULT_LEAK_TOLERANCE,
    MemoryProbe,
    MemorySampler,
    psutil_rss_mb,
)
from .reporter import DEFAULT_DELTA_WARNING, RunReport, build_report
from .results import ResultAggregator
from .scenarios import CheckSpec, RunContext, build_registry, default_weights
from .timing import DEFAULT_ITERATIONS, DEFAULT_STRESS_SECONDS, BenchmarkEngine
from .tracker import ResourceTracker
from .weights import WeightTable


# =============================================================================
# CONFIGURATION
# =============================================================================
@dataclass
class HarnessConfig:
    """
    Run configuration.

    Thresholds are configurable defaults, not invariants.
    """
    iterations: int = DEFAULT_ITERATIONS  # PARAM: benchmark batch size
    stress_seconds: float = DEFAULT_STRESS_SECONDS  # PARAM: throughput budget
    memory_samples: int = 5  # PARAM
    memory_interval: float = 1.0  # PARAM: seconds between samples
    leak_cycles: int = DEFAULT_LEAK_CYCLES  # PARAM
    leak_tolerance: float = DEFAULT_LEAK_TOLERANCE  # PARAM: growth fraction
    memory_delta_warning: float = DEFAULT_DELTA_WARNING  # PARAM: absolute delta
    bulk_count: int = 100
    weights: dict[str, int] = field(default_factory=dict)
    only: list[str] = field(default_factory=list)
    skip: list[str] = field(default_factory=list)
    # Subject description used by the default check pack
    kinds: list[str] = field(default_factory=lambda: list(DEFAULT_SCHEMA))
    property_kind: str = "rect"
    property_name: str = "width"
    property_value: Any = 10.0
    invalid_property: str = "__no_such_property__"
    mismatched_value: Any = "not-a-number"
    unsupported_kind: str = "__unsupported__"
    # Outputs
    output_dir: Optional[str] = None
    json_output: bool = False
    log_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "HarnessConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        weights = data.get("weights", {})
        if not isinstance(weights, dict):
            raise ValueError(f"weights must be a mapping, got {type(weights).__name__}")
        # Bad weights are rejected before a run starts
        WeightTable(weights)
        return cls(**data)

    @classmethod
    def from_file(cls, path: Path | str) -> "HarnessConfig":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def quick(cls, **overrides) -> "HarnessConfig":
        """Test-mode configuration: tiny batches, no waiting."""
        values = dict(
            iterations=10,
            stress_seconds=0.0,
            memory_samples=5,
            memory_interval=0.0,
            leak_cycles=5,
            bulk_count=10,
        )
        values.update(overrides)
        return cls(**values)


# =============================================================================
# DRIVER
# =============================================================================
def create_context(
    adapter: SUTAdapter,
    config: HarnessConfig,
    logger: HarnessLogger,
    probe: Optional[MemoryProbe] = psutil_rss_mb,
) -> RunContext:
    """Fresh collaborators for one run."""
    return RunContext(
        adapter=adapter,
        config=config,
        tracker=ResourceTracker(adapter, logger.child("tracker")),
        engine=BenchmarkEngine(logger=logger.child("benchmark")),
        sampler=MemorySampler(probe, logger=logger.child("memory")),
        logger=logger,
    )


def run_suite(
    adapter: Optional[SUTAdapter] = None,
    config: Optional[HarnessConfig] = None,
    checks: Optional[list[CheckSpec]] = None,
    logger: Optional[HarnessLogger] = None,
    probe: Optional[MemoryProbe] = psutil_rss_mb,
    subject_name: str = "",
) -> RunReport:
    """
    Run the check pack against a subject and return the report.

    Args:
        adapter: Subject under test. Defaults to the in-memory mock.
        config: Run configuration.
        checks: Checks to register. Defaults to the full pack.
        logger: Event logger for the run.
        probe: Memory probe; None, or a probe that raises, records a zero
            series.
        subject_name: Label for the report header.

    Raises:
        DriverFault: Something failed outside a check boundary. Tracked
            resources have been released before it propagates.
    """
    config = config or HarnessConfig()
    adapter = adapter if adapter is not None else create_adapter("mock")
    logger = logger or HarnessLogger(
        "driver", output_path=config.log_path, console_output=False,
    )
    subject_name = subject_name or type(adapter).__name__

    started_at = datetime.now()
    start = time.perf_counter()
    ctx = create_context(adapter, config, logger, probe)
    aggregator = ResultAggregator()
    try:
        weights = default_weights().merged(config.weights)
        registry = build_registry(ctx, checks, weights).select(config.only or None, config.skip)
        logger.log_check("registered", {"checks": registry.names()})

        ctx.sampler.sample_blocking(1, 0.0)
        TestRunner(registry, aggregator, logger.child("runner")).run_all()
        ctx.sampler.sample_blocking(1, 0.0)
    except Exception as exc:
        logger.log_fault("driver_fault", {"error": f"{type(exc).__name__}: {exc}"})
        raise DriverFault(f"run failed outside a check: {exc}") from exc
    finally:
        ctx.tracker.cleanup()

    elapsed = time.perf_counter() - start
    report = build_report(
        aggregator,
        metrics=ctx.engine.metrics,
        memory_samples=ctx.sampler.samples,
        leak_check=ctx.leak_result,
        elapsed_seconds=elapsed,
        started_at=started_at,
        finished_at=datetime.now(),
        subject_name=subject_name,
        delta_warning=config.memory_delta_warning,
    )
    logger.log_check(
        "rating",
        {"tier": report.rating.value},
        {"percentage": report.percentage, "elapsed_seconds": elapsed},
    )
    return report
