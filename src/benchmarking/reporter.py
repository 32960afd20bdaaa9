"""
Compatibility Reporter

Turns a finished run into a tiered verdict and a deterministic text report:
- Rating tiers by weighted percentage (highest band first, inclusive lower bound)
- Markdown summary of outcomes, performance metrics and memory drift
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from .memory import LeakCheckResult, MemorySample, MemorySummary, summarize
from .results import OutcomeStatus, ResultAggregator, TestOutcome
from .timing import Metric, PerformanceMetric, ThroughputMetric

DEFAULT_DELTA_WARNING = 1.0  # PARAM: memory delta warning threshold


class Tier(Enum):
    """Compatibility tiers, best first."""
    FULL = "Full feature coverage"
    MAJORITY = "Handles majority/all complex use cases"
    BASIC_PLUS = "Handles basic + some complex use cases"
    LIMITED = "Limited — simple use cases only"
    POOR = "Poor — basic functionality only"


# (lower bound, tier), evaluated in order
TIER_BANDS: list[tuple[float, Tier]] = [
    (95.0, Tier.FULL),
    (70.0, Tier.MAJORITY),
    (50.0, Tier.BASIC_PLUS),
    (35.0, Tier.LIMITED),
]

STATUS_SYMBOLS = {
    OutcomeStatus.PASSED: "✓",
    OutcomeStatus.FAILED: "✗",
    OutcomeStatus.CRITICAL_FAILURE: "‼",
}


def classify_percentage(percentage: float) -> Tier:
    """Map a weighted percentage to its tier."""
    for lower_bound, tier in TIER_BANDS:
        if percentage >= lower_bound:
            return tier
    return Tier.POOR


# =============================================================================
# RUN REPORT
# =============================================================================
@dataclass(frozen=True)
class RunReport:
    """Everything known about a finished run. Read-only."""
    passed: int
    total: int
    weighted_score: int
    max_weighted_score: int
    outcomes: tuple[TestOutcome, ...]
    metrics: tuple[Metric, ...] = ()
    memory_samples: tuple[MemorySample, ...] = ()
    leak_check: Optional[LeakCheckResult] = None
    aborted_by: Optional[str] = None
    elapsed_seconds: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime = field(default_factory=datetime.now)
    subject_name: str = ""
    delta_warning: float = DEFAULT_DELTA_WARNING

    @property
    def percentage(self) -> float:
        if self.max_weighted_score == 0:
            return 0.0
        return 100.0 * self.weighted_score / self.max_weighted_score

    @property
    def rating(self) -> Tier:
        return classify_percentage(self.percentage)

    @property
    def memory_summary(self) -> Optional[MemorySummary]:
        return summarize(self.memory_samples)

    @property
    def memory_warning(self) -> bool:
        summary = self.memory_summary
        return summary is not None and summary.exceeds(self.delta_warning)


def build_report(
    aggregator: ResultAggregator,
    metrics: Optional[list[Metric]] = None,
    memory_samples: Optional[list[MemorySample]] = None,
    leak_check: Optional[LeakCheckResult] = None,
    elapsed_seconds: float = 0.0,
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
    subject_name: str = "",
    delta_warning: float = DEFAULT_DELTA_WARNING,
) -> RunReport:
    """Freeze the aggregator and auxiliary measurements into a RunReport."""
    totals = aggregator.totals()
    now = datetime.now()
    return RunReport(
        passed=totals.passed,
        total=totals.total,
        weighted_score=totals.weighted_score,
        max_weighted_score=totals.max_weighted_score,
        outcomes=tuple(aggregator.outcomes),
        metrics=tuple(metrics or ()),
        memory_samples=tuple(memory_samples or ()),
        leak_check=leak_check,
        aborted_by=aggregator.aborted_by,
        elapsed_seconds=elapsed_seconds,
        started_at=started_at or now,
        finished_at=finished_at or now,
        subject_name=subject_name,
        delta_warning=delta_warning,
    )


# =============================================================================
# RENDERING
# =============================================================================
def _format_metric(metric: Metric) -> str:
    if isinstance(metric, ThroughputMetric):
        return (
            f"| {metric.label} | throughput | {metric.ops_per_second:,.0f} ops/s "
            f"| {metric.operations} ops in {metric.elapsed_seconds:.2f}s |"
        )
    return (
        f"| {metric.label} | mean | {metric.mean_duration_ns:,.1f} ns "
        f"| {metric.sample_count} iterations |"
    )


def render_report(report: RunReport) -> str:
    """
    Render a report as markdown text.

    Output depends only on the report: checks in registration order,
    metrics in insertion order.
    """
    pct = report.percentage
    lines = [
        "# Compatibility Report",
        "",
    ]
    if report.subject_name:
        lines.append(f"**Subject:** {report.subject_name}")
    lines.extend([
        f"**Elapsed:** {report.elapsed_seconds:.2f}s",
        f"**Passed:** {report.passed}/{report.total}",
        f"**Weighted score:** {report.weighted_score}/{report.max_weighted_score} ({pct:.1f}%)",
        "",
    ])
    if report.aborted_by:
        lines.extend([
            f"> Run aborted: critical check `{report.aborted_by}` failed. "
            "Remaining checks were not run.",
            "",
        ])

    lines.extend([
        "---",
        "",
        "## Checks",
        "",
        "| | Check | Status | Weight | Detail |",
        "|-|-------|--------|--------|--------|",
    ])
    for o in report.outcomes:
        detail = o.detail.replace("|", "\\|").replace("\n", " ")
        lines.append(
            f"| {STATUS_SYMBOLS[o.status]} | {o.name} | {o.status.value} | {o.weight} | {detail} |"
        )

    lines.extend(["", "---", "", "## Performance", ""])
    if report.metrics:
        lines.extend([
            "| Label | Kind | Value | Samples |",
            "|-------|------|-------|---------|",
        ])
        lines.extend(_format_metric(m) for m in report.metrics)
    else:
        lines.append("No performance metrics recorded.")

    lines.extend(["", "---", "", "## Memory", ""])
    summary = report.memory_summary
    if summary is not None:
        lines.extend([
            f"- Initial: {summary.initial:.2f}",
            f"- Final: {summary.final:.2f}",
            f"- Delta: {summary.delta:+.2f}",
            f"- Peak: {summary.peak:.2f} over {summary.count} samples",
        ])
        if report.memory_warning:
            lines.append(
                f"- ⚠ Memory delta exceeds {report.delta_warning:g} "
                "(possible leak or growth)"
            )
    else:
        lines.append("No memory samples recorded.")
    if report.leak_check is not None:
        lc = report.leak_check
        verdict = "LEAK SUSPECTED" if lc.leaked else "no leak"
        lines.append(
            f"- Leak check: {lc.before:.2f} -> {lc.after:.2f} after {lc.cycles} cycles "
            f"({verdict}, tolerance {lc.tolerance:.0%})"
        )

    lines.extend([
        "",
        "---",
        "",
        "## Rating",
        "",
        f"**{report.rating.value}** ({pct:.1f}%)",
    ])
    return "\n".join(lines) + "\n"


def report_to_dict(report: RunReport) -> dict:
    """JSON-serializable view of a report."""
    summary = report.memory_summary
    metrics = []
    for m in report.metrics:
        if isinstance(m, ThroughputMetric):
            metrics.append({
                "label": m.label,
                "kind": "throughput",
                "operations": m.operations,
                "elapsed_seconds": m.elapsed_seconds,
                "ops_per_second": m.ops_per_second,
            })
        elif isinstance(m, PerformanceMetric):
            metrics.append({
                "label": m.label,
                "kind": "mean",
                "mean_duration_ns": m.mean_duration_ns,
                "sample_count": m.sample_count,
            })
    return {
        "subject": report.subject_name,
        "started_at": report.started_at.isoformat(),
        "finished_at": report.finished_at.isoformat(),
        "elapsed_seconds": report.elapsed_seconds,
        "passed": report.passed,
        "total": report.total,
        "weighted_score": report.weighted_score,
        "max_weighted_score": report.max_weighted_score,
        "percentage": report.percentage,
        "rating": report.rating.value,
        "aborted_by": report.aborted_by,
        "outcomes": [
            {
                "name": o.name,
                "status": o.status.value,
                "detail": o.detail,
                "weight": o.weight,
                "error_kind": o.error_kind.value if o.error_kind else None,
                "duration_ms": o.duration_ms,
            }
            for o in report.outcomes
        ],
        "metrics": metrics,
        "memory": {
            "samples": [{"sequence": s.sequence, "value": s.value} for s in report.memory_samples],
            "initial": summary.initial if summary else None,
            "final": summary.final if summary else None,
            "delta": summary.delta if summary else None,
            "warning": report.memory_warning,
        },
        "leak_check": None if report.leak_check is None else {
            "before": report.leak_check.before,
            "after": report.leak_check.after,
            "cycles": report.leak_check.cycles,
            "growth_fraction": report.leak_check.growth_fraction,
            "leaked": report.leak_check.leaked,
        },
    }


def write_report(
    report: RunReport,
    output_dir: Path,
    json_output: bool = False,
) -> Path:
    """
    Write the markdown report (and optionally JSON) to output_dir.

    Returns:
        Path to last_run_summary.md.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report_path = output_dir / "last_run_summary.md"
    with open(report_path, "w", encoding="utf-8") as f:
        f.write(render_report(report))

    if json_output:
        with open(output_dir / "last_run_summary.json", "w", encoding="utf-8") as f:
            json.dump(report_to_dict(report), f, indent=2)

    return report_path


def print_summary(report: RunReport) -> None:
    """Print a quick summary to console."""
    print("\n" + "=" * 50)
    print("COMPATIBILITY SUMMARY")
    print("=" * 50)
    print(f"Passed: {report.passed}/{report.total}")
    print(f"Weighted: {report.weighted_score}/{report.max_weighted_score} ({report.percentage:.1f}%)")
    if report.aborted_by:
        print(f"Aborted by: {report.aborted_by}")
    print(f"Rating: {report.rating.value}")
    print("=" * 50)
