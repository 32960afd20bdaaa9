"""
Demo: run the harness against a custom subject and a custom check.

Run with: python examples/demo_custom_subject.py
"""

from src.core.adapter import MockSUTAdapter
from src.core.errors import AssertionFailure
from src.benchmarking.driver import HarnessConfig, run_suite
from src.benchmarking.harness import TestRegistry, TestRunner
from src.benchmarking.reporter import build_report, print_summary, render_report
from src.benchmarking.timing import BenchmarkEngine
from src.benchmarking.tracker import ResourceTracker


class TruncatingLabels(MockSUTAdapter):
    """Subject whose labels silently truncate long text."""

    def set_property(self, handle, name, value):
        if name == "text" and isinstance(value, str):
            value = value[:8]
        super().set_property(handle, name, value)


def main():
    print("=" * 50)
    print("DEMO: custom subject")
    print("=" * 50)

    # 1. Default check pack, quick mode
    print("\n1. Running the default pack in quick mode...")
    report = run_suite(TruncatingLabels(), HarnessConfig.quick(), subject_name="TruncatingLabels")
    print_summary(report)

    # 2. Hand-written registry
    print("\n2. Running a hand-written registry...")
    adapter = TruncatingLabels()
    tracker = ResourceTracker(adapter)
    engine = BenchmarkEngine()
    registry = TestRegistry()

    @registry.check(weight=5, critical=True)
    def create_label():
        tracker.create("label")

    @registry.check(weight=3)
    def long_text_survives():
        label = tracker.create("label")
        adapter.set_property(label, "text", "a rather long caption")
        text = adapter.get_property(label, "text")
        if text != "a rather long caption":
            raise AssertionFailure(f"text truncated to {text!r}")

    @registry.check(weight=1)
    def label_benchmark():
        label = tracker.create("label")
        mean_ns = engine.benchmark(
            "label.size", lambda: adapter.set_property(label, "size", 12), 1000
        )
        return f"{mean_ns:.0f} ns/op"

    try:
        aggregator = TestRunner(registry).run_all()
    finally:
        tracker.cleanup()

    print(render_report(build_report(aggregator, metrics=engine.metrics)))
    print(f"Subject stats: {adapter.get_stats()}")


if __name__ == "__main__":
    main()
