"""
Tests for the compatibility check pack, reporter and run driver.

Verifies:
- Check definitions are well formed
- The pack runs against the mock subject and scores it
- Reports are deterministic and complete
- The driver releases tracked resources on every exit path
"""
import asyncio
import json

import pytest

from src.core.adapter import MockSUTAdapter
from src.core.errors import DriverFault
from src.benchmarking.scenarios import (
    Category,
    CheckSpec,
    get_checks,
    get_check_by_name,
    build_registry,
    default_weights,
    ALL_CHECKS,
    CORE_CHECKS,
    CONTRACT_CHECKS,
    PERFORMANCE_CHECKS,
)
from src.benchmarking.driver import HarnessConfig, create_context, run_suite
from src.benchmarking.harness import TestRegistry, TestRunner
from src.benchmarking.memory import MemorySample
from src.benchmarking.results import OutcomeStatus, ResultAggregator
from src.benchmarking.reporter import (
    Tier,
    build_report,
    render_report,
    report_to_dict,
    write_report,
)
from src.benchmarking.timing import PerformanceMetric, ThroughputMetric
from src.benchmarking.cli import build_parser, config_from_args, load_adapter, main
from src.verification.event_logger import EventTag, null_logger


def quick_run(adapter=None, **overrides):
    config = HarnessConfig.quick(**overrides)
    return run_suite(adapter or MockSUTAdapter(), config, probe=lambda: 50.0)


# =============================================================================
# CHECK PACK
# =============================================================================
class TestChecks:
    """Check definitions."""

    def test_check_names_are_unique(self):
        names = [c.name for c in ALL_CHECKS]
        assert len(names) == len(set(names))

    def test_core_checks_are_critical(self):
        assert all(c.critical for c in CORE_CHECKS)
        assert not any(c.critical for c in CONTRACT_CHECKS + PERFORMANCE_CHECKS)

    def test_integration_outweighs_micro_checks(self):
        bulk = get_check_by_name("bulk_create")
        assert bulk.weight > max(
            c.weight for c in CONTRACT_CHECKS if c.name != "bulk_create"
        )

    def test_get_checks_filters_by_category(self):
        assert get_checks() == ALL_CHECKS
        assert get_checks(Category.CORE) == CORE_CHECKS
        assert get_checks(Category.PERFORMANCE) == PERFORMANCE_CHECKS

    def test_get_check_by_name_missing(self):
        assert get_check_by_name("nope") is None

    def test_default_weights_match_definitions(self):
        weights = default_weights()
        for check in ALL_CHECKS:
            assert weights.weight_of(check.name) == check.weight

    def test_registry_tags_include_category(self):
        ctx = create_context(MockSUTAdapter(), HarnessConfig.quick(), null_logger("t"), probe=None)
        registry = build_registry(ctx)

        assert registry.names() == [c.name for c in ALL_CHECKS]
        assert "performance" in registry.get("memory_leak").tags
        assert registry.select(only=["core"]).names() == [c.name for c in CORE_CHECKS]


# =============================================================================
# DRIVER
# =============================================================================
class TestDriver:
    """End-to-end runs against the mock subject."""

    def test_mock_subject_gets_full_coverage(self):
        report = quick_run()

        failed = [o for o in report.outcomes if not o.passed]
        assert failed == []
        assert report.total == len(ALL_CHECKS)
        assert report.percentage == 100.0
        assert report.rating == Tier.FULL

    def test_all_tracked_handles_disposed(self):
        adapter = MockSUTAdapter()
        quick_run(adapter)
        assert adapter.live_handles() == []

    def test_metrics_in_insertion_order(self):
        report = quick_run()
        labels = [m.label for m in report.metrics]
        assert labels == ["create+set+dispose", "set_property", "stress create+set+dispose"]

    def test_memory_samples_recorded(self):
        report = quick_run(memory_samples=5)
        # one before, five from the sampling check, one after
        assert len(report.memory_samples) == 7
        assert [s.sequence for s in report.memory_samples] == list(range(7))
        assert report.leak_check is not None

    def test_critical_failure_stops_run(self):
        adapter = MockSUTAdapter(unsupported_kinds={"label"})
        report = quick_run(adapter)

        assert [o.name for o in report.outcomes] == ["create_dispose"]
        assert report.outcomes[0].status == OutcomeStatus.CRITICAL_FAILURE
        assert report.aborted_by == "create_dispose"
        assert report.max_weighted_score == get_check_by_name("create_dispose").weight
        assert report.rating == Tier.POOR
        assert adapter.live_handles() == []

    def test_contract_failures_lower_the_rating(self):
        class LenientAdapter(MockSUTAdapter):
            def set_property(self, handle, name, value):
                handle.properties[name] = value

        report = quick_run(LenientAdapter())

        failed = sorted(o.name for o in report.outcomes if not o.passed)
        assert failed == ["invalid_property_rejected", "type_mismatch_rejected"]
        assert report.weighted_score == report.max_weighted_score - 4
        assert report.rating == Tier.MAJORITY

    def test_failing_dispose_never_reaches_report(self):
        adapter = MockSUTAdapter(fail_dispose=True)
        report = quick_run(adapter, only=["contract"])

        assert all(o.passed for o in report.outcomes)

    def test_selection_and_weight_overrides(self):
        report = quick_run(only=["contract"], skip=["bulk_create"], weights={"property_roundtrip": 10})

        assert [o.name for o in report.outcomes] == [
            "property_roundtrip",
            "invalid_property_rejected",
            "type_mismatch_rejected",
            "unsupported_kind_rejected",
        ]
        assert report.outcomes[0].weight == 10
        assert report.max_weighted_score == 16

    def test_missing_probe_gives_zero_series(self):
        report = run_suite(MockSUTAdapter(), HarnessConfig.quick(), probe=None)
        assert all(s.value == 0.0 for s in report.memory_samples)
        assert not report.memory_warning

    def test_failing_probe_gives_zero_series(self):
        def denied():
            raise PermissionError("no access to process stats")

        report = run_suite(MockSUTAdapter(), HarnessConfig.quick(), probe=denied)

        assert report.rating == Tier.FULL
        assert report.memory_samples
        assert all(s.value == 0.0 for s in report.memory_samples)
        assert not report.leak_check.leaked

    def test_runs_inside_an_event_loop(self):
        async def host():
            await asyncio.sleep(0)
            return run_suite(MockSUTAdapter(), HarnessConfig.quick(), probe=None)

        report = asyncio.run(host())

        assert report.rating == Tier.FULL
        assert len(report.memory_samples) == HarnessConfig.quick().memory_samples + 2

    @pytest.mark.parametrize("check", ["create_dispose_benchmark", "released_after_dispose"])
    def test_short_lived_handle_reaches_cleanup_when_dispose_fails(self, check):
        adapter = MockSUTAdapter(fail_dispose=True)

        report = quick_run(adapter, only=[check])

        assert [o.name for o in report.outcomes] == [check]
        assert not report.outcomes[0].passed
        # one in-line attempt, one retry from tracker cleanup
        assert adapter.dispose_calls == [1, 1]

    def test_driver_fault_still_cleans_up(self):
        adapter = MockSUTAdapter()

        def eager(ctx):
            # creates at registration time, outside any check boundary
            ctx.tracker.create("rect")
            ctx.tracker.create("circle")
            return lambda: None

        def explode(ctx):
            raise RuntimeError("factory exploded")

        checks = [
            CheckSpec("eager", Category.CORE, eager),
            CheckSpec("broken", Category.CORE, explode),
        ]

        with pytest.raises(DriverFault) as excinfo:
            run_suite(adapter, HarnessConfig.quick(), checks=checks, probe=None)

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert adapter.live_handles() == []
        assert adapter.dispose_calls == [1, 2]

    def test_run_is_logged(self):
        logger = null_logger("driver")
        run_suite(MockSUTAdapter(), HarnessConfig.quick(), logger=logger, probe=None)

        actions = [e.action for e in logger.get_events(EventTag.CHECK)]
        assert actions[0] == "registered"
        assert actions[-1] == "rating"

    def test_runs_do_not_share_state(self):
        first = quick_run()
        second = quick_run(only=["core"])
        assert first.total == len(ALL_CHECKS)
        assert second.total == len(CORE_CHECKS)


# =============================================================================
# CONFIG
# =============================================================================
class TestConfig:
    """Configuration loading."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"iterations": 50, "weights": {"bulk_create": 20}}))

        config = HarnessConfig.from_file(path)

        assert config.iterations == 50
        assert config.weights == {"bulk_create": 20}
        assert config.leak_tolerance == 0.20

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError):
            HarnessConfig.from_dict({"iterationz": 5})

    @pytest.mark.parametrize("weight", [0, -3, 2.5, "heavy", True, None])
    def test_bad_weights_rejected(self, weight):
        with pytest.raises(ValueError):
            HarnessConfig.from_dict({"weights": {"bulk_create": weight}})

    def test_weights_must_be_a_mapping(self):
        with pytest.raises(ValueError):
            HarnessConfig.from_dict({"weights": ["bulk_create"]})

    def test_defaults(self):
        config = HarnessConfig()
        assert config.iterations == 1000
        assert config.stress_seconds == 3.0
        assert config.memory_delta_warning == 1.0


# =============================================================================
# REPORTER
# =============================================================================
def sample_report(**kwargs):
    registry = TestRegistry()
    registry.register("X", lambda: False, weight=5)
    registry.register("Y", lambda: "fine", weight=3)
    aggregator = TestRunner(registry).run_all()
    defaults = dict(
        metrics=[
            PerformanceMetric("noop", 12.5, 1000),
            ThroughputMetric("stress", 3000, 3.0),
        ],
        memory_samples=[MemorySample(0, 10.0), MemorySample(1, 12.5)],
        elapsed_seconds=1.25,
    )
    defaults.update(kwargs)
    return build_report(aggregator, **defaults)


class TestReporter:
    """Report rendering."""

    def test_report_totals(self):
        report = sample_report()
        assert (report.passed, report.total) == (1, 2)
        assert report.weighted_score == 3
        assert report.max_weighted_score == 8
        assert report.rating == Tier.LIMITED

    def test_render_contains_sections(self):
        text = render_report(sample_report())

        assert "# Compatibility Report" in text
        assert "**Elapsed:** 1.25s" in text
        assert "**Passed:** 1/2" in text
        assert "**Weighted score:** 3/8 (37.5%)" in text
        assert "| ✗ | X | failed | 5 | check returned False |" in text
        assert "| ✓ | Y | passed | 3 | fine |" in text
        assert "12.5 ns" in text
        assert "1,000 ops/s" in text
        assert "- Delta: +2.50" in text
        assert "**Limited — simple use cases only** (37.5%)" in text

    def test_render_order_is_deterministic(self):
        text = render_report(sample_report())
        assert text.index("| X |") < text.index("| Y |")
        assert text.index("| noop |") < text.index("| stress |")
        assert render_report(sample_report(started_at=None)) == text

    def test_memory_warning_threshold(self):
        assert "⚠" in render_report(sample_report())
        assert "⚠" not in render_report(sample_report(delta_warning=5.0))

    def test_empty_measurements(self):
        text = render_report(sample_report(metrics=[], memory_samples=[]))
        assert "No performance metrics recorded." in text
        assert "No memory samples recorded." in text

    def test_aborted_run_is_flagged(self):
        registry = TestRegistry()
        registry.register("gate", lambda: False, critical=True)
        registry.register("later", lambda: None)
        report = build_report(TestRunner(registry).run_all())

        text = render_report(report)

        assert "critical check `gate` failed" in text
        assert "later" not in text

    def test_zero_max_score(self):
        report = build_report(ResultAggregator())
        assert report.percentage == 0.0
        assert report.rating == Tier.POOR

    def test_report_to_dict_is_json_serializable(self):
        data = report_to_dict(sample_report())
        encoded = json.loads(json.dumps(data))

        assert encoded["rating"] == Tier.LIMITED.value
        assert [o["name"] for o in encoded["outcomes"]] == ["X", "Y"]
        assert encoded["outcomes"][0]["error_kind"] == "assertion"
        assert encoded["metrics"][1]["kind"] == "throughput"
        assert encoded["memory"]["delta"] == pytest.approx(2.5)

    def test_write_report_creates_files(self, tmp_path):
        path = write_report(sample_report(), tmp_path, json_output=True)

        assert path.name == "last_run_summary.md"
        assert "# Compatibility Report" in path.read_text(encoding="utf-8")
        assert (tmp_path / "last_run_summary.json").exists()


# =============================================================================
# CLI
# =============================================================================
class TestCli:
    """Command-line entry point."""

    def test_quick_run_prints_report(self, capsys):
        status = main(["--quick", "--memory-samples", "2"])

        out = capsys.readouterr().out
        assert status == 0
        assert "# Compatibility Report" in out
        assert "Full feature coverage" in out

    def test_exit_zero_even_when_checks_fail(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"kinds": ["rect", "hexagon"]}))

        status = main(["--quick", "--config", str(path),
                       "--adapter", "src.core.adapter:MockSUTAdapter"])

        out = capsys.readouterr().out
        assert status == 0
        assert "critical check `create_dispose` failed" in out
        assert "Poor — basic functionality only" in out

    def test_output_dir(self, tmp_path, capsys):
        status = main(["--quick", "--only", "core", "--output-dir", str(tmp_path), "--json-output"])

        assert status == 0
        assert (tmp_path / "last_run_summary.md").exists()
        data = json.loads((tmp_path / "last_run_summary.json").read_text())
        assert data["total"] == len(CORE_CHECKS)

    def test_flags_override_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"iterations": 50, "skip": ["stress"]}))
        args = build_parser().parse_args([
            "--config", str(path), "--iterations", "7", "--skip", "memory",
            "--weight", "bulk_create=12", "--leak-tolerance", "0.5",
        ])

        config = config_from_args(args)

        assert config.iterations == 7
        assert config.skip == ["stress", "memory"]
        assert config.weights == {"bulk_create": 12}
        assert config.leak_tolerance == 0.5

    def test_bad_weight_flag(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--weight", "bulk_create=heavy"])

    def test_load_adapter(self):
        adapter = load_adapter("src.core.adapter:MockSUTAdapter")
        assert isinstance(adapter, MockSUTAdapter)
        with pytest.raises(ValueError):
            load_adapter("no_colon_here")

    def test_bad_config_path_is_an_error(self, capsys):
        assert main(["--config", "/nonexistent/config.json"]) == 2

    def test_bad_weight_in_config_is_a_config_error(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"weights": {"bulk_create": 0}}))

        status = main(["--quick", "--config", str(path)])

        captured = capsys.readouterr()
        assert status == 2
        assert "bulk_create" in captured.err
        assert captured.out == ""

    def test_driver_fault_exits_one(self, monkeypatch, capsys):
        def broken_registry(*args, **kwargs):
            raise RuntimeError("registry unavailable")

        monkeypatch.setattr("src.benchmarking.driver.build_registry", broken_registry)

        status = main(["--quick", "--adapter", "src.core.adapter:MockSUTAdapter"])

        captured = capsys.readouterr()
        assert status == 1
        assert "run failed outside a check: registry unavailable" in captured.err
        assert "# Compatibility Report" not in captured.out
