# Compatibility Benchmarking Module
# Weighted check orchestration against a pluggable subject under test
"""
This module provides:
- harness: Registry and runner with critical-abort semantics
- weights / results: Weight table and result aggregation
- tracker: Guaranteed disposal of subject handles
- timing / memory: Benchmarks, throughput, memory sampling and leak checks
- reporter: Tiered rating and deterministic reports
- scenarios / driver: Default check pack and the top-level run driver
"""
