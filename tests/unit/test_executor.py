"""Tests for TaskExecutor — ordering, bounded parallelism, fail-fast isolation."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import make_unit
from codecforge.core.errors import UnitBuildError, UnitFailure
from codecforge.core.executor import TaskExecutor
from codecforge.core.unit_graph import UnitGraph
from codecforge.models.reports import FailureCategory
from codecforge.models.units import Unit, UnitState


def _setup(edges: dict[str, list[str]]) -> tuple[UnitGraph, dict[str, Unit]]:
    graph = UnitGraph(edges)
    units = {uid: make_unit(uid, *deps) for uid, deps in edges.items()}
    return graph, units


class Recorder:
    """Job that records start/finish order and optionally fails some units."""

    def __init__(self, fail: set[str] | None = None, delay: float = 0.0) -> None:
        self.fail = fail or set()
        self.delay = delay
        self.started: list[str] = []
        self.finished: list[str] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, unit: Unit):
        with self._lock:
            self.started.append(unit.unit_id)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            if unit.unit_id in self.fail:
                raise UnitBuildError(unit.unit_id, 1)
            return ("note",) if unit.unit_id == "c" else ()
        finally:
            with self._lock:
                self.active -= 1
                self.finished.append(unit.unit_id)


class TestExecution:
    def test_dependency_order(self):
        graph, units = _setup({"a": [], "b": ["a"], "c": ["b"]})
        job = Recorder()
        outcomes = TaskExecutor(graph, units, max_workers=4).execute(job, {})
        assert job.started == ["a", "b", "c"]
        assert all(o.state == UnitState.VERIFIED for o in outcomes.values())
        assert outcomes["c"].warnings == ("note",)

    def test_dependents_start_after_dependency_finishes(self):
        graph, units = _setup({"a": [], "b": ["a"]})
        job = Recorder(delay=0.05)
        TaskExecutor(graph, units, max_workers=2).execute(job, {})
        assert job.finished.index("a") < job.started.index("b")

    def test_parallelism_bound(self):
        graph, units = _setup({uid: [] for uid in "abcdef"})
        job = Recorder(delay=0.05)
        TaskExecutor(graph, units, max_workers=2).execute(job, {})
        assert job.peak <= 2
        assert sorted(job.started) == list("abcdef")

    def test_independent_units_overlap(self):
        graph, units = _setup({uid: [] for uid in "abcd"})
        job = Recorder(delay=0.1)
        TaskExecutor(graph, units, max_workers=4).execute(job, {})
        assert job.peak >= 2

    def test_cached_units_skipped(self):
        graph, units = _setup({"a": [], "b": ["a"]})
        job = Recorder()
        outcomes = TaskExecutor(graph, units).execute(job, {"a": UnitState.CACHED})
        assert job.started == ["b"]
        assert outcomes["a"].state == UnitState.CACHED
        assert outcomes["b"].state == UnitState.VERIFIED

    def test_invalid_worker_count(self):
        graph, units = _setup({"a": []})
        with pytest.raises(ValueError):
            TaskExecutor(graph, units, max_workers=0)


class TestFailFast:
    def test_failure_blocks_only_dependents(self):
        graph, units = _setup({"a": [], "b": ["a"], "c": []})
        job = Recorder(fail={"a"})
        outcomes = TaskExecutor(graph, units, max_workers=2).execute(job, {})
        assert outcomes["a"].state == UnitState.FAILED
        assert outcomes["b"].state == UnitState.BLOCKED
        assert outcomes["c"].state == UnitState.VERIFIED
        assert "b" not in job.started
        blocked_reason = outcomes["b"].diagnostics[0]
        assert blocked_reason.category == FailureCategory.UPSTREAM_FAILED
        assert blocked_reason.actual == "a failed"

    def test_all_independent_failures_collected(self):
        graph, units = _setup({"a": [], "b": [], "c": ["a", "b"]})
        job = Recorder(fail={"a", "b"})
        outcomes = TaskExecutor(graph, units, max_workers=1).execute(job, {})
        assert {uid for uid, o in outcomes.items() if o.state == UnitState.FAILED} == {"a", "b"}
        assert outcomes["c"].state == UnitState.BLOCKED

    def test_running_sibling_finishes(self):
        graph, units = _setup({"a": [], "slow": []})

        def job(unit):
            if unit.unit_id == "a":
                raise UnitBuildError("a", 2)
            time.sleep(0.1)
            return ()

        outcomes = TaskExecutor(graph, units, max_workers=2).execute(job, {})
        assert outcomes["slow"].state == UnitState.VERIFIED

    def test_before_launch_can_refuse(self):
        graph, units = _setup({"a": [], "b": ["a"], "top": ["b"]})
        job = Recorder()

        def gate(unit):
            if unit.unit_id == "b":
                raise UnitFailure("b", "descriptor missing")

        outcomes = TaskExecutor(graph, units).execute(job, {}, before_launch=gate)
        assert job.started == ["a"]
        assert outcomes["b"].state == UnitState.FAILED
        assert outcomes["top"].state == UnitState.BLOCKED

    def test_unexpected_error_propagates(self):
        graph, units = _setup({"a": []})

        def job(unit):
            raise KeyError("bug")

        with pytest.raises(KeyError):
            TaskExecutor(graph, units).execute(job, {})

    def test_outcomes_in_topological_order(self):
        graph, units = _setup({"c": ["b"], "b": ["a"], "a": []})
        outcomes = TaskExecutor(graph, units).execute(Recorder(), {})
        assert list(outcomes) == ["a", "b", "c"]
