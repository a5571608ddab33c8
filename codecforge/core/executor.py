"""Task executor — bounded, dependency-ordered execution of unit jobs.

A unit is launched only when every dependency is CACHED or VERIFIED, and a
job only reports VERIFIED after its stamp was committed, so dependents never
start on an artifact that merely "exited 0". A failure blocks the failed
unit's dependent subtree; running siblings finish and independent branches
keep going. Every failure is collected; nothing is retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from codecforge.core.errors import UnitFailure
from codecforge.core.unit_graph import UnitGraph
from codecforge.models.reports import Diagnostic, FailureCategory, UnitOutcome
from codecforge.models.units import Unit, UnitState

logger = logging.getLogger(__name__)

# A job builds and verifies one unit and returns its warnings. It signals
# failure by raising UnitFailure; any other exception aborts the run.
UnitJob = Callable[[Unit], Sequence[str]]
LaunchHook = Callable[[Unit], None]


class TaskExecutor:
    """Walks a ``UnitGraph`` with a bounded worker pool.

    Parameters
    ----------
    graph:
        Dependency graph of the active units.
    units:
        Unit declarations keyed by id; every graph node must be present.
    max_workers:
        Upper bound on concurrently running jobs.
    """

    def __init__(
        self, graph: UnitGraph, units: Mapping[str, Unit], *, max_workers: int = 1
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._graph = graph
        self._units = dict(units)
        self._max_workers = max_workers

    def execute(
        self,
        job: UnitJob,
        initial_states: Mapping[str, UnitState],
        *,
        before_launch: LaunchHook | None = None,
    ) -> dict[str, UnitOutcome]:
        """Run every PENDING unit once, in dependency order.

        Parameters
        ----------
        job:
            Called once per launched unit on a worker thread.
        initial_states:
            CACHED or PENDING per unit id; missing ids count as PENDING.
        before_launch:
            Called on the scheduling thread right before a unit is
            submitted. Raising ``UnitFailure`` fails the unit without
            running its job.

        Returns
        -------
        dict[str, UnitOutcome]
            One outcome per graph node, in topological order.
        """
        order = self._graph.topological_order()
        states: dict[str, UnitState] = {
            uid: initial_states.get(uid, UnitState.PENDING) for uid in order
        }
        outcomes: dict[str, UnitOutcome] = {
            uid: UnitOutcome(unit_id=uid, state=UnitState.CACHED)
            for uid in order
            if states[uid] == UnitState.CACHED
        }
        running: dict[Future[Sequence[str]], str] = {}
        started: dict[str, float] = {}

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="codecforge-unit"
        ) as pool:
            while True:
                for uid in order:
                    if len(running) >= self._max_workers:
                        break
                    if states[uid] != UnitState.PENDING:
                        continue
                    if not self._graph.are_dependencies_met(uid, states):
                        continue
                    unit = self._units[uid]
                    if before_launch is not None:
                        try:
                            before_launch(unit)
                        except UnitFailure as exc:
                            self._record_failure(uid, exc, 0.0, states, outcomes)
                            continue
                    states[uid] = UnitState.RUNNING
                    started[uid] = time.monotonic()
                    logger.info("Starting %s", uid)
                    running[pool.submit(job, unit)] = uid

                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    uid = running.pop(future)
                    elapsed = time.monotonic() - started[uid]
                    try:
                        unit_warnings = future.result()
                    except UnitFailure as exc:
                        self._record_failure(uid, exc, elapsed, states, outcomes)
                        continue
                    states[uid] = UnitState.VERIFIED
                    outcomes[uid] = UnitOutcome(
                        unit_id=uid,
                        state=UnitState.VERIFIED,
                        warnings=tuple(unit_warnings),
                        duration_seconds=elapsed,
                    )
                    logger.info("Verified %s in %.1fs", uid, elapsed)

        # Anything still pending could never become eligible.
        for uid in order:
            if states[uid] == UnitState.PENDING:
                states[uid] = UnitState.BLOCKED
                outcomes[uid] = UnitOutcome(unit_id=uid, state=UnitState.BLOCKED)
        return {uid: outcomes[uid] for uid in order}

    def _record_failure(
        self,
        uid: str,
        exc: UnitFailure,
        elapsed: float,
        states: dict[str, UnitState],
        outcomes: dict[str, UnitOutcome],
    ) -> None:
        states[uid] = UnitState.FAILED
        outcomes[uid] = UnitOutcome(
            unit_id=uid,
            state=UnitState.FAILED,
            diagnostics=exc.diagnostics,
            duration_seconds=elapsed,
        )
        logger.error("%s failed: %s", uid, exc)

        blocked = self._graph.cascade_block(uid, states)
        for dependent in blocked:
            outcomes[dependent] = UnitOutcome(
                unit_id=dependent,
                state=UnitState.BLOCKED,
                diagnostics=(
                    Diagnostic(
                        category=FailureCategory.UPSTREAM_FAILED,
                        unit_id=dependent,
                        expected=f"{uid} verified",
                        actual=f"{uid} failed",
                    ),
                ),
            )
        if blocked:
            logger.warning("Blocked by %s: %s", uid, ", ".join(blocked))
