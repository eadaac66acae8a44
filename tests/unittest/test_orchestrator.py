# AGPL-3.0 License

"""
Unit tests for check selection and two-tier orchestration.
"""

import asyncio

import pytest

from conftest import FakeExecutor, make_config, make_context
from prove.checks.base_check import BaseCheck
from prove.checks.orchestrator import ProveRunner
from prove.checks.registry import select_checks
from prove.mode.resolver import DeliveryMode


class ScriptedCheck(BaseCheck):
    """Check with a fixed outcome, optional delay and in-flight tracking."""

    def __init__(self, check_id, ok=True, delay=0.0, error=None, tracker=None):
        super().__init__()
        self.id = check_id
        self.ok = ok
        self.delay = delay
        self.error = error
        self.tracker = tracker
        self.runs = 0

    async def run(self, context):
        self.runs += 1
        if self.tracker is not None:
            self.tracker["current"] += 1
            self.tracker["max"] = max(self.tracker["max"], self.tracker["current"])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error:
                raise self.error
            if self.ok:
                return self.passed(f"{self.id} fine")
            return self.failed(f"{self.id} broke")
        finally:
            if self.tracker is not None:
                self.tracker["current"] -= 1


class TestSelectChecks:
    """Tests for registry selection."""

    def test_full_functional_defaults(self):
        """Test the default check list for a full functional run."""
        selected = select_checks(make_context())

        assert [check.id for check in selected.critical] == [
            "trunk", "delivery-mode", "commit-msg", "killswitch", "pre-conflict"
        ]
        assert [check.id for check in selected.parallel] == [
            "env", "typecheck", "lint", "tests", "tdd", "diff-coverage", "coverage", "commit-size", "build"
        ]

    def test_quick_mode_omits_slow_checks(self):
        """Test that quick runs drop pre-conflict, build and the optional checks."""
        config = make_config(toggles={"security": True, "contracts": True, "db_migrations": True, "size_budget": True})

        ids = select_checks(make_context(config=config, quick=True)).ids

        for check_id in ("pre-conflict", "build", "size-budget", "security", "contracts", "db-migrations"):
            assert check_id not in ids
        assert "tests" in ids
        assert "diff-coverage" in ids

    def test_optional_checks_follow_toggles(self):
        """Test that toggled checks are included in full runs only when enabled."""
        config = make_config(toggles={"security": True, "coverage": False})

        ids = select_checks(make_context(config=config)).ids

        assert "security" in ids
        assert "coverage" not in ids
        assert "contracts" not in ids

    def test_non_functional_mode_excludes_functional_checks(self):
        """Test that tdd and diff coverage only apply to functional changes."""
        ids = select_checks(make_context(mode=DeliveryMode.NON_FUNCTIONAL)).ids

        assert "tdd" not in ids
        assert "diff-coverage" not in ids
        assert "delivery-mode" in ids

    def test_pre_conflict_toggle(self):
        """Test that pre-conflict detection can be switched off."""
        config = make_config(git={"enable_pre_conflict_check": False})

        assert "pre-conflict" not in select_checks(make_context(config=config)).ids


@pytest.mark.asyncio
class TestProveRunner:
    """Tests for ProveRunner."""

    async def test_critical_failure_short_circuits(self):
        """Test that the first critical failure stops the run before the parallel tier."""
        later = ScriptedCheck("commit-msg")
        parallel = ScriptedCheck("tests")
        runner = ProveRunner([ScriptedCheck("trunk", ok=False), later], [parallel])

        report = await runner.run(make_context())

        assert [result.id for result in report.checks] == ["trunk"]
        assert not report.success
        assert later.runs == 0
        assert parallel.runs == 0

    async def test_without_fail_fast_everything_runs(self):
        """Test that disabling fail_fast runs every check."""
        runner = ProveRunner(
            [ScriptedCheck("trunk", ok=False), ScriptedCheck("commit-msg")],
            [ScriptedCheck("tests")],
            fail_fast=False,
        )

        report = await runner.run(make_context())

        assert [result.id for result in report.checks] == ["trunk", "commit-msg", "tests"]
        assert not report.success

    async def test_parallel_results_keep_declared_order(self):
        """Test that completion order does not affect result order."""
        runner = ProveRunner(
            [ScriptedCheck("trunk")],
            [ScriptedCheck("slow", delay=0.05), ScriptedCheck("fast"), ScriptedCheck("medium", delay=0.02)],
        )

        report = await runner.run(make_context())

        assert [result.id for result in report.checks] == ["trunk", "slow", "fast", "medium"]
        assert report.success

    async def test_parallel_failures_do_not_cancel_others(self):
        """Test that the parallel tier runs to completion despite failures."""
        runner = ProveRunner([], [ScriptedCheck("lint", ok=False), ScriptedCheck("tests", delay=0.01)])

        report = await runner.run(make_context())

        assert [result.ok for result in report.checks] == [False, True]
        assert [result.id for result in report.failures] == ["lint"]

    async def test_concurrency_is_bounded(self):
        """Test that no more than `concurrency` parallel checks run at once."""
        tracker = {"current": 0, "max": 0}
        checks = [ScriptedCheck(f"c{i}", delay=0.02, tracker=tracker) for i in range(6)]
        runner = ProveRunner([], checks, concurrency=2)

        await runner.run(make_context())

        assert tracker["max"] == 2

    async def test_exception_becomes_internal_error(self):
        """Test that an exception inside a check is reported as a failure."""
        runner = ProveRunner([], [ScriptedCheck("typecheck", error=RuntimeError("boom")), ScriptedCheck("lint")])

        report = await runner.run(make_context())

        assert report.checks[0].reason == "internal error: boom"
        assert not report.checks[0].ok
        assert report.checks[1].ok

    async def test_durations_are_recorded(self):
        """Test that each result carries its own duration and the report a total."""
        runner = ProveRunner([], [ScriptedCheck("tests", delay=0.02)])

        report = await runner.run(make_context())

        assert report.checks[0].duration_ms >= 15
        assert report.total_ms >= report.checks[0].duration_ms

    async def test_idempotent(self):
        """Test that identical inputs produce identical outcomes."""
        runner = ProveRunner([ScriptedCheck("trunk")], [ScriptedCheck("lint", ok=False), ScriptedCheck("tests")])
        context = make_context()

        first = await runner.run(context)
        second = await runner.run(context)

        summarize = lambda report: [(r.id, r.ok, r.reason) for r in report.checks]
        assert summarize(first) == summarize(second)
        assert first.success == second.success

    async def test_invalid_concurrency(self):
        """Test that a concurrency below one is rejected."""
        with pytest.raises(ValueError):
            ProveRunner([], [], concurrency=0)


@pytest.mark.asyncio
class TestFullRuns:
    """End-to-end runs through the real registry with scripted tools."""

    async def test_off_trunk_reports_only_trunk(self):
        """Test that a feature branch produces a report with just the trunk check."""
        executor = FakeExecutor()
        context = make_context(branch="feature/x", executor=executor)

        report = await ProveRunner.for_context(context).run(context)

        assert len(report.checks) == 1
        assert report.checks[0].id == "trunk"
        assert report.checks[0].reason.startswith("not on main")
        assert executor.calls == []

    async def test_quick_run_never_builds(self):
        """Test that quick mode never executes the build command."""
        config = make_config(toggles={"security": True})
        executor = FakeExecutor()
        context = make_context(config=config, quick=True, executor=executor)

        report = await ProveRunner.for_context(context).run(context)

        assert report.success
        assert "build" not in [result.id for result in report.checks]
        assert not executor.ran("python -m build")
        assert not executor.ran("pip-audit")
        assert executor.ran("pytest -q")

    async def test_full_run_builds(self):
        """Test that full mode executes the build command."""
        config = make_config(git={"enable_pre_conflict_check": False}, toggles={"coverage": False})
        executor = FakeExecutor()
        context = make_context(config=config, executor=executor)

        report = await ProveRunner.for_context(context).run(context)

        assert executor.ran("python -m build")
        assert report.get("build").ok
        assert report.success

    async def test_unresolved_mode_stops_at_delivery_mode(self):
        """Test that an undeclared mode fails the critical tier and reports unresolved."""
        context = make_context(mode=None)

        report = await ProveRunner.for_context(context).run(context)

        assert [result.id for result in report.checks] == ["trunk", "delivery-mode"]
        assert report.to_dict()["mode"] == "unresolved"
