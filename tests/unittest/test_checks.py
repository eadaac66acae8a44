# AGPL-3.0 License

"""
Unit tests for the individual checks.
"""

import asyncio
import json

import pytest

from conftest import FakeExecutor, FakeInspector, make_config, make_context
from prove.checks.check_context import detect_ci
from prove.checks.command_checks import LintCheck, RunTestsCheck, SecurityCheck, TypecheckCheck
from prove.checks.coverage_checks import CoverageArtifact, DiffCoverageCheck, GlobalCoverageCheck
from prove.checks.env_check import EnvironmentCheck
from prove.checks.git_checks import CommitMessageCheck, CommitSizeCheck, KillSwitchCheck, TrunkCheck
from prove.checks.mode_checks import DeliveryModeCheck, TddEvidenceCheck, validate_problem_analysis
from prove.mode.resolver import DeliveryMode
from prove.utils.exec import ExecResult
from prove.utils.git import ChangedLine

VALID_ANALYSIS = (
    "## Analyze\n" + "The connection pool is exhausted under burst load. " * 3
    + "\n## Fix\n" + "Raise the pool size and add a bounded queue. " * 2
    + "\n## Validate\n" + "Replayed production traffic; p99 latency back under budget. " * 2
)


@pytest.mark.asyncio
class TestTrunkCheck:
    """Tests for TrunkCheck."""

    async def test_on_trunk(self):
        """Test that the trunk branch passes."""
        result = await TrunkCheck().run(make_context(branch="main"))

        assert result.ok
        assert result.reason == "on main"

    async def test_off_trunk(self):
        """Test that a feature branch fails and names the current branch."""
        result = await TrunkCheck().run(make_context(branch="feature/x"))

        assert not result.ok
        assert result.reason.startswith("not on main")
        assert "feature/x" in result.reason

    async def test_not_required(self):
        """Test that the check is skipped when the trunk is not required."""
        config = make_config(git={"require_main_branch": False})

        result = await TrunkCheck().run(make_context(config=config, branch="feature/x"))

        assert result.ok
        assert result.skipped
        assert result.reason.startswith("skipped:")


@pytest.mark.asyncio
class TestCommitMessageCheck:
    """Tests for CommitMessageCheck."""

    async def test_missing_task_and_mode_tags(self):
        """Test that a bare conventional message fails."""
        result = await CommitMessageCheck().run(make_context(commit_message="feat: add X"))

        assert not result.ok
        assert "does not match" in result.reason

    async def test_full_convention(self):
        """Test that a message with task id and mode tag passes."""
        result = await CommitMessageCheck().run(
            make_context(commit_message="feat: add X [T-2024-01-01-001] [MODE:F]")
        )

        assert result.ok

    async def test_only_first_line_is_checked(self):
        """Test that a body below the subject does not matter."""
        message = "fix: handle nulls [T-2024-02-03-12] [MODE:NF]\n\nLonger explanation."

        result = await CommitMessageCheck().run(make_context(commit_message=message))

        assert result.ok

    async def test_empty_message(self):
        """Test that an unreadable message fails."""
        result = await CommitMessageCheck().run(make_context(commit_message=""))

        assert not result.ok
        assert result.reason == "commit message is empty or unreadable"


@pytest.mark.asyncio
class TestKillSwitchCheck:
    """Tests for KillSwitchCheck."""

    async def test_feature_with_kill_switch(self):
        """Test that a flag lookup in added production lines passes."""
        inspector = FakeInspector(added={"src/app.py": ['    if is_enabled("new-flow"):']})
        context = make_context(changed_files=("src/app.py",), inspector=inspector)

        result = await KillSwitchCheck(context.config).run(context)

        assert result.ok
        assert not result.skipped
        assert "src/app.py" in result.details

    async def test_feature_without_kill_switch(self):
        """Test that unguarded production changes fail."""
        inspector = FakeInspector(added={"src/app.py": ["    run_new_flow()"]})
        context = make_context(changed_files=("src/app.py",), inspector=inspector)

        result = await KillSwitchCheck(context.config).run(context)

        assert not result.ok
        assert result.reason == "feature commit touches production code without a kill switch"

    async def test_registered_flag_name(self):
        """Test that registered flag names count as kill-switch references."""
        config = make_config(feature_flags={"flags": ["checkout_v2"]})
        inspector = FakeInspector(added={"src/app.py": ["    if flags.get('checkout_v2'):"]})
        context = make_context(config=config, changed_files=("src/app.py",), inspector=inspector)

        result = await KillSwitchCheck(config).run(context)

        assert result.ok

    async def test_non_feature_commit_skipped(self):
        """Test that fixes are not required to carry a kill switch."""
        context = make_context(
            commit_message="fix: bug [T-2024-01-01-001] [MODE:F]", changed_files=("src/app.py",)
        )

        result = await KillSwitchCheck(context.config).run(context)

        assert result.skipped

    async def test_test_only_changes_skipped(self):
        """Test that feature commits outside production paths are skipped."""
        context = make_context(changed_files=("tests/test_app.py", "docs/usage.md"))

        result = await KillSwitchCheck(context.config).run(context)

        assert result.skipped


@pytest.mark.asyncio
class TestEnvironmentCheck:
    """Tests for EnvironmentCheck."""

    def config(self):
        return make_config(environment={"required": [
            {"name": "API_URL", "format": "url"},
            {"name": "WORKERS", "format": "integer"},
        ]})

    async def test_valid_environment(self):
        """Test that well-formed variables pass."""
        context = make_context(
            config=self.config(), env={"API_URL": "https://api.example.com", "WORKERS": "4"}
        )

        result = await EnvironmentCheck().run(context)

        assert result.ok

    async def test_invalid_format(self):
        """Test that malformed values fail with the first problem in the reason."""
        context = make_context(config=self.config(), env={"API_URL": "not a url", "WORKERS": "4"})

        result = await EnvironmentCheck().run(context)

        assert not result.ok
        assert result.reason == "1 environment variable problem(s): API_URL is not a valid url"

    async def test_missing_outside_ci(self):
        """Test that missing variables fail locally."""
        result = await EnvironmentCheck().run(make_context(config=self.config()))

        assert not result.ok
        assert "API_URL is not set" in result.details

    async def test_missing_in_ci_skipped(self):
        """Test that CI without any configured secrets skips the check."""
        result = await EnvironmentCheck().run(make_context(config=self.config(), is_ci=True))

        assert result.ok
        assert result.skipped
        assert result.reason == "skipped: secrets not configured in CI"


class TestDetectCi:
    """Tests for CI detection."""

    @pytest.mark.parametrize("env", [{"CI": "true"}, {"CI": "1"}, {"GITHUB_ACTIONS": "true"}, {"JENKINS_URL": "https://ci.example.com"}])
    def test_detected(self, env):
        """Test that set CI variables are detected."""
        assert detect_ci(env)

    @pytest.mark.parametrize("env", [{}, {"CI": "false"}, {"CI": "0"}, {"CI": ""}, {"CIRCLECI": "False"}])
    def test_not_detected(self, env):
        """Test that absent or false CI variables are not treated as CI."""
        assert not detect_ci(env)


@pytest.mark.asyncio
class TestDeliveryModeCheck:
    """Tests for DeliveryModeCheck."""

    async def test_unresolved_mode_fails(self):
        """Test that an unresolved mode fails with the resolution error."""
        context = make_context(mode=None, mode_error="delivery mode not declared")

        result = await DeliveryModeCheck().run(context)

        assert not result.ok
        assert result.reason == "delivery mode not declared"

    async def test_functional_passes(self):
        """Test that functional mode passes without an analysis document."""
        result = await DeliveryModeCheck().run(make_context(mode=DeliveryMode.FUNCTIONAL))

        assert result.ok

    async def test_non_functional_with_analysis(self, temp_dir):
        """Test that a complete problem analysis passes."""
        (temp_dir / "tasks").mkdir()
        (temp_dir / "tasks" / "PROBLEM_ANALYSIS.md").write_text(VALID_ANALYSIS)
        context = make_context(mode=DeliveryMode.NON_FUNCTIONAL, working_directory=temp_dir)

        result = await DeliveryModeCheck().run(context)

        assert result.ok

    async def test_non_functional_without_analysis(self, temp_dir):
        """Test that a missing problem analysis fails."""
        context = make_context(mode=DeliveryMode.NON_FUNCTIONAL, working_directory=temp_dir)

        result = await DeliveryModeCheck().run(context)

        assert not result.ok
        assert result.reason == "missing PROBLEM_ANALYSIS.md"


class TestValidateProblemAnalysis:
    """Tests for problem-analysis validation rules."""

    SECTIONS = ["## Analyze", "## Fix", "## Validate"]

    def test_placeholder_rejected(self, temp_dir):
        """Test that unfilled templates are rejected."""
        path = temp_dir / "analysis.md"
        path.write_text(VALID_ANALYSIS + "\n[REPLACE: root cause]")

        validation = validate_problem_analysis(path, self.SECTIONS, 200)

        assert not validation.ok
        assert "placeholders" in validation.reason

    def test_missing_section(self, temp_dir):
        """Test that every required section must be present."""
        path = temp_dir / "analysis.md"
        path.write_text(VALID_ANALYSIS.replace("## Validate", "## Verify"))

        validation = validate_problem_analysis(path, self.SECTIONS, 200)

        assert not validation.ok
        assert validation.reason == "missing required sections: ## Validate"
        assert validation.missing_sections == ["## Validate"]

    def test_too_short(self, temp_dir):
        """Test the minimum trimmed length."""
        path = temp_dir / "analysis.md"
        path.write_text("## Analyze\nx\n## Fix\ny\n## Validate\nz\n")

        validation = validate_problem_analysis(path, self.SECTIONS, 200)

        assert not validation.ok
        assert validation.reason.startswith("insufficient content length")


@pytest.mark.asyncio
class TestTddEvidenceCheck:
    """Tests for TddEvidenceCheck."""

    async def test_source_without_tests(self):
        """Test that source changes without test changes fail."""
        context = make_context(changed_files=("src/app.py",))

        result = await TddEvidenceCheck(context.config).run(context)

        assert not result.ok
        assert "src/app.py" in result.details

    async def test_source_with_matching_test(self):
        """Test that a same-named test satisfies the check."""
        context = make_context(changed_files=("src/app.py", "tests/test_app.py"))

        result = await TddEvidenceCheck(context.config).run(context)

        assert result.ok
        assert result.details is None

    async def test_unmatched_test_name_reported(self):
        """Test that unrelated test changes pass but are reported."""
        context = make_context(changed_files=("src/app.py", "tests/test_other.py"))

        result = await TddEvidenceCheck(context.config).run(context)

        assert result.ok
        assert "src/app.py" in result.details

    async def test_no_source_changes(self):
        """Test that documentation-only changes pass."""
        context = make_context(changed_files=("README.md",))

        result = await TddEvidenceCheck(context.config).run(context)

        assert result.ok


@pytest.mark.asyncio
class TestCommandChecks:
    """Tests for checks that delegate to external tools."""

    async def test_nonzero_exit_fails_with_output(self):
        """Test that a failing tool fails the check with its output as details."""
        executor = FakeExecutor({"mypy .": ExecResult(1, "app.py:3: error: bad type", "")})

        result = await TypecheckCheck().run(make_context(executor=executor))

        assert not result.ok
        assert result.reason == "typecheck failed (exit 1)"
        assert "bad type" in result.details

    async def test_timeout_reason(self):
        """Test that a timed-out tool reports the timeout."""
        executor = FakeExecutor({"mypy .": ExecResult(124, "", "Command timed out", timed_out=True)})

        result = await TypecheckCheck().run(make_context(executor=executor))

        assert result.reason == "typecheck timed out after 60000ms"

    async def test_spawn_failure_reason(self):
        """Test that a missing tool reports that it could not start."""
        executor = FakeExecutor({"mypy .": ExecResult(126, "", "Execution error: not found")})

        result = await TypecheckCheck().run(make_context(executor=executor))

        assert result.reason == "typecheck could not start: Execution error: not found"

    async def test_lint_warning_budget(self):
        """Test that warnings beyond max_warnings fail a zero-exit lint run."""
        executor = FakeExecutor({"ruff check .": ExecResult(0, "app.py:1:1: warning: unused import\n", "")})

        result = await LintCheck().run(make_context(executor=executor))

        assert not result.ok
        assert result.reason == "1 lint warnings > max 0"

    async def test_lint_within_budget(self):
        """Test that warnings within the budget pass."""
        config = make_config(thresholds={"max_warnings": 2})
        executor = FakeExecutor({"ruff check .": ExecResult(0, "warning: a\nwarning: b\n", "")})

        result = await LintCheck().run(make_context(config=config, executor=executor))

        assert result.ok

    async def test_tests_summary(self):
        """Test that the test summary is surfaced in the reason."""
        executor = FakeExecutor({"pytest -q": ExecResult(1, "F..\n1 failed, 2 passed in 0.12s\n", "")})

        result = await RunTestsCheck().run(make_context(executor=executor))

        assert result.reason == "tests failed (exit 1): 1 failed, 2 passed"

    async def test_tests_required_for_functional(self):
        """Test that functional changes fail without a tests command."""
        config = make_config(commands={"tests": []})

        functional = await RunTestsCheck().run(make_context(config=config))
        non_functional = await RunTestsCheck().run(make_context(config=config, mode=DeliveryMode.NON_FUNCTIONAL))

        assert not functional.ok
        assert non_functional.skipped

    async def test_unconfigured_command_skipped(self):
        """Test that an empty command list skips the check."""
        config = make_config(commands={"security": []})

        result = await SecurityCheck().run(make_context(config=config))

        assert result.skipped
        assert result.reason == "skipped: no security command configured"


def write_coverage(root, executed, missing, name="src/app.py"):
    data = {"meta": {"version": "7"}, "files": {name: {"executed_lines": executed, "missing_lines": missing}}}
    (root / "coverage.json").write_text(json.dumps(data))


@pytest.mark.asyncio
class TestCoverageChecks:
    """Tests for diff and global coverage."""

    TEN_LINES = [ChangedLine("src/app.py", line) for line in range(1, 11)]

    async def test_diff_coverage_below_threshold(self, temp_dir):
        """Test that 8 of 10 covered added lines fails an 85% threshold."""
        write_coverage(temp_dir, list(range(1, 9)), [9, 10])
        context = make_context(working_directory=temp_dir, inspector=FakeInspector(changed_lines=self.TEN_LINES))

        result = await DiffCoverageCheck(context.config, CoverageArtifact()).run(context)

        assert not result.ok
        assert result.reason == "diff coverage 80% < 85%"
        assert "src/app.py:9" in result.details

    async def test_refactor_threshold(self, temp_dir):
        """Test that refactor commits use the refactor threshold."""
        write_coverage(temp_dir, list(range(1, 9)), [9, 10])
        context = make_context(
            working_directory=temp_dir,
            commit_message="refactor: split module [T-2024-01-01-001] [MODE:F]",
            inspector=FakeInspector(changed_lines=self.TEN_LINES),
        )

        result = await DiffCoverageCheck(context.config, CoverageArtifact()).run(context)

        assert result.ok

    async def test_no_added_source_lines(self, temp_dir):
        """Test that test-only diffs are vacuously covered."""
        inspector = FakeInspector(changed_lines=[ChangedLine("tests/test_app.py", 1)])
        context = make_context(working_directory=temp_dir, inspector=inspector)

        result = await DiffCoverageCheck(context.config, CoverageArtifact()).run(context)

        assert result.ok
        assert result.reason == "diff coverage 100% (no added lines outside tests)"

    async def test_uninstrumented_file_outside_source_globs(self, temp_dir):
        """Test that added lines in a file without a coverage record count as uncovered."""
        write_coverage(temp_dir, list(range(1, 11)), [])
        changed = [ChangedLine("lib/util.py", line) for line in range(1, 11)]
        context = make_context(working_directory=temp_dir, inspector=FakeInspector(changed_lines=changed))

        result = await DiffCoverageCheck(context.config, CoverageArtifact()).run(context)

        assert not result.ok
        assert result.reason == "diff coverage 0% < 85%"
        assert "lib/util.py:1" in result.details

    async def test_missing_artifact(self, temp_dir):
        """Test that a missing coverage artifact fails the check."""
        context = make_context(working_directory=temp_dir, inspector=FakeInspector(changed_lines=self.TEN_LINES))

        result = await DiffCoverageCheck(context.config, CoverageArtifact()).run(context)

        assert not result.ok
        assert "Coverage file not found" in result.reason

    async def test_global_coverage(self, temp_dir):
        """Test global coverage against its threshold."""
        write_coverage(temp_dir, list(range(1, 9)), [9, 10])
        context = make_context(working_directory=temp_dir)

        result = await GlobalCoverageCheck(CoverageArtifact()).run(context)

        assert result.ok
        assert result.reason == "global coverage 80%"

    async def test_global_coverage_averages_metrics(self, temp_dir):
        """Test that passing line coverage does not hide uncovered branches and functions."""
        data = {
            "meta": {"version": "7"},
            "files": {
                "src/app.py": {
                    "executed_lines": list(range(1, 9)),
                    "missing_lines": [9, 10],
                    "executed_branches": [],
                    "missing_branches": [[1, 2], [3, 4]],
                    "functions": {"handler": {"executed_lines": [], "missing_lines": [3]}},
                },
            },
        }
        (temp_dir / "coverage.json").write_text(json.dumps(data))
        config = make_config(thresholds={"global_coverage": 50})

        result = await GlobalCoverageCheck(CoverageArtifact()).run(make_context(config=config, working_directory=temp_dir))

        assert not result.ok
        assert result.reason == "global coverage 40% < 50%"
        assert "lines: 80% (8/10)" in result.details

    async def test_coverage_command_runs_once(self, temp_dir):
        """Test that both coverage checks share one coverage run."""
        write_coverage(temp_dir, list(range(1, 11)), [])
        config = make_config(commands={"coverage": ["pytest", "--cov"]})
        executor = FakeExecutor(delay=0.01)
        context = make_context(
            config=config,
            working_directory=temp_dir,
            executor=executor,
            inspector=FakeInspector(changed_lines=self.TEN_LINES),
        )
        artifact = CoverageArtifact()

        results = await asyncio.gather(
            DiffCoverageCheck(config, artifact).run(context),
            GlobalCoverageCheck(artifact).run(context),
        )

        assert all(result.ok for result in results)
        assert executor.calls == [["pytest", "--cov"]]


@pytest.mark.asyncio
class TestCommitSizeCheck:
    """Tests for CommitSizeCheck."""

    async def test_over_limit(self):
        """Test that insertions plus deletions above the limit fail."""
        context = make_context(inspector=FakeInspector(shortstat=(3, 250, 100)))

        result = await CommitSizeCheck().run(context)

        assert not result.ok
        assert result.reason == "commit size 350 lines > max 300"

    async def test_within_limit(self):
        """Test that small changes pass."""
        context = make_context(inspector=FakeInspector(shortstat=(1, 10, 2)))

        result = await CommitSizeCheck().run(context)

        assert result.ok
