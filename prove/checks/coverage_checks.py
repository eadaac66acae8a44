# AGPL-3.0 License

"""
Coverage gates: diff coverage for functional changes and global coverage.

Both checks read the same instrumentation artifact through a shared
CoverageArtifact, which runs the coverage command at most once per run.
"""

import asyncio
from pathlib import Path
from typing import Optional

from prove.checks.base_check import BaseCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.checks.git_checks import first_line
from prove.config.schema import ProveConfig
from prove.errors import CoverageError, GitError
from prove.log import get_logger
from prove.utils.coverage import CoverageFile, diff_coverage, global_summary, load_coverage

MAX_LISTED_UNCOVERED_LINES = 50


def format_pct(value: float) -> str:
    return f"{round(value, 1):g}"


class CoverageArtifact:
    """
    Produces and parses the coverage artifact once, on first request.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._files: Optional[dict[str, CoverageFile]] = None
        self._error: Optional[str] = None
        self.logger = get_logger()

    async def load(self, context: ExecutionContext) -> dict[str, CoverageFile]:
        """
        Raises:
            CoverageError: If the artifact could not be produced or parsed
        """
        async with self._lock:
            if self._files is None and self._error is None:
                try:
                    self._files = await self._produce(context)
                except CoverageError as e:
                    self._error = str(e)
        if self._error is not None:
            raise CoverageError(self._error)
        return self._files

    async def _produce(self, context: ExecutionContext) -> dict[str, CoverageFile]:
        path = Path(context.working_directory) / context.config.paths.coverage_file
        command = list(context.config.commands.coverage)

        if command:
            self.logger.info(f"Generating coverage: {' '.join(command)}")
            result = await context.executor.run(
                command[0], command[1:], timeout_ms=context.config.check_timeouts.coverage
            )
            if not result.succeeded:
                if result.timed_out or result.truncated or result.spawn_failed or not path.is_file():
                    raise CoverageError(
                        f"coverage command failed (exit {result.exit_code}): {result.stderr.strip()[-500:]}"
                    )
                self.logger.warning(f"Coverage command exited {result.exit_code}; using the artifact it wrote")

        return await asyncio.to_thread(load_coverage, path)


class DiffCoverageCheck(BaseCheck):
    """
    Added lines must meet the functional diff-coverage threshold.

    Every added line outside the test globs counts, including files the
    coverage artifact has no record of. Refactor commits use the (lower)
    refactor threshold.
    """

    id = "diff-coverage"
    description = "Coverage of added lines"

    def __init__(self, config: ProveConfig, artifact: CoverageArtifact):
        super().__init__(exclude_paths=config.paths.test_globs)
        self.artifact = artifact

    def threshold(self, context: ExecutionContext) -> float:
        thresholds = context.config.thresholds
        if first_line(context.git.commit_message).startswith("refactor"):
            return thresholds.diff_coverage_functional_refactor
        return thresholds.diff_coverage_functional

    async def run(self, context: ExecutionContext) -> CheckResult:
        threshold = self.threshold(context)

        try:
            changed_lines = await context.inspector.changed_lines(context.git.base_ref)
        except GitError as e:
            return self.failed(f"could not read diff against {context.git.base_ref}", str(e))

        changed_lines = [line for line in changed_lines if self.should_check_file(line.file)]
        if not changed_lines:
            return self.passed("diff coverage 100% (no added lines outside tests)")

        try:
            files = await self.artifact.load(context)
        except CoverageError as e:
            return self.failed(str(e))

        result = diff_coverage(changed_lines, files, str(context.working_directory))
        summary = f"{result.covered_lines}/{result.total_lines} added lines covered"

        if result.percentage < threshold:
            listed = [f"{line.file}:{line.line}" for line in result.uncovered_lines[:MAX_LISTED_UNCOVERED_LINES]]
            if len(result.uncovered_lines) > MAX_LISTED_UNCOVERED_LINES:
                listed.append(f"... and {len(result.uncovered_lines) - MAX_LISTED_UNCOVERED_LINES} more")
            return self.failed(
                f"diff coverage {format_pct(result.percentage)}% < {format_pct(threshold)}%",
                summary + "\nUncovered lines:\n" + "\n".join(listed),
            )
        return self.passed(f"diff coverage {format_pct(result.percentage)}% >= {format_pct(threshold)}%", summary)


class GlobalCoverageCheck(BaseCheck):
    """
    The average of statement, branch, function and line coverage must meet
    the global threshold. Metrics the artifact does not instrument are left
    out of the average.
    """

    id = "coverage"
    description = "Global coverage"

    def __init__(self, artifact: CoverageArtifact):
        super().__init__()
        self.artifact = artifact

    async def run(self, context: ExecutionContext) -> CheckResult:
        try:
            files = await self.artifact.load(context)
        except CoverageError as e:
            return self.failed(str(e))

        summary = global_summary(files)
        threshold = context.config.thresholds.global_coverage
        details = "\n".join(
            f"{name}: {format_pct(metric['pct'])}% ({metric['covered']}/{metric['total']})"
            for name, metric in summary.to_dict().items()
        )

        average = summary.average_pct
        if average < threshold:
            return self.failed(f"global coverage {format_pct(average)}% < {format_pct(threshold)}%", details)
        return self.passed(f"global coverage {format_pct(average)}%", details)
