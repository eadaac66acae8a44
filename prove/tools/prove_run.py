# AGPL-3.0 License

"""
Prove run tool - executes the quality gates for the working tree.

Loads and validates settings, gathers git state and the delivery mode,
runs both check tiers and reports to the console and the JSON artifact.
"""

import os
import sys
from pathlib import Path
from typing import Mapping, Optional, TextIO

import aiosqlite

from prove.checks.check_context import build_context
from prove.checks.orchestrator import ProveRunner
from prove.config.schema import ProveConfig
from prove.config_loader import load_config
from prove.errors import ConfigurationError, GitError
from prove.history.collector import Regression, RunHistoryStore
from prove.log import get_logger
from prove.report.reporter import render_console, render_json, write_report
from prove.report.run_report import RunReport


class ProveRun:
    """
    Prove run tool - executes the checks and reports the outcome.
    """

    def __init__(
        self,
        working_directory: Optional[str] = None,
        quick: bool = False,
        verbose: bool = False,
        json_output: bool = False,
        settings_file: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None
    ):
        """
        Initialize the run tool.

        Args:
            working_directory: Repository root (defaults to the current directory)
            quick: Skip the slow checks
            verbose: Print full diagnostics
            json_output: Print the report JSON to stdout
            settings_file: Explicit project settings file
            env: Environment snapshot (defaults to os.environ)
            stdout: Stream for the report
            stderr: Stream for diagnostics
        """
        self.working_directory = Path(working_directory or os.getcwd()).resolve()
        self.quick = quick
        self.verbose = verbose
        self.json_output = json_output
        self.settings_file = settings_file
        self.env = dict(os.environ if env is None else env)
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.logger = get_logger()
        self.report: Optional[RunReport] = None

    async def run(self) -> int:
        """
        Execute the run.

        Returns:
            Process exit status: 0 when every check passed, 1 otherwise
        """
        try:
            config = load_config(self.working_directory, self.settings_file, self.env).config
        except ConfigurationError as e:
            self._print_configuration_error(e)
            return 1

        self.logger.info(f"Running prove in {self.working_directory} ({'quick' if self.quick else 'full'})")

        try:
            context = await build_context(config, self.working_directory, self.env, quick=self.quick)
        except GitError as e:
            self.logger.error(f"Could not read git state: {e}")
            print(f"❌ Could not read git state: {e}", file=self.stderr)
            return 1

        runner = ProveRunner.for_context(context)
        report = await runner.run(context)
        self.report = report

        regressions = await self._track_history(config, report)
        self._publish(config, report, regressions)
        return report.exit_code

    async def _track_history(self, config: ProveConfig, report: RunReport) -> list[Regression]:
        """Record the run and return performance regressions; never fails the run."""
        if not config.history.enabled:
            return []

        db_path = Path(config.history.database_path)
        if not db_path.is_absolute():
            db_path = self.working_directory / db_path

        store = RunHistoryStore(str(db_path), regression_factor=config.history.regression_factor)
        try:
            regressions = await store.regressions(report)
            await store.record_run(report)
        except (aiosqlite.Error, OSError) as e:
            self.logger.error(f"Failed to record run history: {e}")
            return []

        for regression in regressions:
            self.logger.warning(f"Performance regression: {regression}")
        return regressions

    def _publish(self, config: ProveConfig, report: RunReport, regressions: list[Regression]) -> None:
        console = render_console(report, verbose=self.verbose, regressions=regressions)
        if self.json_output:
            print(console, file=self.stderr, end="")
            print(render_json(report, include_details=self.verbose), file=self.stdout)
        else:
            print(console, file=self.stdout, end="")

        report_path = self.working_directory / config.paths.report_file
        try:
            write_report(report, report_path)
        except OSError as e:
            self.logger.error(f"Failed to write report to {report_path}: {e}")

    def _print_configuration_error(self, error: ConfigurationError) -> None:
        self.logger.error(str(error))
        print(f"❌ {error}", file=self.stderr)
        for issue in error.issues:
            print(f"  {issue}", file=self.stderr)
