# AGPL-3.0 License

"""
Checks backed by external tools.

Each tool is an opaque subprocess judged by its exit code; the command
line and timeout come from the `commands` and `check_timeouts` sections.
"""

import re
from typing import Optional

from prove.checks.base_check import CommandCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.utils.exec import ExecResult

WARNING_LINE = re.compile(r"\bwarning\b", re.IGNORECASE)
TEST_SUMMARY = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed)")


class TypecheckCheck(CommandCheck):
    id = "typecheck"
    description = "Static type check"
    category = "typecheck"
    label = "typecheck"


class LintCheck(CommandCheck):
    """
    Runs the linter and enforces the warning budget.

    The linter must exit zero, and the number of output lines reporting a
    warning must not exceed `thresholds.max_warnings`.
    """

    id = "lint"
    description = "Lint with warning budget"
    category = "lint"
    label = "lint"

    def evaluate(self, result: ExecResult, context: ExecutionContext) -> CheckResult:
        output = result.combined_output()
        warnings = sum(1 for line in output.splitlines() if WARNING_LINE.search(line))
        max_warnings = context.config.thresholds.max_warnings
        if warnings > max_warnings:
            return self.failed(f"{warnings} lint warnings > max {max_warnings}", output)
        return self.passed()


def summarize_test_output(output: str) -> Optional[str]:
    """Extract a "3 failed, 10 passed" style summary from test runner output."""
    for line in reversed(output.splitlines()):
        counts = TEST_SUMMARY.findall(line)
        if counts:
            return ", ".join(f"{number} {outcome}" for number, outcome in counts)
    return None


class RunTestsCheck(CommandCheck):
    id = "tests"
    description = "Test suite"
    category = "tests"
    label = "tests"

    def missing_command(self, context: ExecutionContext) -> CheckResult:
        if context.is_functional and context.config.modes.functional.require_tests:
            return self.failed("no tests command configured; functional changes require tests")
        return super().missing_command(context)

    def failure_reason(self, result: ExecResult, timeout_ms: int, context: ExecutionContext) -> str:
        reason = super().failure_reason(result, timeout_ms, context)
        summary = summarize_test_output(result.stdout)
        return f"{reason}: {summary}" if summary else reason

    def evaluate(self, result: ExecResult, context: ExecutionContext) -> CheckResult:
        return self.passed(summarize_test_output(result.stdout))


class BuildCheck(CommandCheck):
    id = "build"
    description = "Production build"
    category = "build"
    label = "build"


class SizeBudgetCheck(CommandCheck):
    id = "size-budget"
    description = "Bundle size budget"
    category = "size_budget"
    label = "size budget"


class SecurityCheck(CommandCheck):
    id = "security"
    description = "Dependency security audit"
    category = "security"
    label = "security audit"


class ContractsCheck(CommandCheck):
    id = "contracts"
    description = "API contract validation"
    category = "contracts"
    label = "contract validation"


class MigrationsCheck(CommandCheck):
    id = "db-migrations"
    description = "Database migration validation"
    category = "db_migrations"
    label = "migration validation"
