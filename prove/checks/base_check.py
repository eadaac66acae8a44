# AGPL-3.0 License

"""
Base classes for all checks.
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Iterable, Optional

import pathspec

from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.log import get_logger
from prove.utils.exec import ExecResult, OVERFLOW_EXIT_CODE, SPAWN_FAILURE_EXIT_CODE, TIMEOUT_EXIT_CODE


def compile_globs(patterns: Iterable[str]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines('gitwildmatch', list(patterns))


class BaseCheck(ABC):
    """
    Abstract base class for all checks.

    A check reads the shared context and returns a CheckResult. Expected
    failures (non-zero exits, missing artifacts, convention violations)
    are reported as failed results, never raised.
    """

    id: ClassVar[str] = ""
    description: ClassVar[str] = ""

    def __init__(self, paths: Optional[list[str]] = None, exclude_paths: Optional[list[str]] = None):
        """
        Args:
            paths: Glob patterns for files this check cares about (None = all files)
            exclude_paths: Glob patterns for files to ignore
        """
        self.paths = paths or ["**/*"]
        self.exclude_paths = exclude_paths or []
        self.logger = get_logger()

        # Compile path specs for efficient matching
        self._path_spec = compile_globs(self.paths)
        self._exclude_spec = compile_globs(self.exclude_paths) if self.exclude_paths else None

    def should_check_file(self, file_path: str) -> bool:
        """
        Determine if this check cares about the given file.

        Args:
            file_path: Repository-relative path

        Returns:
            True if the file matches include patterns and doesn't match exclude patterns
        """
        if not self._path_spec.match_file(file_path):
            return False

        if self._exclude_spec and self._exclude_spec.match_file(file_path):
            return False

        return True

    def filter_files(self, files: Iterable[str]) -> list[str]:
        return [file_path for file_path in files if self.should_check_file(file_path)]

    def passed(self, reason: Optional[str] = None, details: Optional[str] = None) -> CheckResult:
        return CheckResult(id=self.id, ok=True, reason=reason, details=details)

    def failed(self, reason: str, details: Optional[str] = None) -> CheckResult:
        return CheckResult(id=self.id, ok=False, reason=reason, details=details)

    def skipped(self, reason: str, details: Optional[str] = None) -> CheckResult:
        return CheckResult(id=self.id, ok=True, reason=f"skipped: {reason}", details=details, skipped=True)

    @abstractmethod
    async def run(self, context: ExecutionContext) -> CheckResult:
        """
        Execute the check.

        Args:
            context: Shared, read-only execution context

        Returns:
            CheckResult indicating pass/fail and why
        """
        pass


class CommandCheck(BaseCheck):
    """
    A check that delegates to an external tool and fails on non-zero exit.

    Subclasses set `category` (the key into `commands` and
    `check_timeouts`) and `label`, and may override evaluate() to inspect
    output beyond the exit code.
    """

    category: ClassVar[str] = ""
    label: ClassVar[str] = ""

    def command(self, context: ExecutionContext) -> list[str]:
        return list(getattr(context.config.commands, self.category))

    def timeout_ms(self, context: ExecutionContext) -> int:
        return getattr(context.config.check_timeouts, self.category)

    def missing_command(self, context: ExecutionContext) -> CheckResult:
        return self.skipped(f"no {self.category} command configured")

    async def run(self, context: ExecutionContext) -> CheckResult:
        command = self.command(context)
        if not command:
            return self.missing_command(context)

        timeout_ms = self.timeout_ms(context)
        self.logger.info(f"Running {self.label}: {' '.join(command)}")
        result = await context.executor.run(command[0], command[1:], timeout_ms=timeout_ms)

        if not result.succeeded:
            return self.failed(self.failure_reason(result, timeout_ms, context), result.combined_output())
        return self.evaluate(result, context)

    def evaluate(self, result: ExecResult, context: ExecutionContext) -> CheckResult:
        """Judge a successful run; the default accepts any zero exit."""
        return self.passed()

    def failure_reason(self, result: ExecResult, timeout_ms: int, context: ExecutionContext) -> str:
        if result.exit_code == TIMEOUT_EXIT_CODE and result.timed_out:
            return f"{self.label} timed out after {timeout_ms}ms"
        if result.exit_code == OVERFLOW_EXIT_CODE and result.truncated:
            return f"{self.label} output exceeded {context.config.runner.max_output_bytes} bytes"
        if result.spawn_failed and not result.stdout:
            return f"{self.label} could not start: {result.stderr.strip()}"
        return f"{self.label} failed (exit {result.exit_code})"
