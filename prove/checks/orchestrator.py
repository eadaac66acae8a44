# AGPL-3.0 License

"""
Two-tier check execution.
"""

import asyncio
import time

from prove.checks.base_check import BaseCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.checks.registry import select_checks
from prove.log import get_logger
from prove.report.run_report import RunReport


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class ProveRunner:
    """
    Runs the critical tier sequentially, then the parallel tier.

    The critical tier stops at the first failure when fail_fast is set, and
    the parallel tier is then never started. The parallel tier runs with
    bounded concurrency and always runs to completion. Results keep
    declaration order regardless of completion order.
    """

    def __init__(
        self,
        critical: list[BaseCheck],
        parallel: list[BaseCheck],
        concurrency: int = 4,
        fail_fast: bool = True
    ):
        """
        Args:
            critical: Critical-tier checks, in execution order
            parallel: Parallel-tier checks, in report order
            concurrency: Maximum number of parallel checks in flight
            fail_fast: Stop at the first critical failure
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.critical = list(critical)
        self.parallel = list(parallel)
        self.concurrency = concurrency
        self.fail_fast = fail_fast
        self.logger = get_logger()

    @classmethod
    def for_context(cls, context: ExecutionContext) -> "ProveRunner":
        selected = select_checks(context)
        return cls(
            critical=selected.critical,
            parallel=selected.parallel,
            concurrency=context.config.runner.concurrency,
            fail_fast=context.config.runner.fail_fast,
        )

    async def run(self, context: ExecutionContext) -> RunReport:
        """
        Execute both tiers and aggregate the results.

        Args:
            context: Shared, read-only execution context

        Returns:
            RunReport with one result per executed check
        """
        started = time.monotonic()

        results = await self._run_critical(context)
        critical_failed = any(not result.ok for result in results)

        if critical_failed and self.fail_fast:
            self.logger.warning("Critical check failed; skipping parallel checks")
        else:
            results.extend(await self._run_parallel(context))

        report = RunReport.from_results(context.mode, results, elapsed_ms(started))
        self.logger.bind(
            checks=len(report.checks),
            failures=len(report.failures),
            total_ms=report.total_ms,
        ).info("Run finished")
        return report

    async def _run_critical(self, context: ExecutionContext) -> list[CheckResult]:
        self.logger.info(f"Running {len(self.critical)} critical checks sequentially")

        results = []
        for check in self.critical:
            result = await self._run_single_check(check, context)
            results.append(result)
            if not result.ok and self.fail_fast:
                break
        return results

    async def _run_parallel(self, context: ExecutionContext) -> list[CheckResult]:
        self.logger.info(
            f"Running {len(self.parallel)} checks in parallel (concurrency {self.concurrency})"
        )
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(check: BaseCheck) -> CheckResult:
            async with semaphore:
                return await self._run_single_check(check, context)

        return list(await asyncio.gather(*(bounded(check) for check in self.parallel)))

    async def _run_single_check(self, check: BaseCheck, context: ExecutionContext) -> CheckResult:
        """
        Execute one check, timing it and turning any exception into a failure.

        Args:
            check: Check to execute
            context: Execution context

        Returns:
            Check result with duration filled in
        """
        self.logger.info(f"Running check: {check.id}")
        started = time.monotonic()

        try:
            result = await check.run(context)
        except Exception as e:
            self.logger.exception(f"Check {check.id} raised an exception")
            result = CheckResult(id=check.id, ok=False, reason=f"internal error: {e}")

        result = result.with_duration(elapsed_ms(started))
        self.logger.info(f"Check {check.id} completed: {result}")
        return result
