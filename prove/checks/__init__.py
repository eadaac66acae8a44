# AGPL-3.0 License

"""
Quality-gate checks for prove.

Each check inspects the shared execution context and reports a single
pass/fail result. The registry decides which checks apply to a run and
in which tier they execute.
"""

from prove.checks.base_check import BaseCheck, CommandCheck
from prove.checks.check_context import ExecutionContext, build_context
from prove.checks.check_result import CheckResult
from prove.checks.registry import CHECK_DESCRIPTORS, CheckDescriptor, SelectedChecks, Tier, select_checks

__all__ = [
    "BaseCheck",
    "CommandCheck",
    "ExecutionContext",
    "build_context",
    "CheckResult",
    "CHECK_DESCRIPTORS",
    "CheckDescriptor",
    "SelectedChecks",
    "Tier",
    "select_checks",
]
