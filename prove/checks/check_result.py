# AGPL-3.0 License

"""
Check result data structures.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class CheckResult:
    """
    Result of executing a single check.

    Attributes:
        id: Check identifier (e.g. "trunk", "diff-coverage")
        ok: Whether the check passed
        duration_ms: Execution time, filled in by the runner
        reason: One-line human-readable explanation
        details: Verbose diagnostics such as captured command output
        skipped: Whether the check decided not to evaluate (counts as passing)
    """
    id: str
    ok: bool
    duration_ms: int = 0
    reason: Optional[str] = None
    details: Optional[str] = None
    skipped: bool = False

    def with_duration(self, duration_ms: int) -> "CheckResult":
        return replace(self, duration_ms=duration_ms)

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "ok": self.ok, "ms": self.duration_ms}
        if self.reason:
            data["reason"] = self.reason
        if include_details and self.details:
            data["details"] = self.details
        return data

    def __str__(self) -> str:
        status = "✓ PASSED" if self.ok else "✗ FAILED"
        if self.skipped:
            status = "- SKIPPED"
        suffix = f": {self.reason}" if self.reason else ""
        return f"[{self.id}] {status}{suffix}"
