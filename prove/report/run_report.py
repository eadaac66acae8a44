# AGPL-3.0 License

"""
Aggregate result of a prove run.
"""

from dataclasses import dataclass
from typing import Any, Optional

from prove.checks.check_result import CheckResult
from prove.mode.resolver import DeliveryMode

UNRESOLVED_MODE = "unresolved"


@dataclass(frozen=True)
class RunReport:
    """
    Attributes:
        mode: Resolved delivery mode, None when unresolved
        checks: Results in deterministic order (critical tier, then parallel tier)
        total_ms: Wall-clock duration of the run
        success: True iff every reported check is ok
    """
    mode: Optional[DeliveryMode]
    checks: tuple[CheckResult, ...]
    total_ms: int
    success: bool

    @classmethod
    def from_results(cls, mode: Optional[DeliveryMode], results: list[CheckResult], total_ms: int) -> "RunReport":
        return cls(
            mode=mode,
            checks=tuple(results),
            total_ms=total_ms,
            success=all(result.ok for result in results),
        )

    @property
    def failures(self) -> list[CheckResult]:
        return [result for result in self.checks if not result.ok]

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def get(self, check_id: str) -> Optional[CheckResult]:
        for result in self.checks:
            if result.id == check_id:
                return result
        return None

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        return {
            "mode": self.mode.value if self.mode else UNRESOLVED_MODE,
            "checks": [result.to_dict(include_details) for result in self.checks],
            "totalMs": self.total_ms,
            "success": self.success,
        }
