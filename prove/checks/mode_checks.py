# AGPL-3.0 License

"""
Checks tied to the delivery mode.

Functional changes must carry test evidence; non-functional changes must
carry a written problem analysis. Each check only runs for its own mode.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from prove.checks.base_check import BaseCheck, compile_globs
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.config.schema import ProveConfig
from prove.mode.resolver import DeliveryMode

PLACEHOLDER_MARKER = "[REPLACE:"


@dataclass
class AnalysisValidation:
    ok: bool
    reason: Optional[str] = None
    missing_sections: list[str] = field(default_factory=list)
    length: int = 0


def validate_problem_analysis(
    path: Path,
    required_sections: list[str],
    min_length: int
) -> AnalysisValidation:
    """
    Validate the problem-analysis document of a non-functional change.

    Args:
        path: Location of the analysis document
        required_sections: Headings that must all appear
        min_length: Minimum length of the trimmed document

    Returns:
        AnalysisValidation with the first failing rule as reason
    """
    if not path.is_file():
        return AnalysisValidation(ok=False, reason=f"missing {path.name}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        return AnalysisValidation(ok=False, reason=f"could not read {path.name}: {e}")

    trimmed = content.strip()
    if PLACEHOLDER_MARKER in content:
        return AnalysisValidation(ok=False, reason=f"{path.name} still contains template placeholders", length=len(trimmed))

    missing = [section for section in required_sections if section not in content]
    if missing:
        return AnalysisValidation(
            ok=False,
            reason=f"missing required sections: {', '.join(missing)}",
            missing_sections=missing,
            length=len(trimmed),
        )

    if len(trimmed) < min_length:
        return AnalysisValidation(
            ok=False,
            reason=f"insufficient content length: {len(trimmed)} chars (minimum {min_length})",
            length=len(trimmed),
        )

    return AnalysisValidation(ok=True, length=len(trimmed))


class DeliveryModeCheck(BaseCheck):
    """
    Fails when the mode is unresolved, or when a non-functional change
    lacks an adequate problem analysis.
    """

    id = "delivery-mode"
    description = "Delivery mode declared and evidenced"

    async def run(self, context: ExecutionContext) -> CheckResult:
        resolution = context.mode_resolution
        if not resolution.resolved:
            return self.failed(resolution.error or "delivery mode could not be resolved")

        if resolution.mode == DeliveryMode.FUNCTIONAL:
            return self.passed(f"functional (from {resolution.source})")

        settings = context.config.modes.non_functional
        if not settings.require_problem_analysis:
            return self.passed(f"non-functional (from {resolution.source})")

        path = context.working_directory / context.config.paths.problem_analysis_file
        validation = await asyncio.to_thread(
            validate_problem_analysis, path, list(settings.required_sections), settings.min_length
        )
        if not validation.ok:
            return self.failed(
                validation.reason,
                f"Non-functional changes require {context.config.paths.problem_analysis_file} with sections: "
                f"{', '.join(settings.required_sections)}",
            )
        return self.passed(f"non-functional with problem analysis ({validation.length} chars)")


def matching_tests(source_file: str, test_files: list[str]) -> list[str]:
    """Test files whose name contains the source file's stem (foo.py -> test_foo.py, foo_test.py)."""
    stem = PurePosixPath(source_file).stem
    return [f for f in test_files if stem in PurePosixPath(f).stem]


class TddEvidenceCheck(BaseCheck):
    """
    Changed source files must be accompanied by changed test files.
    """

    id = "tdd"
    description = "Changed sources come with changed tests"

    def __init__(self, config: ProveConfig):
        super().__init__(paths=config.paths.src_globs, exclude_paths=config.paths.test_globs)
        self._test_spec = compile_globs(config.paths.test_globs)

    async def run(self, context: ExecutionContext) -> CheckResult:
        changed = list(context.git.changed_files)
        source_files = self.filter_files(changed)
        test_files = [f for f in changed if self._test_spec.match_file(f)]

        if not source_files:
            return self.passed("no source files changed")

        if not test_files:
            return self.failed(
                f"{len(source_files)} source file(s) changed without test changes",
                "Changed source files:\n" + "\n".join(source_files),
            )
        unmatched = [f for f in source_files if not matching_tests(f, test_files)]
        details = None
        if unmatched:
            details = "Source files without a test of the same name:\n" + "\n".join(unmatched)
        return self.passed(f"{len(source_files)} source file(s), {len(test_files)} test file(s) changed", details)
