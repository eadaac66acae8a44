# AGPL-3.0 License

"""
Git discipline checks: trunk branch, commit convention, kill switches,
pre-merge conflicts and commit size.
"""

import asyncio
import re
from typing import Iterable

from prove.checks.base_check import BaseCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.config.schema import ProveConfig
from prove.errors import GitError

COMMIT_CONVENTION = re.compile(
    r"^(feat|fix|chore|refactor|revert|docs|test|perf):\s+(.+?)\s+"
    r"\[T-(\d{4}-\d{2}-\d{2}-\d+)\]\s+\[MODE:(F|NF)\]$"
)
COMMIT_CONVENTION_HINT = "<type>: <summary> [T-YYYY-MM-DD-NNN] [MODE:F|NF]"
FEATURE_COMMIT = re.compile(r"^feat(\(.+?\))?:")

DEFAULT_KILL_SWITCH_PATTERNS = [
    r"""\bis_?[Ee]nabled\(\s*['"][\w.:-]+['"]""",
    r"\bKILL_SWITCH_[A-Z0-9_]+\b",
    r"\b[A-Z][A-Z0-9_]*_ENABLED\b",
    r"\buse_?[Ff]eature_?[Ff]lag\b",
    r"\bis_?[Ff]eature_?[Ee]nabled\b",
    r"\bconfig\.[\w.]+\.enabled\b",
    r"\brollout_?[Pp]ercentage\b",
    r"\b(?:from|import)\s+[\w.]*flags\b",
]


def first_line(message: str) -> str:
    return message.strip().splitlines()[0].strip() if message.strip() else ""


class TrunkCheck(BaseCheck):
    id = "trunk"
    description = "Changes must be verified on the trunk branch"

    async def run(self, context: ExecutionContext) -> CheckResult:
        git_settings = context.config.git
        if not git_settings.require_main_branch:
            return self.skipped("trunk branch not required")

        if context.git.current_branch != git_settings.trunk_branch:
            return self.failed(
                f"not on {git_settings.trunk_branch} (current branch: {context.git.current_branch})",
                f"Switch to {git_settings.trunk_branch} before running prove",
            )
        return self.passed(f"on {git_settings.trunk_branch}")


class CommitMessageCheck(BaseCheck):
    """
    The latest commit must follow the structured convention:
    type prefix, summary, task identifier and mode tag.
    """

    id = "commit-msg"
    description = "Commit message convention"

    async def run(self, context: ExecutionContext) -> CheckResult:
        subject = first_line(context.git.commit_message)
        if not subject:
            return self.failed("commit message is empty or unreadable")

        if not COMMIT_CONVENTION.match(subject):
            return self.failed(
                f"commit message does not match {COMMIT_CONVENTION_HINT}",
                f"Got: {subject}",
            )
        return self.passed()


class KillSwitchCheck(BaseCheck):
    """
    Feature commits touching production code must reference a kill switch.

    Only added lines are scanned, so an existing flag elsewhere in a file
    does not satisfy the requirement.
    """

    id = "killswitch"
    description = "Feature commits must ship behind a kill switch"

    def __init__(self, config: ProveConfig):
        super().__init__(exclude_paths=config.paths.test_globs)
        self.production_paths = list(config.kill_switch.production_paths)
        self.timeout_ms = config.kill_switch.pattern_detection_timeout
        self.patterns = [
            re.compile(pattern)
            for pattern in [*DEFAULT_KILL_SWITCH_PATTERNS, *config.kill_switch.extra_patterns]
        ]
        self.patterns.extend(re.compile(rf"\b{re.escape(flag)}\b") for flag in config.feature_flags.flags)

    def is_production_file(self, file_path: str) -> bool:
        if not self.should_check_file(file_path):
            return False
        return any(file_path.startswith(prefix) for prefix in self.production_paths)

    def find_references(self, added: dict[str, list[str]], files: Iterable[str]) -> list[str]:
        references = []
        for file_path in files:
            for line in added.get(file_path, []):
                if any(pattern.search(line) for pattern in self.patterns):
                    references.append(f"{file_path}: {line.strip()}")
        return references

    async def run(self, context: ExecutionContext) -> CheckResult:
        if not FEATURE_COMMIT.match(first_line(context.git.commit_message)):
            return self.skipped("not a feature commit")

        production_files = [f for f in context.git.changed_files if self.is_production_file(f)]
        if not production_files:
            return self.skipped("feature commit does not touch production code")

        try:
            added = await context.inspector.added_lines(context.git.base_ref)
        except GitError as e:
            return self.failed(f"could not read diff against {context.git.base_ref}", str(e))

        try:
            references = await asyncio.wait_for(
                asyncio.to_thread(self.find_references, added, production_files),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return self.failed(f"kill-switch detection timed out after {self.timeout_ms}ms")

        if not references:
            return self.failed(
                "feature commit touches production code without a kill switch",
                "Production files changed:\n" + "\n".join(production_files),
            )
        return self.passed(f"kill switch referenced ({len(references)} match(es))", "\n".join(references))


class PreConflictCheck(BaseCheck):
    """
    Trial-merges the base ref to detect conflicts before they reach review.

    The trial merge is always aborted, leaving the working tree as it was.
    """

    id = "pre-conflict"
    description = "Pre-merge conflict detection"

    async def run(self, context: ExecutionContext) -> CheckResult:
        if context.git.has_uncommitted_changes:
            return self.skipped("working tree has uncommitted changes")

        inspector = context.inspector
        target = context.git.base_ref

        fetch = await inspector.fetch()
        if not fetch.succeeded:
            self.logger.warning(f"git fetch failed, merging against local {target}: {fetch.stderr.strip()}")

        try:
            merge = await inspector.trial_merge(target)
            if merge.succeeded:
                return self.passed(f"no conflicts with {target}")

            conflicts = await inspector.conflicted_files()
            if conflicts:
                return self.failed(
                    f"merge conflicts with {target} in {len(conflicts)} file(s)",
                    "\n".join(conflicts),
                )
            return self.failed(f"trial merge with {target} failed (exit {merge.exit_code})", merge.combined_output())
        finally:
            await inspector.abort_merge()


class CommitSizeCheck(BaseCheck):
    id = "commit-size"
    description = "Limit lines changed per change"

    async def run(self, context: ExecutionContext) -> CheckResult:
        try:
            files, insertions, deletions = await context.inspector.diff_shortstat(context.git.base_ref)
        except GitError as e:
            return self.failed(f"could not measure change size against {context.git.base_ref}", str(e))

        total = insertions + deletions
        limit = context.config.thresholds.max_commit_size
        summary = f"{files} file(s), +{insertions} -{deletions}"
        if total > limit:
            return self.failed(f"commit size {total} lines > max {limit}", summary)
        return self.passed(f"{total} lines changed", summary)
