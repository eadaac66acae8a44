# AGPL-3.0 License

"""
Read-only git queries used to build the execution context.

Every query shells out through the command executor. Failed git calls
raise GitError, except commit-message retrieval which degrades to an
empty string.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional

from prove.errors import GitError
from prove.log import get_logger
from prove.utils.exec import CommandExecutor, ExecResult

DIFF_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
SHORTSTAT = re.compile(
    r"(?:(\d+) files? changed)?(?:, )?(?:(\d+) insertions?\(\+\))?(?:, )?(?:(\d+) deletions?\(-\))?"
)
CONFLICT_CODES = ("UU", "AA", "DD", "AU", "UA", "DU", "UD")


@dataclass(frozen=True)
class ChangedLine:
    """A line added by the current change."""
    file: str
    line: int
    type: str = "added"


@dataclass(frozen=True)
class GitSnapshot:
    """
    Git state captured once at the start of a run.
    """
    current_branch: str
    base_ref: str
    changed_files: tuple[str, ...] = field(default_factory=tuple)
    is_main_branch: bool = False
    has_uncommitted_changes: bool = False
    commit_hash: str = ""
    base_commit_hash: str = ""
    commit_message: str = ""


@dataclass(frozen=True)
class AddedLine:
    file: str
    line: int
    text: str


def parse_unified_diff(diff_text: str) -> list[AddedLine]:
    """
    Extract added lines from unified diff output.

    Hunk line counts are tracked so that added content which itself starts
    with '++' is never mistaken for a file header.

    Args:
        diff_text: Output of `git diff --unified=N`

    Returns:
        Added lines with their new-file line numbers, in diff order
    """
    added: list[AddedLine] = []
    current_file: Optional[str] = None
    remaining_old = 0
    remaining_new = 0
    new_line = 0

    for raw_line in diff_text.splitlines():
        if remaining_old > 0 or remaining_new > 0:
            if raw_line.startswith("\\"):
                continue
            marker, content = raw_line[:1], raw_line[1:]
            if marker == "+":
                if current_file is not None:
                    added.append(AddedLine(current_file, new_line, content))
                new_line += 1
                remaining_new -= 1
            elif marker == "-":
                remaining_old -= 1
            else:
                new_line += 1
                remaining_new -= 1
                remaining_old -= 1
            continue

        header = DIFF_HEADER.match(raw_line)
        if header:
            current_file = header.group(2)
            continue

        if raw_line.startswith("+++ "):
            target = raw_line[4:].strip()
            if target == "/dev/null":
                current_file = None
            else:
                current_file = target[2:] if target.startswith("b/") else target
            continue

        hunk = HUNK_HEADER.match(raw_line)
        if hunk:
            remaining_old = int(hunk.group(2)) if hunk.group(2) is not None else 1
            remaining_new = int(hunk.group(4)) if hunk.group(4) is not None else 1
            new_line = int(hunk.group(3))

    return added


def parse_changed_lines(diff_text: str) -> list[ChangedLine]:
    """Return one ChangedLine per added line in a unified diff."""
    return [ChangedLine(file=a.file, line=a.line) for a in parse_unified_diff(diff_text)]


def parse_shortstat(output: str) -> tuple[int, int, int]:
    """Parse `git diff --shortstat` output into (files, insertions, deletions)."""
    match = SHORTSTAT.search(output.strip())
    if not match:
        return 0, 0, 0
    files, insertions, deletions = (int(group) if group else 0 for group in match.groups())
    return files, insertions, deletions


class GitInspector:
    """
    Queries a working tree through git subprocesses.
    """

    def __init__(self, executor: CommandExecutor, cwd: Optional[str] = None, timeout_ms: int = 10_000):
        """
        Args:
            executor: Executor used for every git invocation
            cwd: Repository working directory
            timeout_ms: Timeout applied to each git call
        """
        self.executor = executor
        self.cwd = cwd
        self.timeout_ms = timeout_ms
        self.logger = get_logger()

    async def _run(self, *args: str, timeout_ms: Optional[int] = None) -> ExecResult:
        return await self.executor.run(
            "git", list(args), timeout_ms=timeout_ms or self.timeout_ms, cwd=self.cwd
        )

    async def _git(self, *args: str, timeout_ms: Optional[int] = None) -> str:
        result = await self._run(*args, timeout_ms=timeout_ms)
        if not result.succeeded:
            raise GitError(list(args), result.exit_code, result.stderr)
        return result.stdout

    async def current_branch(self) -> str:
        return (await self._git("rev-parse", "--abbrev-ref", "HEAD")).strip()

    async def ref_exists(self, ref: str) -> bool:
        result = await self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        return result.succeeded

    async def resolve_base_ref(self, fallback: str, remote_ref: str = "origin/main") -> str:
        """
        Resolve the reference the change is compared against.

        Tries the remote tracking ref, then the configured fallback, then
        the parent commit.

        Raises:
            GitError: If none of the candidates resolve
        """
        candidates = []
        for candidate in (remote_ref, fallback, "HEAD~1"):
            if candidate and candidate not in candidates:
                candidates.append(candidate)

        for candidate in candidates:
            if await self.ref_exists(candidate):
                self.logger.debug(f"Resolved base ref: {candidate}")
                return candidate

        raise GitError(
            ["rev-parse", "--verify", *candidates],
            1,
            f"None of the base ref candidates resolve: {', '.join(candidates)}",
        )

    async def changed_files(self, base_ref: str) -> list[str]:
        output = await self._git("diff", "--name-only", base_ref, "HEAD")
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def diff(self, base_ref: str, head_ref: str = "HEAD") -> str:
        return await self._git("diff", "--unified=0", "--no-color", base_ref, head_ref)

    async def changed_lines(self, base_ref: str, head_ref: str = "HEAD") -> list[ChangedLine]:
        return parse_changed_lines(await self.diff(base_ref, head_ref))

    async def added_lines(self, base_ref: str, head_ref: str = "HEAD") -> dict[str, list[str]]:
        """Return added line contents grouped by file."""
        grouped: dict[str, list[str]] = {}
        for added in parse_unified_diff(await self.diff(base_ref, head_ref)):
            grouped.setdefault(added.file, []).append(added.text)
        return grouped

    async def status_porcelain(self, untracked: bool = True) -> str:
        args = ["status", "--porcelain"]
        if not untracked:
            args.append("--untracked-files=no")
        return await self._git(*args)

    async def has_uncommitted_changes(self) -> bool:
        """Tracked modifications only; untracked files never block a trial merge."""
        return bool((await self.status_porcelain(untracked=False)).strip())

    async def current_commit_hash(self) -> str:
        return (await self._git("rev-parse", "HEAD")).strip()

    async def base_commit_hash(self, base_ref: str) -> str:
        return (await self._git("rev-parse", base_ref)).strip()

    async def commit_message(self) -> str:
        result = await self._run("log", "-1", "--pretty=%B")
        if not result.succeeded:
            self.logger.warning(f"Could not read commit message: {result.stderr.strip()}")
            return ""
        return result.stdout.strip()

    async def diff_shortstat(self, base_ref: str) -> tuple[int, int, int]:
        return parse_shortstat(await self._git("diff", "--shortstat", f"{base_ref}...HEAD"))

    async def fetch(self) -> ExecResult:
        """Best-effort `git fetch --prune`; the result is returned, not raised."""
        return await self._run("fetch", "--prune")

    async def trial_merge(self, ref: str) -> ExecResult:
        return await self._run("merge", "--no-commit", "--no-ff", ref)

    async def conflicted_files(self) -> list[str]:
        conflicts = []
        for line in (await self.status_porcelain()).splitlines():
            if line[:2] in CONFLICT_CODES:
                conflicts.append(line[3:].strip())
        return conflicts

    async def merge_in_progress(self) -> bool:
        result = await self._run("rev-parse", "-q", "--verify", "MERGE_HEAD")
        return result.succeeded

    async def abort_merge(self) -> None:
        if await self.merge_in_progress():
            await self._git("merge", "--abort")

    async def snapshot(
        self,
        base_ref_fallback: str,
        trunk_branch: str = "main",
        remote_base_ref: str = "origin/main"
    ) -> GitSnapshot:
        """
        Capture everything the checks need from git in one pass.

        Args:
            base_ref_fallback: Fallback base reference
            trunk_branch: Name of the trunk branch
            remote_base_ref: Preferred remote tracking reference

        Returns:
            Immutable GitSnapshot
        """
        current_branch = await self.current_branch()
        base_ref = await self.resolve_base_ref(base_ref_fallback, remote_base_ref)

        changed_files, has_uncommitted, commit_hash, base_commit_hash, commit_message = await asyncio.gather(
            self.changed_files(base_ref),
            self.has_uncommitted_changes(),
            self.current_commit_hash(),
            self.base_commit_hash(base_ref),
            self.commit_message(),
        )

        return GitSnapshot(
            current_branch=current_branch,
            base_ref=base_ref,
            changed_files=tuple(changed_files),
            is_main_branch=current_branch == trunk_branch,
            has_uncommitted_changes=has_uncommitted,
            commit_hash=commit_hash,
            base_commit_hash=base_commit_hash,
            commit_message=commit_message,
        )
