# AGPL-3.0 License

"""
Shared fixtures: scripted executors, fake git inspectors and context builders.
"""

import asyncio
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from prove.checks.check_context import ExecutionContext
from prove.config.schema import ProveConfig
from prove.mode.resolver import DeliveryMode, ModeResolution
from prove.utils.exec import ExecResult
from prove.utils.git import ChangedLine, GitSnapshot

FEATURE_COMMIT_MESSAGE = "feat: add X [T-2024-01-01-001] [MODE:F]"


class FakeExecutor:
    """
    Executor returning scripted results.

    Responses are keyed by the full command line; unknown commands exit 0.
    Every call is recorded in `calls`.
    """

    def __init__(self, responses: Optional[dict] = None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, command, args=None, timeout_ms=None, cwd=None) -> ExecResult:
        argv = [command, *(args or [])]
        self.calls.append(argv)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(" ".join(argv), ExecResult(0, "", ""))
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1

    def ran(self, prefix: str) -> bool:
        return any(" ".join(argv).startswith(prefix) for argv in self.calls)


class FakeInspector:
    """Git inspector returning canned diff data."""

    def __init__(
        self,
        added: Optional[dict[str, list[str]]] = None,
        changed_lines: Optional[list[ChangedLine]] = None,
        shortstat: tuple[int, int, int] = (0, 0, 0)
    ):
        self.added = added or {}
        self.changed = changed_lines or []
        self.shortstat = shortstat

    async def added_lines(self, base_ref, head_ref="HEAD"):
        return self.added

    async def changed_lines(self, base_ref, head_ref="HEAD"):
        return self.changed

    async def diff_shortstat(self, base_ref):
        return self.shortstat


def make_config(**sections) -> ProveConfig:
    """Build a ProveConfig from section overrides, e.g. make_config(git={"require_main_branch": False})."""
    return ProveConfig.model_validate(sections)


def make_context(
    config: Optional[ProveConfig] = None,
    mode: Optional[DeliveryMode] = DeliveryMode.FUNCTIONAL,
    branch: str = "main",
    commit_message: str = FEATURE_COMMIT_MESSAGE,
    changed_files: tuple = (),
    working_directory: Optional[Path] = None,
    is_ci: bool = False,
    quick: bool = False,
    env: Optional[dict] = None,
    executor=None,
    inspector=None,
    has_uncommitted_changes: bool = False,
    base_ref: str = "origin/main",
    mode_error: Optional[str] = None
) -> ExecutionContext:
    config = config or make_config()
    if mode is None:
        resolution = ModeResolution(mode=None, error=mode_error or "delivery mode not declared")
    else:
        resolution = ModeResolution(mode=mode, source="env")
    return ExecutionContext(
        config=config,
        git=GitSnapshot(
            current_branch=branch,
            base_ref=base_ref,
            changed_files=tuple(changed_files),
            is_main_branch=branch == config.git.trunk_branch,
            has_uncommitted_changes=has_uncommitted_changes,
            commit_hash="abc123",
            base_commit_hash="def456",
            commit_message=commit_message,
        ),
        mode_resolution=resolution,
        working_directory=Path(working_directory or tempfile.gettempdir()),
        is_ci=is_ci,
        quick=quick,
        env=env or {},
        executor=executor or FakeExecutor(),
        inspector=inspector or FakeInspector(),
    )


def git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args], cwd=repo, check=True, capture_output=True, text=True
    )
    return completed.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def temp_dir():
    """Create a temporary working directory."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def git_repo(temp_dir):
    """Create an empty git repository on branch main."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    git(temp_dir, "init", "-q")
    git(temp_dir, "symbolic-ref", "HEAD", "refs/heads/main")
    git(temp_dir, "config", "user.email", "prove@example.com")
    git(temp_dir, "config", "user.name", "Prove Tests")
    git(temp_dir, "config", "commit.gpgsign", "false")
    return temp_dir
