# AGPL-3.0 License

"""
Execution context shared by every check in a run.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from prove.config.schema import ProveConfig
from prove.log import get_logger
from prove.mode.resolver import DeliveryMode, ModeResolution, resolve_mode
from prove.utils.exec import CommandExecutor
from prove.utils.git import GitInspector, GitSnapshot

CI_ENV_VARS = ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "JENKINS_URL", "BUILDKITE", "CIRCLECI")
FALSE_VALUES = ("", "0", "false", "no", "off")


def detect_ci(env: Mapping[str, str]) -> bool:
    """A CI variable counts unless it is set to a false value."""
    return any(
        name in env and env[name].strip().lower() not in FALSE_VALUES
        for name in CI_ENV_VARS
    )


@dataclass(frozen=True)
class ExecutionContext:
    """
    Everything a check may read, built once before any check runs.

    Checks must treat the context as read-only; it is shared by reference
    across concurrently running checks.
    """

    config: ProveConfig
    git: GitSnapshot
    mode_resolution: ModeResolution
    working_directory: Path
    is_ci: bool = False
    quick: bool = False
    env: Mapping[str, str] = field(default_factory=dict)

    # Services used by checks that shell out
    executor: Optional[CommandExecutor] = None
    inspector: Optional[GitInspector] = None

    @property
    def mode(self) -> Optional[DeliveryMode]:
        return self.mode_resolution.mode

    @property
    def is_functional(self) -> bool:
        return self.mode == DeliveryMode.FUNCTIONAL

    @property
    def is_non_functional(self) -> bool:
        return self.mode == DeliveryMode.NON_FUNCTIONAL


async def build_context(
    config: ProveConfig,
    working_directory: Path,
    env: Mapping[str, str],
    quick: bool = False,
    executor: Optional[CommandExecutor] = None
) -> ExecutionContext:
    """
    Gather git state and resolve the delivery mode.

    Args:
        config: Validated configuration
        working_directory: Repository root
        env: Environment snapshot
        quick: Whether this is a quick run
        executor: Executor override (defaults to one rooted at working_directory)

    Returns:
        Immutable ExecutionContext

    Raises:
        GitError: If git state cannot be read (not a repository, no base ref)
    """
    logger = get_logger()
    working_directory = Path(working_directory).resolve()
    env = MappingProxyType(dict(env))

    if executor is None:
        executor = CommandExecutor(
            cwd=str(working_directory),
            default_timeout_ms=config.runner.timeout,
            max_output_bytes=config.runner.max_output_bytes,
        )
    inspector = GitInspector(executor, cwd=str(working_directory), timeout_ms=config.check_timeouts.git)

    logger.info("Gathering git information")
    git = await inspector.snapshot(
        base_ref_fallback=config.git.base_ref_fallback,
        trunk_branch=config.git.trunk_branch,
        remote_base_ref=config.git.remote_base_ref,
    )

    logger.info("Resolving delivery mode")
    mode_resolution = resolve_mode(working_directory, env, config.paths.task_file)

    context = ExecutionContext(
        config=config,
        git=git,
        mode_resolution=mode_resolution,
        working_directory=working_directory,
        is_ci=detect_ci(env),
        quick=quick,
        env=env,
        executor=executor,
        inspector=inspector,
    )

    logger.bind(
        mode=context.mode.value if context.mode else None,
        branch=git.current_branch,
        base_ref=git.base_ref,
        changed_files=len(git.changed_files),
        is_ci=context.is_ci,
    ).info("Context built")
    return context
