# AGPL-3.0 License

"""
The closed, ordered list of checks and the rules selecting them for a run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from prove.checks.base_check import BaseCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.command_checks import (
    BuildCheck,
    ContractsCheck,
    LintCheck,
    MigrationsCheck,
    RunTestsCheck,
    SecurityCheck,
    SizeBudgetCheck,
    TypecheckCheck,
)
from prove.checks.coverage_checks import CoverageArtifact, DiffCoverageCheck, GlobalCoverageCheck
from prove.checks.env_check import EnvironmentCheck
from prove.checks.git_checks import (
    CommitMessageCheck,
    CommitSizeCheck,
    KillSwitchCheck,
    PreConflictCheck,
    TrunkCheck,
)
from prove.checks.mode_checks import DeliveryModeCheck, TddEvidenceCheck
from prove.config.schema import ProveConfig


class Tier(str, Enum):
    CRITICAL = "critical"
    PARALLEL = "parallel"


def _always(context: ExecutionContext) -> bool:
    return True


@dataclass(frozen=True)
class CheckDescriptor:
    """
    Static description of a check.

    Attributes:
        id: Check identifier, matching the check's result id
        tier: Critical (serial, fail-fast) or parallel (bounded, run to completion)
        factory: Builds the check from the configuration and the shared coverage artifact
        run_if: Whether the check applies to this run (mode, toggles)
        full_only: Excluded from quick runs
    """
    id: str
    tier: Tier
    factory: Callable[[ProveConfig, CoverageArtifact], BaseCheck]
    run_if: Callable[[ExecutionContext], bool] = _always
    full_only: bool = False


@dataclass
class SelectedChecks:
    critical: list[BaseCheck] = field(default_factory=list)
    parallel: list[BaseCheck] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [check.id for check in (*self.critical, *self.parallel)]


CHECK_DESCRIPTORS: tuple[CheckDescriptor, ...] = (
    # Critical tier, in execution order
    CheckDescriptor("trunk", Tier.CRITICAL, lambda config, artifact: TrunkCheck()),
    CheckDescriptor("delivery-mode", Tier.CRITICAL, lambda config, artifact: DeliveryModeCheck()),
    CheckDescriptor("commit-msg", Tier.CRITICAL, lambda config, artifact: CommitMessageCheck()),
    CheckDescriptor("killswitch", Tier.CRITICAL, lambda config, artifact: KillSwitchCheck(config)),
    CheckDescriptor(
        "pre-conflict", Tier.CRITICAL, lambda config, artifact: PreConflictCheck(),
        run_if=lambda context: context.config.git.enable_pre_conflict_check,
        full_only=True,
    ),

    # Parallel tier, in report order
    CheckDescriptor("env", Tier.PARALLEL, lambda config, artifact: EnvironmentCheck()),
    CheckDescriptor("typecheck", Tier.PARALLEL, lambda config, artifact: TypecheckCheck()),
    CheckDescriptor("lint", Tier.PARALLEL, lambda config, artifact: LintCheck()),
    CheckDescriptor("tests", Tier.PARALLEL, lambda config, artifact: RunTestsCheck()),
    CheckDescriptor(
        "tdd", Tier.PARALLEL, lambda config, artifact: TddEvidenceCheck(config),
        run_if=lambda context: context.is_functional and context.config.modes.functional.require_tdd,
    ),
    CheckDescriptor(
        "diff-coverage", Tier.PARALLEL, lambda config, artifact: DiffCoverageCheck(config, artifact),
        run_if=lambda context: (
            context.is_functional
            and context.config.modes.functional.require_diff_coverage
            and context.config.toggles.diff_coverage
        ),
    ),
    CheckDescriptor(
        "coverage", Tier.PARALLEL, lambda config, artifact: GlobalCoverageCheck(artifact),
        run_if=lambda context: context.config.toggles.coverage,
        full_only=True,
    ),
    CheckDescriptor(
        "commit-size", Tier.PARALLEL, lambda config, artifact: CommitSizeCheck(),
        run_if=lambda context: context.config.toggles.commit_size,
        full_only=True,
    ),
    CheckDescriptor("build", Tier.PARALLEL, lambda config, artifact: BuildCheck(), full_only=True),
    CheckDescriptor(
        "size-budget", Tier.PARALLEL, lambda config, artifact: SizeBudgetCheck(),
        run_if=lambda context: context.config.toggles.size_budget,
        full_only=True,
    ),
    CheckDescriptor(
        "security", Tier.PARALLEL, lambda config, artifact: SecurityCheck(),
        run_if=lambda context: context.config.toggles.security,
        full_only=True,
    ),
    CheckDescriptor(
        "contracts", Tier.PARALLEL, lambda config, artifact: ContractsCheck(),
        run_if=lambda context: context.config.toggles.contracts,
        full_only=True,
    ),
    CheckDescriptor(
        "db-migrations", Tier.PARALLEL, lambda config, artifact: MigrationsCheck(),
        run_if=lambda context: context.config.toggles.db_migrations,
        full_only=True,
    ),
)


def select_checks(
    context: ExecutionContext,
    descriptors: tuple[CheckDescriptor, ...] = CHECK_DESCRIPTORS
) -> SelectedChecks:
    """
    Instantiate the checks that apply to this run.

    Checks excluded by quick mode, toggles or the resolved mode are left
    out entirely; they do not appear in the report.

    Args:
        context: The run's execution context
        descriptors: Descriptor list (defaults to the built-in registry)

    Returns:
        SelectedChecks with both tiers in declared order
    """
    artifact = CoverageArtifact()
    selected = SelectedChecks()

    for descriptor in descriptors:
        if descriptor.full_only and context.quick:
            continue
        if not descriptor.run_if(context):
            continue

        check = descriptor.factory(context.config, artifact)
        if descriptor.tier == Tier.CRITICAL:
            selected.critical.append(check)
        else:
            selected.parallel.append(check)

    return selected
