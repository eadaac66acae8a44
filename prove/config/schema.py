"""
Typed configuration schema.

Each section is a frozen pydantic model; field constraints carry the
structural rules (ranges, positive limits, non-empty glob sets).
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENV_FORMATS = ("url", "integer", "boolean", "email", "nonempty")


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Thresholds(_Section):
    diff_coverage_functional: float = Field(default=85, ge=0, le=100)
    diff_coverage_functional_refactor: float = Field(default=60, ge=0, le=100)
    global_coverage: float = Field(default=25, ge=0, le=100)
    max_warnings: int = Field(default=0, ge=0)
    max_commit_size: int = Field(default=300, gt=0)


class Paths(_Section):
    src_globs: list[str] = Field(default_factory=lambda: ["src/**/*.py"], min_length=1)
    test_globs: list[str] = Field(default_factory=lambda: ["tests/**/*.py"], min_length=1)
    coverage_file: str = Field(default="coverage.json", min_length=1)
    report_file: str = Field(default="prove-report.json", min_length=1)
    task_file: str = Field(default="tasks/TASK.json", min_length=1)
    problem_analysis_file: str = Field(default="tasks/PROBLEM_ANALYSIS.md", min_length=1)

    @field_validator("src_globs", "test_globs")
    @classmethod
    def _no_blank_patterns(cls, patterns: list[str]) -> list[str]:
        if any(not pattern.strip() for pattern in patterns):
            raise ValueError("glob patterns must not be blank")
        return patterns


class GitSettings(_Section):
    trunk_branch: str = Field(default="main", min_length=1)
    remote_base_ref: str = Field(default="origin/main", min_length=1)
    base_ref_fallback: str = Field(default="origin/main", min_length=1)
    require_main_branch: bool = True
    enable_pre_conflict_check: bool = True


class Runner(_Section):
    concurrency: int = Field(default=4, ge=1, le=20)
    timeout: int = Field(default=300_000, gt=0)
    fail_fast: bool = True
    max_output_bytes: int = Field(default=1024 * 1024, gt=0)


class Toggles(_Section):
    coverage: bool = True
    diff_coverage: bool = True
    commit_size: bool = True
    size_budget: bool = False
    security: bool = False
    contracts: bool = False
    db_migrations: bool = False

    def enabled_count(self) -> int:
        return sum(1 for value in self.model_dump().values() if value)


class FunctionalMode(_Section):
    require_tdd: bool = True
    require_diff_coverage: bool = True
    require_tests: bool = True


class NonFunctionalMode(_Section):
    require_problem_analysis: bool = True
    min_length: int = Field(default=200, gt=0)
    required_sections: list[str] = Field(
        default_factory=lambda: ["## Analyze", "## Fix", "## Validate"], min_length=1
    )


class Modes(_Section):
    functional: FunctionalMode = Field(default_factory=FunctionalMode)
    non_functional: NonFunctionalMode = Field(default_factory=NonFunctionalMode)


class CheckTimeouts(_Section):
    typecheck: int = Field(default=60_000, gt=0)
    lint: int = Field(default=30_000, gt=0)
    tests: int = Field(default=120_000, gt=0)
    build: int = Field(default=180_000, gt=0)
    coverage: int = Field(default=60_000, gt=0)
    git: int = Field(default=10_000, gt=0)
    env: int = Field(default=60_000, gt=0)
    security: int = Field(default=120_000, gt=0)
    contracts: int = Field(default=60_000, gt=0)
    db_migrations: int = Field(default=180_000, gt=0)
    size_budget: int = Field(default=60_000, gt=0)


class Commands(_Section):
    typecheck: list[str] = Field(default_factory=lambda: ["mypy", "."])
    lint: list[str] = Field(default_factory=lambda: ["ruff", "check", "."])
    tests: list[str] = Field(default_factory=lambda: ["pytest", "-q"])
    coverage: list[str] = Field(default_factory=list)
    build: list[str] = Field(default_factory=lambda: ["python", "-m", "build"])
    size_budget: list[str] = Field(default_factory=list)
    security: list[str] = Field(default_factory=lambda: ["pip-audit"])
    contracts: list[str] = Field(default_factory=list)
    db_migrations: list[str] = Field(default_factory=list)


class FeatureFlags(_Section):
    registry_cache_timeout: int = Field(default=30_000, gt=0)
    detection_timeout: int = Field(default=10_000, gt=0)
    flags: list[str] = Field(default_factory=list)


class KillSwitch(_Section):
    pattern_detection_timeout: int = Field(default=5_000, gt=0)
    production_paths: list[str] = Field(default_factory=lambda: ["src/"])
    extra_patterns: list[str] = Field(default_factory=list)

    @field_validator("extra_patterns")
    @classmethod
    def _patterns_compile(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid regular expression {pattern!r}: {e}")
        return patterns


class RequiredVariable(_Section):
    name: str = Field(min_length=1)
    format: Optional[str] = None
    pattern: Optional[str] = None

    @model_validator(mode="after")
    def _check_validator(self) -> "RequiredVariable":
        if self.format is not None and self.format not in ENV_FORMATS:
            raise ValueError(f"unknown format {self.format!r}; expected one of {', '.join(ENV_FORMATS)}")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ValueError(f"invalid regular expression {self.pattern!r}: {e}")
        return self


class Environment(_Section):
    skip_in_ci_when_missing: bool = True
    required: list[RequiredVariable] = Field(default_factory=list)


class History(_Section):
    enabled: bool = False
    database_path: str = Field(default=".prove/history.db", min_length=1)
    regression_factor: float = Field(default=1.5, gt=1)


class ProveConfig(_Section):
    """
    Validated prove configuration.
    """
    thresholds: Thresholds = Field(default_factory=Thresholds)
    paths: Paths = Field(default_factory=Paths)
    git: GitSettings = Field(default_factory=GitSettings)
    runner: Runner = Field(default_factory=Runner)
    toggles: Toggles = Field(default_factory=Toggles)
    modes: Modes = Field(default_factory=Modes)
    check_timeouts: CheckTimeouts = Field(default_factory=CheckTimeouts)
    commands: Commands = Field(default_factory=Commands)
    feature_flags: FeatureFlags = Field(default_factory=FeatureFlags)
    kill_switch: KillSwitch = Field(default_factory=KillSwitch)
    environment: Environment = Field(default_factory=Environment)
    history: History = Field(default_factory=History)
