"""
Configuration validation.

Produces three tiers of findings:
- errors: structural problems that abort the run
- warnings: settings that work but hurt feedback speed or safety
- suggestions: optional checks or tunings worth enabling
"""

import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import ValidationError

from prove.config.schema import ProveConfig
from prove.log import get_logger

# Pydantic error types that describe a value outside its allowed bounds
RANGE_ERROR_TYPES = {
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
    "too_short",
    "too_long",
}

MAX_RECOMMENDED_CONCURRENCY = 8
MAX_RECOMMENDED_RUN_TIMEOUT_MS = 300_000
MIN_USEFUL_CACHE_TIMEOUT_MS = 30_000
MIN_RECOMMENDED_GLOBAL_COVERAGE = 30
MAX_RECOMMENDED_COMMIT_SIZE = 500
MAX_RECOMMENDED_DETECTION_TIMEOUT_MS = 10_000


@dataclass(frozen=True)
class ConfigIssue:
    """
    A single validation finding.

    Attributes:
        path: Dotted field path (e.g. "runner.concurrency")
        message: Human-readable description
        severity: For errors; "high" for range violations, "medium" otherwise
        category: For warnings; performance, security, quality or maintainability
        priority: For suggestions; high, medium or low
    """
    path: str
    message: str
    severity: Optional[Literal["high", "medium", "low"]] = None
    category: Optional[str] = None
    priority: Optional[Literal["high", "medium", "low"]] = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        data = {"path": self.path, "message": self.message}
        for key in ("severity", "category", "priority"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class ValidationReport:
    is_valid: bool
    config: Optional[ProveConfig] = None
    errors: list[ConfigIssue] = field(default_factory=list)
    warnings: list[ConfigIssue] = field(default_factory=list)
    suggestions: list[ConfigIssue] = field(default_factory=list)
    performance_metrics: dict[str, Any] = field(default_factory=dict)


@dataclass
class BestPracticesReport:
    score: int
    recommendations: list[str] = field(default_factory=list)
    violations: list[str] = field(default_factory=list)


class ConfigValidator:
    """
    Validates raw configuration dictionaries against the prove schema.
    """

    def __init__(self):
        self.logger = get_logger()

    def load(self, raw_config: dict[str, Any]) -> ValidationReport:
        """
        Validate a raw configuration.

        Args:
            raw_config: Nested dictionary as produced by load_settings()

        Returns:
            ValidationReport; config is None when is_valid is False
        """
        started = time.perf_counter()

        try:
            config = ProveConfig.model_validate(raw_config)
        except ValidationError as e:
            errors = [self._to_issue(error) for error in e.errors()]
            self.logger.debug(f"Configuration invalid: {len(errors)} error(s)")
            return ValidationReport(
                is_valid=False,
                errors=errors,
                performance_metrics={"validation_ms": self._elapsed_ms(started)},
            )

        warnings = self.collect_warnings(config)
        suggestions = self.collect_suggestions(config)
        performance_warnings = [w for w in warnings if w.category == "performance"]
        actionable_suggestions = [s for s in suggestions if s.priority in ("high", "medium")]

        return ValidationReport(
            is_valid=True,
            config=config,
            warnings=warnings,
            suggestions=suggestions,
            performance_metrics={
                "validation_ms": self._elapsed_ms(started),
                "complexity": self.complexity(config),
                "optimization_opportunities": len(performance_warnings) + len(actionable_suggestions),
            },
        )

    def _to_issue(self, error: dict[str, Any]) -> ConfigIssue:
        path = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        severity = "high" if error.get("type") in RANGE_ERROR_TYPES else "medium"
        return ConfigIssue(path=path, message=error.get("msg", "invalid value"), severity=severity)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    def collect_warnings(self, config: ProveConfig) -> list[ConfigIssue]:
        warnings = []

        if config.runner.concurrency > MAX_RECOMMENDED_CONCURRENCY:
            warnings.append(ConfigIssue(
                path="runner.concurrency",
                message=f"Concurrency {config.runner.concurrency} exceeds {MAX_RECOMMENDED_CONCURRENCY}; "
                        f"heavy checks may saturate CPU and memory",
                category="performance",
            ))

        if config.runner.timeout > MAX_RECOMMENDED_RUN_TIMEOUT_MS:
            warnings.append(ConfigIssue(
                path="runner.timeout",
                message=f"Run timeout {config.runner.timeout}ms slows feedback "
                        f"(recommended <= {MAX_RECOMMENDED_RUN_TIMEOUT_MS}ms)",
                category="performance",
            ))

        if config.feature_flags.registry_cache_timeout < MIN_USEFUL_CACHE_TIMEOUT_MS:
            warnings.append(ConfigIssue(
                path="feature_flags.registry_cache_timeout",
                message=f"Cache lifetime {config.feature_flags.registry_cache_timeout}ms is too short to be useful "
                        f"(recommended >= {MIN_USEFUL_CACHE_TIMEOUT_MS}ms)",
                category="performance",
            ))

        if not config.toggles.security:
            warnings.append(ConfigIssue(
                path="toggles.security",
                message="Security audit is disabled",
                category="security",
            ))

        if config.thresholds.global_coverage < MIN_RECOMMENDED_GLOBAL_COVERAGE:
            warnings.append(ConfigIssue(
                path="thresholds.global_coverage",
                message=f"Global coverage threshold {config.thresholds.global_coverage:g}% is low "
                        f"(recommended >= {MIN_RECOMMENDED_GLOBAL_COVERAGE}%)",
                category="quality",
            ))

        if config.thresholds.max_commit_size > MAX_RECOMMENDED_COMMIT_SIZE:
            warnings.append(ConfigIssue(
                path="thresholds.max_commit_size",
                message=f"Commit size limit {config.thresholds.max_commit_size} lines makes review harder "
                        f"(recommended <= {MAX_RECOMMENDED_COMMIT_SIZE})",
                category="maintainability",
            ))

        return warnings

    def collect_suggestions(self, config: ProveConfig) -> list[ConfigIssue]:
        suggestions = []

        if not config.toggles.contracts:
            suggestions.append(ConfigIssue(
                path="toggles.contracts",
                message="Enable API contract validation to catch breaking interface changes",
                priority="medium",
            ))

        if not config.toggles.db_migrations:
            suggestions.append(ConfigIssue(
                path="toggles.db_migrations",
                message="Enable database migration validation",
                priority="low",
            ))

        if config.feature_flags.detection_timeout > MAX_RECOMMENDED_DETECTION_TIMEOUT_MS:
            suggestions.append(ConfigIssue(
                path="feature_flags.detection_timeout",
                message=f"Reduce detection timeout to {MAX_RECOMMENDED_DETECTION_TIMEOUT_MS}ms or less",
                priority="low",
            ))

        return suggestions

    @staticmethod
    def complexity(config: ProveConfig) -> int:
        """Bounded [0, 100] heuristic used for reporting only."""
        score = (
            config.toggles.enabled_count() * 2
            + len(config.check_timeouts.model_dump())
            + len(config.feature_flags.model_dump())
            + len(config.kill_switch.model_dump())
        )
        return min(100, score)

    @staticmethod
    def best_practices(config: ProveConfig) -> BestPracticesReport:
        """
        Score a configuration against recommended practice.

        Starts at 100 and deducts for each violation or missing safeguard.
        """
        score = 100
        recommendations = []
        violations = []

        if config.thresholds.diff_coverage_functional < 80:
            violations.append("Functional diff coverage should be at least 80%")
            score -= 10

        if config.thresholds.global_coverage < 25:
            violations.append("Global coverage should be at least 25%")
            score -= 5

        if not config.toggles.security:
            recommendations.append("Enable security checks")
            score -= 5

        if config.runner.concurrency > MAX_RECOMMENDED_CONCURRENCY:
            violations.append("High concurrency may degrade performance")
            score -= 5

        if config.thresholds.max_commit_size > MAX_RECOMMENDED_COMMIT_SIZE:
            violations.append("Large commit size limit makes review harder")
            score -= 5

        return BestPracticesReport(score=max(score, 0), recommendations=recommendations, violations=violations)
