# AGPL-3.0 License

"""
Environment validation check.
"""

import re
from typing import Callable, Optional

from prove.checks.base_check import BaseCheck
from prove.checks.check_context import ExecutionContext
from prove.checks.check_result import CheckResult
from prove.config.schema import RequiredVariable

FORMAT_VALIDATORS: dict[str, Callable[[str], bool]] = {
    "url": lambda value: re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^\s/]+", value) is not None,
    "integer": lambda value: re.fullmatch(r"[+-]?\d+", value.strip()) is not None,
    "boolean": lambda value: value.strip().lower() in ("true", "false", "1", "0", "yes", "no", "on", "off"),
    "email": lambda value: re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", value.strip()) is not None,
    "nonempty": lambda value: bool(value.strip()),
}


def validate_variable(variable: RequiredVariable, value: Optional[str]) -> Optional[str]:
    """Return a problem description, or None when the value is acceptable."""
    if value is None:
        return f"{variable.name} is not set"
    if variable.format and not FORMAT_VALIDATORS[variable.format](value):
        return f"{variable.name} is not a valid {variable.format}"
    if variable.pattern and re.fullmatch(variable.pattern, value) is None:
        return f"{variable.name} does not match {variable.pattern}"
    return None


class EnvironmentCheck(BaseCheck):
    """
    Required environment variables must be present and well-formed.

    In CI, when none of the required variables are present and
    `skip_in_ci_when_missing` is set, the check is skipped: secrets are
    deliberately unavailable there.
    """

    id = "env"
    description = "Environment validation"

    async def run(self, context: ExecutionContext) -> CheckResult:
        settings = context.config.environment
        required = settings.required
        if not required:
            return self.passed("no required environment variables configured")

        if (
            context.is_ci
            and settings.skip_in_ci_when_missing
            and not any(variable.name in context.env for variable in required)
        ):
            return self.skipped("secrets not configured in CI")

        problems = []
        for variable in required:
            problem = validate_variable(variable, context.env.get(variable.name))
            if problem:
                problems.append(problem)

        if problems:
            return self.failed(
                f"{len(problems)} environment variable problem(s): {problems[0]}",
                "\n".join(problems),
            )
        return self.passed(f"{len(required)} environment variable(s) valid")
