# AGPL-3.0 License

"""
Exception types raised across prove.

Expected check failures never raise; they become failed CheckResults.
These exceptions cover configuration problems, infrastructure errors and
other conditions a caller must handle explicitly.
"""

from typing import Optional


class ProveError(Exception):
    """Base class for all prove errors."""


class ConfigurationError(ProveError):
    """
    Raised when the configuration fails validation.

    Attributes:
        issues: Validation issues, each carrying a field path and message
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class GitError(ProveError):
    """
    Raised when a git subprocess exits unsuccessfully.

    Attributes:
        command: The git arguments that were executed
        exit_code: Process exit code
        stderr: Captured standard error
    """

    def __init__(self, command: list[str], exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(command)} failed (exit {exit_code}): {self.stderr}")


class CoverageError(ProveError):
    """Raised when a coverage artifact is missing or cannot be parsed."""


class ModeResolutionError(ProveError):
    """Raised when a delivery-mode declaration file is malformed."""
