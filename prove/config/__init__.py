"""
Configuration schema, validation and export.
"""

from prove.config.schema import ProveConfig
from prove.config.validator import BestPracticesReport, ConfigIssue, ConfigValidator, ValidationReport

__all__ = [
    "ProveConfig",
    "ConfigValidator",
    "ConfigIssue",
    "ValidationReport",
    "BestPracticesReport",
]
