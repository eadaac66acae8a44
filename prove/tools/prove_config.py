# AGPL-3.0 License

"""
Prove config tool - validates, exports and documents the effective configuration.
"""

import os
import sys
from pathlib import Path
from typing import Mapping, Optional, TextIO

from prove.config.export import ExportFormat, export_config, generate_documentation
from prove.config.validator import ConfigValidator, ValidationReport
from prove.config_loader import load_config
from prove.errors import ConfigurationError
from prove.log import get_logger


class ProveConfigTool:
    """
    Supports commands:
    - validate: Report errors, warnings, suggestions and a best-practices score
    - export: Print the effective configuration as json, yaml or env
    - docs: Print a markdown description of the effective configuration
    """

    def __init__(
        self,
        working_directory: Optional[str] = None,
        settings_file: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None
    ):
        self.working_directory = Path(working_directory or os.getcwd()).resolve()
        self.settings_file = settings_file
        self.env = dict(os.environ if env is None else env)
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.logger = get_logger()

    def _load(self) -> Optional[ValidationReport]:
        try:
            return load_config(self.working_directory, self.settings_file, self.env)
        except ConfigurationError as e:
            self.logger.error(str(e))
            print(f"❌ {e}", file=self.stderr)
            for issue in e.issues:
                print(f"  {issue}", file=self.stderr)
            return None

    def validate(self) -> int:
        """Print the validation report; exit status 1 only for errors."""
        report = self._load()
        if report is None:
            return 1

        config = report.config
        practices = ConfigValidator.best_practices(config)

        lines = ["✅ Configuration is valid"]
        if report.warnings:
            lines.append("")
            lines.append("Warnings:")
            lines.extend(f"  [{w.category}] {w}" for w in report.warnings)
        if report.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"  [{s.priority}] {s}" for s in report.suggestions)

        metrics = report.performance_metrics
        lines.append("")
        lines.append(f"Complexity: {metrics['complexity']}/100")
        lines.append(f"Optimization opportunities: {metrics['optimization_opportunities']}")
        lines.append(f"Best-practices score: {practices.score}/100")
        lines.extend(f"  - {violation}" for violation in practices.violations)
        lines.extend(f"  - {recommendation}" for recommendation in practices.recommendations)

        print("\n".join(lines), file=self.stdout)
        return 0

    def export(self, fmt: ExportFormat) -> int:
        report = self._load()
        if report is None:
            return 1
        print(export_config(report.config, fmt), file=self.stdout, end="")
        return 0

    def docs(self) -> int:
        report = self._load()
        if report is None:
            return 1
        print(generate_documentation(report.config), file=self.stdout)
        return 0
