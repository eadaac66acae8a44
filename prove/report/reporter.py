# AGPL-3.0 License

"""
Console rendering and the JSON report artifact.
"""

import json
from pathlib import Path
from typing import Optional, Sequence

from jinja2 import Environment

from prove.history.collector import Regression
from prove.log import get_logger
from prove.report.run_report import UNRESOLVED_MODE, RunReport

MAX_DETAILS_CHARS = 2000

CONSOLE_TEMPLATE = """\
{% for result in report.checks -%}
{{ "  " }}{{ result | status_icon }} {{ result.id.ljust(width) }} {{ "%6d" | format(result.duration_ms) }}ms{% if result.reason %}  {{ result.reason }}{% endif %}
{% endfor %}
{%- if report.success %}
✅ All {{ report.checks | length }} checks passed ({{ mode }}) in {{ report.total_ms }}ms
{%- else %}
❌ {{ failures | length }} of {{ report.checks | length }} checks failed ({{ mode }}) in {{ report.total_ms }}ms
{% for result in failures %}
[{{ result.id }}] {{ result.reason or "failed" }}
{%- if result.details %}
{{ result.details | clip(verbose) | indent(4, first=True) }}
{%- endif %}
{% endfor %}
{%- endif %}
{%- if regressions %}

Performance regressions:
{% for regression in regressions -%}
  - {{ regression }}
{% endfor %}
{%- endif %}
"""


def status_icon(result) -> str:
    if result.skipped:
        return "-"
    return "✓" if result.ok else "✗"


def truncate_details(details: str, verbose: bool = False, limit: int = MAX_DETAILS_CHARS) -> str:
    """Cut diagnostics to `limit` characters unless running verbose."""
    details = details.rstrip()
    if verbose or len(details) <= limit:
        return details
    return details[:limit] + f"\n... ({len(details) - limit} more characters, use --verbose)"


_environment = Environment(keep_trailing_newline=True, autoescape=False)
_environment.filters["status_icon"] = status_icon
_environment.filters["clip"] = truncate_details
_console_template = _environment.from_string(CONSOLE_TEMPLATE)


def render_console(
    report: RunReport,
    verbose: bool = False,
    regressions: Optional[Sequence[Regression]] = None
) -> str:
    """
    Render the human-readable run summary.

    Args:
        report: Finished run
        verbose: Include full diagnostics instead of truncating them
        regressions: Performance regressions to mention (informational)

    Returns:
        Console text
    """
    width = max((len(result.id) for result in report.checks), default=0)
    return _console_template.render(
        report=report,
        failures=report.failures,
        mode=report.mode.value if report.mode else UNRESOLVED_MODE,
        width=width,
        verbose=verbose,
        regressions=list(regressions or []),
    )


def render_json(report: RunReport, include_details: bool = False) -> str:
    return json.dumps(report.to_dict(include_details), indent=2)


def write_report(report: RunReport, path: Path) -> Path:
    """
    Write the JSON report artifact.

    Args:
        report: Finished run
        path: Destination file; parent directories are created

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
        f.write("\n")

    get_logger().debug(f"Report written to {path}")
    return path
