"""
Configuration export and documentation.
"""

import json
from typing import Any, Literal

import yaml
from jinja2 import Template

from prove.config.schema import ProveConfig

ExportFormat = Literal["json", "yaml", "env"]

ENV_PREFIX = "PROVE"

DOCUMENTATION_TEMPLATE = """\
# Prove Configuration

This configuration defines the thresholds, checks and runner behaviour of the prove quality gates.

## Thresholds
- **Diff coverage (functional)**: {{ c.thresholds.diff_coverage_functional }}%
- **Diff coverage (refactor)**: {{ c.thresholds.diff_coverage_functional_refactor }}%
- **Global coverage**: {{ c.thresholds.global_coverage }}%
- **Max lint warnings**: {{ c.thresholds.max_warnings }}
- **Max commit size**: {{ c.thresholds.max_commit_size }} lines

## Toggles
{% for name, enabled in toggles.items() -%}
- **{{ name }}**: {{ "Enabled" if enabled else "Disabled" }}
{% endfor %}
## Runner
- **Concurrency**: {{ c.runner.concurrency }}
- **Timeout**: {{ c.runner.timeout }}ms
- **Fail fast**: {{ c.runner.fail_fast }}

## Git
- **Trunk branch**: {{ c.git.trunk_branch }}
- **Base ref fallback**: {{ c.git.base_ref_fallback }}
- **Require trunk branch**: {{ c.git.require_main_branch }}
- **Pre-merge conflict check**: {{ c.git.enable_pre_conflict_check }}

## Check timeouts
{% for name, timeout in timeouts.items() -%}
- **{{ name }}**: {{ timeout }}ms
{% endfor %}
## Modes
- **Functional**: TDD evidence {{ "required" if c.modes.functional.require_tdd else "optional" }}, diff coverage {{ "required" if c.modes.functional.require_diff_coverage else "optional" }}
- **Non-functional**: problem analysis {{ "required" if c.modes.non_functional.require_problem_analysis else "optional" }} (sections: {{ c.modes.non_functional.required_sections | join(", ") }}; minimum {{ c.modes.non_functional.min_length }} characters)
{% if c.environment.required %}
## Required environment variables
{% for variable in c.environment.required -%}
- `{{ variable.name }}`{% if variable.format %} ({{ variable.format }}){% endif %}{% if variable.pattern %} matching `{{ variable.pattern }}`{% endif %}
{% endfor %}{% endif %}"""


def export_config(config: ProveConfig, fmt: ExportFormat) -> str:
    """
    Serialize a configuration.

    Args:
        config: Validated configuration
        fmt: "json", "yaml" or "env"

    Returns:
        The serialized configuration

    Raises:
        ValueError: For an unsupported format
    """
    data = config.model_dump()
    if fmt == "json":
        return json.dumps(data, indent=2)
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    if fmt == "env":
        return "\n".join(f"{key}={value}" for key, value in _to_env(data)) + "\n"
    raise ValueError(f"Unsupported format: {fmt}")


def _to_env(data: dict[str, Any], prefix: str = ENV_PREFIX) -> list[tuple[str, str]]:
    # Nested keys use the double-underscore separator understood by the settings loader
    pairs = []
    for key, value in data.items():
        name = f"{prefix}_{key.upper()}" if prefix == ENV_PREFIX else f"{prefix}__{key.upper()}"
        if isinstance(value, dict):
            pairs.extend(_to_env(value, name))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        elif isinstance(value, (list, tuple)):
            pairs.append((name, json.dumps(value)))
        else:
            pairs.append((name, str(value)))
    return pairs


def generate_documentation(config: ProveConfig) -> str:
    """Render a markdown description of the configuration."""
    template = Template(DOCUMENTATION_TEMPLATE)
    return template.render(
        c=config,
        toggles=config.toggles.model_dump(),
        timeouts=config.check_timeouts.model_dump(),
    )
