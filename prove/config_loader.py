"""
Layered settings loading for prove.

Settings are read in order of increasing precedence:
1. Packaged defaults (prove/settings/configuration.toml)
2. Project file (prove.toml or .prove.toml at the working directory, or an explicit path)
3. PROVE_<SECTION>__<KEY> environment variables
4. Legacy flat environment overrides (PROVE_CONCURRENCY, PROVE_ENABLE_SECURITY, ...)

Tables merge key by key across layers; arrays are replaced, never
concatenated. The result is a plain nested dictionary; schema validation
happens in prove.config.validator.
"""

import copy
import os
from os.path import abspath, dirname, join
from pathlib import Path
from typing import Any, Mapping, Optional

from dynaconf import Dynaconf

from prove.config.validator import ConfigValidator, ValidationReport
from prove.errors import ConfigurationError
from prove.log import get_logger

current_dir = dirname(abspath(__file__))

DEFAULT_SETTINGS_FILE = join(current_dir, "settings", "configuration.toml")

PROJECT_SETTINGS_FILES = ["prove.toml", ".prove.toml"]

KNOWN_SECTIONS = [
    "thresholds",
    "paths",
    "git",
    "runner",
    "toggles",
    "modes",
    "check_timeouts",
    "commands",
    "feature_flags",
    "kill_switch",
    "environment",
    "history",
]

# Flat environment overrides kept for existing CI pipelines
ENV_ALIASES = {
    "PROVE_DIFF_COVERAGE_FUNCTIONAL": ("thresholds", "diff_coverage_functional", int),
    "PROVE_GLOBAL_COVERAGE": ("thresholds", "global_coverage", int),
    "PROVE_CONCURRENCY": ("runner", "concurrency", int),
    "PROVE_ENABLE_COVERAGE": ("toggles", "coverage", "bool"),
    "PROVE_ENABLE_DIFF_COVERAGE": ("toggles", "diff_coverage", "bool"),
    "PROVE_ENABLE_SECURITY": ("toggles", "security", "bool"),
    "PROVE_ENABLE_CONTRACTS": ("toggles", "contracts", "bool"),
    "PROVE_ENABLE_DB_MIGRATIONS": ("toggles", "db_migrations", "bool"),
}


def find_project_settings(working_directory: Path) -> Optional[Path]:
    """Return the first project settings file present in the working directory."""
    for name in PROJECT_SETTINGS_FILES:
        candidate = Path(working_directory) / name
        if candidate.is_file():
            return candidate
    return None


def load_settings(
    working_directory: Path,
    settings_file: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None
) -> dict[str, Any]:
    """
    Load the layered prove settings.

    Args:
        working_directory: Repository root used to discover the project file
        settings_file: Explicit project settings file (overrides discovery)
        env: Environment used for legacy overrides (defaults to os.environ)

    Returns:
        Nested dictionary holding only the known configuration sections

    Raises:
        ConfigurationError: If an explicit settings file does not exist or cannot be parsed
    """
    logger = get_logger()
    env = os.environ if env is None else env

    files = [DEFAULT_SETTINGS_FILE]
    if settings_file:
        project_file = Path(settings_file)
        if not project_file.is_absolute():
            project_file = Path(working_directory) / project_file
        if not project_file.is_file():
            raise ConfigurationError(f"Settings file not found: {project_file}")
    else:
        project_file = find_project_settings(working_directory)

    if project_file is not None:
        files.append(str(project_file))
        logger.debug(f"Using project settings from {project_file}")

    # One Dynaconf instance per layer; dynaconf's own merging would concatenate arrays
    try:
        layers = [
            Dynaconf(environments=False, load_dotenv=False, loaders=[], settings_files=[path]).as_dict()
            for path in files
        ]
        layers.append(Dynaconf(envvar_prefix="PROVE", environments=False, load_dotenv=False).as_dict())
        raw: dict[str, Any] = {}
        for layer in layers:
            raw = _merge_dict(raw, _normalize_keys(layer))
    except Exception as e:
        raise ConfigurationError(f"Failed to load settings: {e}") from e

    config = {section: raw[section] for section in KNOWN_SECTIONS if section in raw}
    _apply_env_aliases(config, env)
    return config


def _normalize_keys(value: Any) -> Any:
    """
    Lower-case mapping keys recursively.

    Environment overrides may arrive upper-cased next to the lower-case
    key read from TOML; the differently-cased override is merged on top.
    """
    if isinstance(value, dict):
        normalized = {}
        overrides = {}
        for key, item in value.items():
            lowered = str(key).lower()
            target = normalized if str(key) == lowered else overrides
            target[lowered] = _normalize_keys(item)
        return _merge_dict(normalized, overrides)
    if isinstance(value, (list, tuple)):
        return [_normalize_keys(item) for item in value]
    return value


def _merge_dict(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _apply_env_aliases(config: dict[str, Any], env: Mapping[str, str]) -> None:
    for name, (section, key, kind) in ENV_ALIASES.items():
        raw_value = env.get(name)
        if raw_value is None or raw_value == "":
            continue
        if kind == "bool":
            value: Any = raw_value.strip().lower() in ("1", "true", "yes", "on")
        else:
            try:
                value = kind(raw_value)
            except ValueError:
                # Left as a string so schema validation reports the field
                value = raw_value
        config.setdefault(section, {})[key] = value


def load_config(
    working_directory: Path,
    settings_file: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None
) -> ValidationReport:
    """
    Load and validate the settings in one step.

    Returns:
        A valid ValidationReport (its config is set)

    Raises:
        ConfigurationError: If loading fails or the settings are invalid; issues carry each field path
    """
    raw = load_settings(working_directory, settings_file=settings_file, env=env)
    report = ConfigValidator().load(raw)
    if not report.is_valid:
        raise ConfigurationError(f"Invalid configuration ({len(report.errors)} error(s))", report.errors)

    logger = get_logger()
    for warning in report.warnings:
        logger.warning(f"Configuration warning: {warning}")
    return report
