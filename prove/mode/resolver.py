# AGPL-3.0 License

"""
Delivery-mode resolver.

A change is either functional (must carry test evidence) or
non-functional (must carry a written problem analysis). Sources are
consulted in order and the first explicit value wins:

1. The task declaration file committed with the change (tasks/TASK.json)
2. The PROVE_MODE environment declaration
3. Change labels (mode:functional / mode:non-functional)
4. Change title markers ([MODE:F] / [MODE:NF])

There is no default. An unresolved mode fails the delivery-mode check.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from prove.errors import ModeResolutionError
from prove.log import get_logger

FUNCTIONAL_LABEL = "mode:functional"
NON_FUNCTIONAL_LABEL = "mode:non-functional"
FUNCTIONAL_TITLE_MARKERS = ("[MODE:F]", "[MODE:functional]")
NON_FUNCTIONAL_TITLE_MARKERS = ("[MODE:NF]", "[MODE:non-functional]")


class DeliveryMode(str, Enum):
    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non_functional"


def parse_mode_value(value: Optional[str]) -> Optional[DeliveryMode]:
    """Map a declared mode string to a DeliveryMode; None when unrecognized."""
    if not value:
        return None
    normalized = value.strip().lower().replace("-", "_")
    if normalized in ("functional", "f"):
        return DeliveryMode.FUNCTIONAL
    if normalized in ("non_functional", "nf"):
        return DeliveryMode.NON_FUNCTIONAL
    return None


@dataclass(frozen=True)
class TaskDeclaration:
    mode: DeliveryMode
    updated_at: str
    source: str
    note: str


@dataclass(frozen=True)
class ModeResolution:
    """
    Result of resolving the delivery mode.

    Attributes:
        mode: Resolved mode, or None when no source declared one
        source: Which source decided ("task_file", "env", "label", "title")
        error: Why resolution failed, when mode is None
    """
    mode: Optional[DeliveryMode]
    source: Optional[str] = None
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.mode is not None


def load_task_declaration(path: Path) -> Optional[TaskDeclaration]:
    """
    Load and validate the task declaration file.

    Args:
        path: Location of TASK.json

    Returns:
        TaskDeclaration, or None when the file does not exist

    Raises:
        ModeResolutionError: If the file exists but is malformed
    """
    path = Path(path)
    if not path.is_file():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ModeResolutionError(f"Failed to load {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ModeResolutionError(f"Failed to load {path.name}: expected a JSON object")
    if not data.get("mode"):
        raise ModeResolutionError(f"Failed to load {path.name}: missing required field: mode")

    mode = parse_mode_value(str(data["mode"]))
    if mode is None:
        raise ModeResolutionError(
            f"Failed to load {path.name}: invalid mode value {data['mode']!r}, "
            f"must be 'functional' or 'non-functional'"
        )

    for key in ("updatedAt", "source", "note"):
        if not isinstance(data.get(key), str):
            raise ModeResolutionError(f"Failed to load {path.name}: invalid {key} field, must be a string")

    return TaskDeclaration(mode=mode, updated_at=data["updatedAt"], source=data["source"], note=data["note"])


def mode_from_labels(labels: list[str]) -> Optional[DeliveryMode]:
    normalized = {label.strip().lower() for label in labels}
    if FUNCTIONAL_LABEL in normalized:
        return DeliveryMode.FUNCTIONAL
    if NON_FUNCTIONAL_LABEL in normalized:
        return DeliveryMode.NON_FUNCTIONAL
    return None


def mode_from_title(title: str) -> Optional[DeliveryMode]:
    if any(marker in title for marker in FUNCTIONAL_TITLE_MARKERS):
        return DeliveryMode.FUNCTIONAL
    if any(marker in title for marker in NON_FUNCTIONAL_TITLE_MARKERS):
        return DeliveryMode.NON_FUNCTIONAL
    return None


def resolve_mode(
    working_directory: Path,
    env: Mapping[str, str],
    task_file: str = "tasks/TASK.json"
) -> ModeResolution:
    """
    Resolve the delivery mode for the current change.

    Args:
        working_directory: Repository root
        env: Environment snapshot (PROVE_MODE, GITHUB_PR_LABELS, GITHUB_PR_TITLE, PR_TITLE)
        task_file: Declaration file path relative to the working directory

    Returns:
        ModeResolution; a malformed declaration file yields an unresolved
        result carrying the file error rather than falling through
    """
    logger = get_logger()

    try:
        declaration = load_task_declaration(Path(working_directory) / task_file)
    except ModeResolutionError as e:
        logger.warning(str(e))
        return ModeResolution(mode=None, source="task_file", error=str(e))

    if declaration is not None:
        logger.info(f"Mode resolved from {task_file}: {declaration.mode.value}")
        return ModeResolution(mode=declaration.mode, source="task_file")

    declared = env.get("PROVE_MODE")
    if declared:
        mode = parse_mode_value(declared)
        if mode is None:
            return ModeResolution(
                mode=None, source="env",
                error=f"PROVE_MODE has invalid value {declared!r}, must be 'functional' or 'non-functional'",
            )
        logger.info(f"Mode resolved from PROVE_MODE: {mode.value}")
        return ModeResolution(mode=mode, source="env")

    labels = [label for label in env.get("GITHUB_PR_LABELS", "").split(",") if label.strip()]
    mode = mode_from_labels(labels)
    if mode is not None:
        logger.info(f"Mode resolved from change label: {mode.value}")
        return ModeResolution(mode=mode, source="label")

    title = env.get("GITHUB_PR_TITLE") or env.get("PR_TITLE") or ""
    mode = mode_from_title(title)
    if mode is not None:
        logger.info(f"Mode resolved from change title: {mode.value}")
        return ModeResolution(mode=mode, source="title")

    return ModeResolution(
        mode=None,
        error=(
            f"delivery mode not declared: add {task_file}, set PROVE_MODE, "
            f"label the change {FUNCTIONAL_LABEL} or {NON_FUNCTIONAL_LABEL}, "
            f"or tag its title [MODE:F] or [MODE:NF]"
        ),
    )
