"""Load optional organizer configuration from `.task_organizer/config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from .constants import (
    CONFIG_FILE,
    DEFAULT_AUTOSAVE_DELAY_SECONDS,
    DEFAULT_ORDER_PRECISION,
    DEFAULT_ORDER_STEP,
    DEFAULT_PROJECT_ID,
    STATE_DIR_NAME,
)
from .io_utils import _load_yaml_with_error


def load_organizer_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_yaml_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _positive_float(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def get_ordering_config(config: dict[str, Any]) -> tuple[float, float]:
    """Return `(step, precision)` for manual ordering."""
    step = _positive_float(_get_nested(config, "ordering", "step"), DEFAULT_ORDER_STEP)
    precision = _positive_float(_get_nested(config, "ordering", "precision"), DEFAULT_ORDER_PRECISION)
    return step, precision


def get_autosave_delay(config: dict[str, Any]) -> float:
    return _positive_float(_get_nested(config, "autosave", "delay_seconds"), DEFAULT_AUTOSAVE_DELAY_SECONDS)


def get_timeline_timezone(config: dict[str, Any]) -> Optional[tzinfo]:
    """Return the zone used for day normalization, or None for system local time.

    Unknown zone names are logged and ignored.
    """
    raw = _get_nested(config, "timeline", "timezone")
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timeline timezone {!r}; using local time", raw)
        return None


def get_project_id(config: dict[str, Any]) -> str:
    raw = config.get("project_id")
    return str(raw) if raw else DEFAULT_PROJECT_ID


@dataclass(frozen=True)
class OrganizerSettings:
    project_id: str = DEFAULT_PROJECT_ID
    order_step: float = DEFAULT_ORDER_STEP
    order_precision: float = DEFAULT_ORDER_PRECISION
    autosave_delay: float = DEFAULT_AUTOSAVE_DELAY_SECONDS
    timezone: Optional[tzinfo] = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "OrganizerSettings":
        step, precision = get_ordering_config(config)
        return cls(
            project_id=get_project_id(config),
            order_step=step,
            order_precision=precision,
            autosave_delay=get_autosave_delay(config),
            timezone=get_timeline_timezone(config),
        )

    @classmethod
    def load(cls, project_dir: Path) -> "OrganizerSettings":
        config, err = load_organizer_config(project_dir)
        if err:
            logger.warning("Ignoring unreadable config: {}", err)
        return cls.from_config(config)
