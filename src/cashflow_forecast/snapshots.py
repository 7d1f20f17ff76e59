"""Single flat-file snapshots of state and What-If payloads.

The format follows the file extension: ``.yaml``/``.yml`` is YAML,
anything else is JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from cashflow_forecast.models import State, WhatIfScenario
from cashflow_forecast.validation import default_state, normalize_state, sanitize_whatif_state

logger = structlog.get_logger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


class SnapshotError(Exception):
    """Raised when a snapshot file exists but cannot be decoded."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in YAML_SUFFIXES


def _read(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SnapshotError(f"{path.name}: cannot read snapshot: {exc}", path=path) from exc
    if not raw.strip():
        return None
    try:
        if _is_yaml(path):
            return yaml.safe_load(raw)
        return json.loads(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SnapshotError(f"{path.name}: cannot decode snapshot: {exc}", path=path) from exc


def _write(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if _is_yaml(path):
        text = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    path.write_text(text, encoding="utf-8")


def load_state(path: str | Path, strict: bool = False) -> State:
    """Load and normalize a state snapshot.

    A missing file yields the default state. An undecodable file raises
    :class:`SnapshotError` in strict mode and yields the default state
    otherwise.
    """
    path = Path(path)
    if not path.exists():
        logger.info("state_snapshot_missing", path=str(path))
        return default_state()
    try:
        data = _read(path)
    except SnapshotError:
        if strict:
            raise
        logger.warning("state_snapshot_unreadable", path=str(path))
        return default_state()
    if data is None:
        return default_state()
    return normalize_state(data, strict=strict)


def save_state(path: str | Path, state: State) -> Path:
    path = Path(path)
    _write(path, normalize_state(state).to_dict())
    logger.info("state_snapshot_saved", path=str(path))
    return path


def load_whatif(path: str | Path, fallback_base: State | None = None) -> WhatIfScenario:
    """Load a What-If snapshot; unreadable or missing files fall back to ``fallback_base``."""
    path = Path(path)
    data: Any = None
    if path.exists():
        try:
            data = _read(path)
        except SnapshotError:
            logger.warning("scenario_snapshot_unreadable", path=str(path))
    return sanitize_whatif_state(data, fallback_base)


def save_whatif(path: str | Path, scenario: WhatIfScenario) -> Path:
    path = Path(path)
    _write(path, scenario.to_dict())
    logger.info("scenario_snapshot_saved", path=str(path))
    return path
