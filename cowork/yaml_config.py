"""YAML configuration loader.

Values from the ``host`` section are layered over a base ``HostConfig``
(usually the one built from env vars). Unknown keys are ignored with a
warning.

Example YAML:
    host:
      port: 8765
      default_model: claude-sonnet-4-5-20250929
      default_workspace: ~/Documents/cowork
      user_question_timeout_seconds: 600
      allowed_tools: [Read, Write, Edit, TodoWrite, AskUserQuestion]
      log_level: DEBUG
"""
from __future__ import annotations

import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from .config import HostConfig

logger = logging.getLogger(__name__)

_INT_FIELDS = {"port", "max_attachment_bytes"}
_FLOAT_FIELDS = {"user_question_timeout_seconds"}
_PATH_FIELDS = {"default_workspace", "log_dir"}


def _coerce(key: str, value: Any) -> Any:
    if key in _INT_FIELDS:
        return int(value)
    if key in _FLOAT_FIELDS:
        return float(value)
    if key in _PATH_FIELDS:
        return str(Path(str(value)).expanduser())
    if key == "allowed_tools":
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return [str(t) for t in value or []]
    return str(value)


def load_yaml_config(
    path: str | Path,
    base: HostConfig | None = None,
) -> HostConfig:
    """Load a YAML config file and merge its ``host`` section over *base*."""
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute(),
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    host_raw = raw.get("host") or {}
    if not isinstance(host_raw, dict):
        raise ValueError(f"{path}: 'host' section must be a mapping")

    known = {f.name for f in fields(HostConfig)}
    overrides: dict[str, Any] = {}
    for key, value in host_raw.items():
        if key not in known:
            logger.warning("load_yaml_config: ignoring unknown host key %r", key)
            continue
        overrides[key] = _coerce(key, value)

    config = replace(base or HostConfig(), **overrides)
    logger.info(
        "Parsed YAML config %s: overrides=%s",
        path.name, ", ".join(sorted(overrides)) or "(none)",
    )
    return config
