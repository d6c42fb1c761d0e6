"""Defaults for the command line, optionally overridden by a JSON file."""

from __future__ import annotations

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
  "output_dir": None,
  "log_level": "INFO",
  "statement": {
    "layout": "rows",
    "y_tolerance": 1.5,
  },
  "suppliers": {
    "mode": "INSERT",
    "start_number": 450,
  },
  "customers": {
    "mode": "INSERT",
    "start_number": 86,
  },
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
  merged = deepcopy(base)
  for key, value in override.items():
    if isinstance(value, dict) and isinstance(merged.get(key), dict):
      merged[key] = deep_merge(merged[key], value)
    else:
      merged[key] = value
  return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
  """Defaults merged with ``config_path``; a missing path gives the defaults."""
  if not config_path:
    return deepcopy(DEFAULT_CONFIG)
  path = Path(config_path)
  if not path.exists():
    logger.warning(f"Config file {path} not found, using defaults")
    return deepcopy(DEFAULT_CONFIG)
  try:
    loaded = json.loads(path.read_text(encoding="utf-8"))
  except json.JSONDecodeError as e:
    raise ValueError(f"Invalid config file {path}: {e}") from e
  if not isinstance(loaded, dict):
    raise ValueError("config file must contain an object at root")
  return deep_merge(DEFAULT_CONFIG, loaded)
