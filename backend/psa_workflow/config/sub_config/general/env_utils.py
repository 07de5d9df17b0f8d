"""
Environment helpers for config defaults.
"""

from __future__ import annotations

import os
from dataclasses import MISSING, Field
from logging import getLogger
from typing import Any, Dict, Mapping

logger = getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")


def _coerce(raw: str, default: Any) -> Any:
    """Convert an env string to the type of the field's default."""
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE
    if isinstance(default, int):
        return int(raw.strip())
    if isinstance(default, float):
        return float(raw.strip())
    return raw


def read_env_defaults(
    env_map: Mapping[str, str],
    fields: Mapping[str, Field],
    environ: Mapping[str, str] = os.environ,
) -> Dict[str, Any]:
    """Read field values from environment variables.

    Only fields whose variable is set are returned; a value that cannot
    be converted is logged and skipped so the dataclass default applies.
    """
    values: Dict[str, Any] = {}
    for field_name, env_name in env_map.items():
        raw = environ.get(env_name)
        if raw is None or field_name not in fields:
            continue
        default = fields[field_name].default
        if default is MISSING:
            values[field_name] = raw
            continue
        try:
            values[field_name] = _coerce(raw, default)
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: not a valid {type(default).__name__}")
    return values
