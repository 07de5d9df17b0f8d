"""
Config base — dataclass configs with field metadata and a registry.

Each config is a ``@dataclass`` subclass of ``BaseConfig`` decorated with
``@register_config``. Defaults come from environment variables through
``get_default_instance``; ``get_fields_metadata`` describes each field for
settings screens.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Optional, Type, TypeVar

logger = getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


@dataclass
class ConfigField:
    """Metadata describing one config field."""

    name: str
    field_type: FieldType
    label: str
    description: str = ""
    default: Any = None
    required: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: List[Dict[str, Any]] = field(default_factory=list)
    group: str = "general"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["field_type"] = self.field_type.value
        return data


@dataclass
class BaseConfig:
    """Base class for all config dataclasses."""

    @classmethod
    def get_default_instance(cls) -> "BaseConfig":
        return cls()

    @classmethod
    def get_config_name(cls) -> str:
        raise NotImplementedError

    @classmethod
    def get_display_name(cls) -> str:
        return cls.get_config_name().replace("_", " ").title()

    @classmethod
    def get_description(cls) -> str:
        return ""

    @classmethod
    def get_category(cls) -> str:
        return "general"

    @classmethod
    def get_fields_metadata(cls) -> List[ConfigField]:
        return []

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> List[str]:
        """Check values against field metadata bounds.

        Returns a list of error messages (empty = valid).
        """
        errors: List[str] = []
        for meta in self.get_fields_metadata():
            value = getattr(self, meta.name, None)
            if meta.required and value in (None, ""):
                errors.append(f"{meta.label} is required.")
                continue
            if meta.field_type == FieldType.NUMBER and value is not None:
                if meta.min_value is not None and value < meta.min_value:
                    errors.append(f"{meta.label} must be at least {meta.min_value:g}.")
                if meta.max_value is not None and value > meta.max_value:
                    errors.append(f"{meta.label} must be at most {meta.max_value:g}.")
            if meta.field_type == FieldType.SELECT and meta.options:
                allowed = {o["value"] for o in meta.options}
                if value not in allowed:
                    errors.append(f"{meta.label} must be one of {sorted(allowed)}.")
        return errors


# ── Registry ──

_CONFIG_REGISTRY: Dict[str, Type[BaseConfig]] = {}

C = TypeVar("C", bound=Type[BaseConfig])


def register_config(cls: C) -> C:
    """Class decorator adding a config class to the registry."""
    name = cls.get_config_name()
    if name in _CONFIG_REGISTRY and _CONFIG_REGISTRY[name] is not cls:
        logger.warning(f"Config '{name}' re-registered by {cls.__name__}")
    _CONFIG_REGISTRY[name] = cls
    return cls


def get_config_class(name: str) -> Optional[Type[BaseConfig]]:
    return _CONFIG_REGISTRY.get(name)


def list_config_classes() -> List[Type[BaseConfig]]:
    return list(_CONFIG_REGISTRY.values())
