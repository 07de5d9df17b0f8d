"""
Configuration Module

Dataclass-based settings for the workflow engine.
"""
from psa_workflow.config.base import (
    BaseConfig,
    ConfigField,
    FieldType,
    get_config_class,
    list_config_classes,
    register_config,
)
from psa_workflow.config.sub_config.general.engine_config import (
    EngineConfig,
    get_engine_config,
    set_engine_config,
)

__all__ = [
    "BaseConfig",
    "ConfigField",
    "FieldType",
    "get_config_class",
    "list_config_classes",
    "register_config",
    "EngineConfig",
    "get_engine_config",
    "set_engine_config",
]
