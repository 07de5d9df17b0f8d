"""
Workflow Engine Configuration.

Controls branch limits, the auto-advance step bound, legacy node
handling, and the engine log level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from psa_workflow.config.base import BaseConfig, ConfigField, FieldType, register_config
from psa_workflow.config.sub_config.general.env_utils import read_env_defaults

logger = logging.getLogger(__name__)

LOG_LEVEL_OPTIONS = [
    {"value": "DEBUG", "label": "Debug"},
    {"value": "INFO", "label": "Info"},
    {"value": "WARNING", "label": "Warning"},
    {"value": "ERROR", "label": "Error"},
]


@register_config
@dataclass
class EngineConfig(BaseConfig):
    """Workflow validation and routing settings."""

    max_branches: int = 5
    max_auto_steps: int = 100
    allow_legacy_department: bool = True
    log_level: str = "INFO"

    _ENV_MAP = {
        "max_branches": "PSA_WORKFLOW_MAX_BRANCHES",
        "max_auto_steps": "PSA_WORKFLOW_MAX_AUTO_STEPS",
        "allow_legacy_department": "PSA_WORKFLOW_ALLOW_LEGACY_DEPARTMENT",
        "log_level": "PSA_WORKFLOW_LOG_LEVEL",
    }

    def __post_init__(self) -> None:
        self.log_level = str(self.log_level).upper()

    @classmethod
    def get_default_instance(cls) -> "EngineConfig":
        defaults = read_env_defaults(cls._ENV_MAP, cls.__dataclass_fields__)
        config = cls(**defaults)
        problems = config.validate()
        if problems:
            logger.warning(
                "Engine config from environment has problems; using defaults: "
                + " ".join(problems)
            )
            return cls()
        return config

    @classmethod
    def get_config_name(cls) -> str:
        return "engine"

    @classmethod
    def get_display_name(cls) -> str:
        return "Workflow Engine"

    @classmethod
    def get_description(cls) -> str:
        return "Branch limits, auto-advance bound, and legacy node handling."

    @classmethod
    def get_category(cls) -> str:
        return "workflow"

    @classmethod
    def get_fields_metadata(cls) -> List[ConfigField]:
        return [
            ConfigField(
                name="max_branches",
                field_type=FieldType.NUMBER,
                label="Max Branches",
                description="Maximum branches on a conditional node",
                default=5,
                min_value=1,
                max_value=20,
                group="validation",
            ),
            ConfigField(
                name="allow_legacy_department",
                field_type=FieldType.BOOLEAN,
                label="Allow Department Nodes",
                description="Accept legacy department nodes with a warning instead of an error",
                default=True,
                group="validation",
            ),
            ConfigField(
                name="max_auto_steps",
                field_type=FieldType.NUMBER,
                label="Max Auto Steps",
                description="Upper bound on steps taken by one advance() call",
                default=100,
                min_value=1,
                max_value=10000,
                group="execution",
            ),
            ConfigField(
                name="log_level",
                field_type=FieldType.SELECT,
                label="Log Level",
                description="Log level for the psa_workflow loggers",
                default="INFO",
                options=LOG_LEVEL_OPTIONS,
                group="logging",
            ),
        ]

    def apply_log_level(self) -> None:
        logging.getLogger("psa_workflow").setLevel(self.log_level.upper())


# ── Singleton ──

_engine_config: Optional[EngineConfig] = None


def get_engine_config() -> EngineConfig:
    """Return the process-wide EngineConfig, read from the environment once."""
    global _engine_config
    if _engine_config is None:
        _engine_config = EngineConfig.get_default_instance()
        _engine_config.apply_log_level()
    return _engine_config


def set_engine_config(config: Optional[EngineConfig]) -> None:
    """Replace (or with None, reset) the process-wide EngineConfig."""
    global _engine_config
    _engine_config = config
