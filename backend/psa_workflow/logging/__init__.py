"""
Instance Logging Module

Provides per-instance logging capabilities for the workflow engine.
"""
from psa_workflow.logging.instance_logger import (
    InstanceLogger,
    get_instance_logger,
    remove_instance_logger,
)

__all__ = ['InstanceLogger', 'get_instance_logger', 'remove_instance_logger']
