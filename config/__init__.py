"""
Configuration loading utilities for the Salad operator.
"""

from config.settings import (
    KeyFetchPolicy,
    OperatorConfig,
    load_operator_config,
)

__all__ = [
    "KeyFetchPolicy",
    "OperatorConfig",
    "load_operator_config",
]
