"""
Capability handler registry, keyed by engine type.
"""

from typing import Dict, Optional, Type

from cdcstreamer.config import StreamerConfig
from streamer.exceptions import UnsupportedEngineError
from .base import (
    BaseCapabilityHandler,
    ReadinessCheck,
    StepStatus,
    ValidationReport,
    ValidationStep,
)
from .mysql import MySQLCapabilityHandler
from .postgres import PostgresCapabilityHandler

HANDLER_REGISTRY: Dict[str, Type[BaseCapabilityHandler]] = {
    'mysql': MySQLCapabilityHandler,
    'postgres': PostgresCapabilityHandler,
}

ENGINE_ALIASES = {
    'postgresql': 'postgres',
    'mariadb': 'mysql',
}


def normalize_engine_type(engine_type: str) -> str:
    key = (engine_type or '').strip().lower()
    return ENGINE_ALIASES.get(key, key)


def get_capability_handler(engine_type: str, config: Optional[StreamerConfig] = None, **kwargs) -> BaseCapabilityHandler:
    """
    Get the handler for the given database type

    Raises:
        UnsupportedEngineError: no handler registered for engine_type
    """
    handler_class = HANDLER_REGISTRY.get(normalize_engine_type(engine_type))
    if handler_class is None:
        raise UnsupportedEngineError(f"Unsupported database type: {engine_type}")
    return handler_class(config=config, **kwargs)


__all__ = [
    'BaseCapabilityHandler',
    'HANDLER_REGISTRY',
    'MySQLCapabilityHandler',
    'PostgresCapabilityHandler',
    'ReadinessCheck',
    'StepStatus',
    'ValidationReport',
    'ValidationStep',
    'get_capability_handler',
    'normalize_engine_type',
]
