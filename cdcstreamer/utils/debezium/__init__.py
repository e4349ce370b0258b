"""
Kafka Connect (Debezium) REST client
"""

from .connector_manager import (
    ConnectResponse,
    DebeziumConnectorManager,
    classify_connector_error,
    dumps_config,
)

__all__ = [
    'ConnectResponse',
    'DebeziumConnectorManager',
    'classify_connector_error',
    'dumps_config',
]
