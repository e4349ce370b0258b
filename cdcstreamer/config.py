"""
Explicit runtime configuration for the CDC streamer.

Built once from Django settings and handed to the components that need it,
so handlers, the relay and the connector manager never reach for a global.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class StreamerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    kafka_connect_url: str = 'http://localhost:8083'
    kafka_bootstrap_servers: str = 'localhost:9092'
    kafka_internal_servers: str = 'kafka:29092'
    capture_host_alias: str = 'host.docker.internal'
    request_timeout: float = 30.0
    database_connect_timeout: int = 10
    database_statement_timeout: int = 30
    stream_poll_timeout: float = 0.5
    stream_cancel_grace: float = 5.0
    stream_keepalive_interval: float = 15.0
    deliver_unrecognized: bool = False
    fix_settle_seconds: float = 2.0

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> 'StreamerConfig':
        """Read the CDC_STREAMER settings dict, applying keyword overrides on top."""
        from django.conf import settings

        raw = getattr(settings, 'CDC_STREAMER', {})
        values = {
            'kafka_connect_url': raw.get('KAFKA_CONNECT_URL', cls.model_fields['kafka_connect_url'].default),
            'kafka_bootstrap_servers': raw.get('KAFKA_BOOTSTRAP_SERVERS', cls.model_fields['kafka_bootstrap_servers'].default),
            'kafka_internal_servers': raw.get('KAFKA_INTERNAL_SERVERS', cls.model_fields['kafka_internal_servers'].default),
            'capture_host_alias': raw.get('CAPTURE_HOST_ALIAS', cls.model_fields['capture_host_alias'].default),
            'request_timeout': raw.get('REQUEST_TIMEOUT', cls.model_fields['request_timeout'].default),
            'database_connect_timeout': raw.get('DATABASE_CONNECT_TIMEOUT', cls.model_fields['database_connect_timeout'].default),
            'database_statement_timeout': raw.get('DATABASE_STATEMENT_TIMEOUT', cls.model_fields['database_statement_timeout'].default),
            'stream_poll_timeout': raw.get('STREAM_POLL_TIMEOUT', cls.model_fields['stream_poll_timeout'].default),
            'stream_cancel_grace': raw.get('STREAM_CANCEL_GRACE', cls.model_fields['stream_cancel_grace'].default),
            'stream_keepalive_interval': raw.get('STREAM_KEEPALIVE_INTERVAL', cls.model_fields['stream_keepalive_interval'].default),
            'deliver_unrecognized': raw.get('STREAM_DELIVER_UNRECOGNIZED', cls.model_fields['deliver_unrecognized'].default),
            'fix_settle_seconds': raw.get('FIX_SETTLE_SECONDS', cls.model_fields['fix_settle_seconds'].default),
        }
        if overrides:
            values.update(overrides)
        return cls(**values)

    @property
    def connectors_url(self) -> str:
        return f"{self.kafka_connect_url.rstrip('/')}/connectors"
