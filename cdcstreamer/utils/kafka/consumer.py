import logging
import re
import uuid
from typing import Callable, Dict, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, TIMESTAMP_NOT_AVAILABLE

from streamer.events.models import RawMessage
from streamer.exceptions import BrokerConnectionError

logger = logging.getLogger(__name__)

# Harmless while a freshly registered connector has not produced yet
IGNORED_ERROR_CODES = (
    KafkaError._PARTITION_EOF,
    KafkaError.UNKNOWN_TOPIC_OR_PART,
)

_REGEX_SPECIAL = re.compile(r'([.^$*+?()\[\]{}|\\])')


def topic_pattern(topic_prefix: str) -> str:
    """
    Subscription regex covering both channels of a topic prefix:
    `{prefix}` (schema changes) and `{prefix}.all-changes` (row changes).
    """
    escaped = _REGEX_SPECIAL.sub(r'\\\1', topic_prefix)
    return rf'^{escaped}(\.all-changes)?$'


def session_group_id() -> str:
    return f"cdc-stream-{uuid.uuid4().hex}"


def _decode(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.decode('utf-8', errors='replace')


def to_raw_message(msg) -> RawMessage:
    """Convert a confluent_kafka Message into an immutable RawMessage"""
    ts_type, ts_value = msg.timestamp()
    headers: Dict[str, Optional[str]] = {}
    for name, value in msg.headers() or []:
        headers[name] = _decode(value)

    return RawMessage(
        topic=msg.topic(),
        partition=msg.partition(),
        offset=msg.offset(),
        timestamp_ms=None if ts_type == TIMESTAMP_NOT_AVAILABLE else ts_value,
        headers=headers,
        key_raw=_decode(msg.key()),
        value_raw=_decode(msg.value()),
    )


class CDCTopicConsumer:
    """
    Session-scoped Kafka consumer for one topic prefix.

    Every instance gets its own consumer group, starts at the latest offset
    and never commits, so sessions are independent and always replay "from now".
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic_prefix: str,
        group_id: Optional[str] = None,
        poll_timeout: float = 0.5,
        consumer_factory: Callable[[Dict], Consumer] = Consumer,
    ):
        self.topic_prefix = topic_prefix
        self.group_id = group_id or session_group_id()
        self.poll_timeout = poll_timeout
        self.config = {
            'bootstrap.servers': bootstrap_servers,
            'group.id': self.group_id,
            'auto.offset.reset': 'latest',
            'enable.auto.commit': False,
            'heartbeat.interval.ms': 3000,
            'session.timeout.ms': 10000,
            'topic.metadata.refresh.interval.ms': 5000,
            'error_cb': self._on_error,
        }
        self.consumer = consumer_factory(self.config)
        self.running = True
        self._broker_error: Optional[KafkaError] = None

    def _on_error(self, err: KafkaError):
        logger.warning(f"Kafka client error for {self.topic_prefix}: {err}")
        if err.fatal() or err.code() == KafkaError._ALL_BROKERS_DOWN:
            self._broker_error = err

    def subscribe(self):
        pattern = topic_pattern(self.topic_prefix)
        self.consumer.subscribe([pattern])
        logger.info(f"Subscribed to topics matching {pattern} (group {self.group_id})")

    def run(self, on_message: Callable[[RawMessage], None], stop_event=None):
        """
        Poll until stopped, handing each message to on_message.

        Raises:
            BrokerConnectionError: all brokers down or a fatal client error
            KafkaException: any other non-ignorable message error
        """
        while self.running and not (stop_event is not None and stop_event.is_set()):
            msg = self.consumer.poll(timeout=self.poll_timeout)

            if self._broker_error is not None:
                raise BrokerConnectionError(f"Kafka broker unavailable: {self._broker_error}")

            if msg is None:
                continue
            if msg.error():
                if msg.error().code() in IGNORED_ERROR_CODES:
                    continue
                raise KafkaException(msg.error())

            on_message(to_raw_message(msg))

    def shutdown(self):
        """Stop the poll loop after the current poll returns"""
        self.running = False

    def close(self):
        """Leave the consumer group and release the client"""
        try:
            self.consumer.close()
            logger.info(f"Consumer closed for {self.topic_prefix}")
        except (KafkaException, RuntimeError) as e:
            logger.error(f"Error while closing consumer: {e}")
