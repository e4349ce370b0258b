"""
Stream relay: one broker subscription per client session, exposed as a
cancellable, ordered, de-duplicated sequence of CDC events.

A daemon pump thread owns the Kafka consumer and pushes classified events
into an unbounded queue; the reader pulls at its own pace. Cancellation
stops the pump, wakes a blocked reader and drops all buffered state.
"""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from confluent_kafka import KafkaException

from cdcstreamer.config import StreamerConfig
from cdcstreamer.utils.kafka import CDCTopicConsumer
from streamer import metrics
from streamer.events import CDCEvent, RawMessage, UnrecognizedEvent, classify
from streamer.exceptions import BrokerConnectionError, StreamError
from streamer.logging_utils import log_stream_closed, log_stream_opened

logger = logging.getLogger(__name__)


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


_END = object()


class EventSequence:
    """
    Iterator over the events of one relay session.

    Iterating blocks until the next event arrives and stops once the session
    is cancelled. `get(timeout)` is the non-blocking flavour used by
    transports that need to emit keep-alives while idle.
    """

    def __init__(
        self,
        topic_prefix: str,
        subscription,
        deliver_unrecognized: bool = False,
        cancel_grace: float = 5.0,
    ):
        self.topic_prefix = topic_prefix
        self.subscription = subscription
        self.deliver_unrecognized = deliver_unrecognized
        self.cancel_grace = cancel_grace

        self._queue: 'queue.Queue' = queue.Queue()
        self._seen = set()
        self._stop = threading.Event()
        self._finished = threading.Event()
        self._close_lock = threading.Lock()
        self._closed_logged = False
        self._thread = threading.Thread(
            target=self._pump,
            name=f'cdc-relay-{topic_prefix}',
            daemon=True,
        )

        self.delivered = 0
        self.duplicates = 0
        self.started_at = None

    @property
    def consumer_group(self) -> Optional[str]:
        return getattr(self.subscription, 'group_id', None)

    @property
    def closed(self) -> bool:
        return self._finished.is_set()

    def start(self):
        self.started_at = time.time()
        metrics.stream_sessions_active.inc()
        log_stream_opened(self.topic_prefix, self.consumer_group)
        self._thread.start()
        return self

    # ---- producer side (pump thread) ----

    def _pump(self):
        try:
            self.subscription.subscribe()
            self.subscription.run(self._on_message, self._stop)
        except (BrokerConnectionError, KafkaException) as e:
            if not self._stop.is_set():
                logger.error(f"Stream for {self.topic_prefix} lost its broker subscription: {e}")
                metrics.stream_failures_total.labels(error_type=type(e).__name__).inc()
                self._queue.put(_Failure(e))
        except Exception as e:
            # any other pump failure must still end the reader's sequence
            logger.exception(f"Relay pump for {self.topic_prefix} crashed: {e}")
            metrics.stream_failures_total.labels(error_type=type(e).__name__).inc()
            self._queue.put(_Failure(e))
        else:
            self._queue.put(_END)
        finally:
            self.subscription.close()

    def _on_message(self, raw: RawMessage):
        if self._finished.is_set():
            return

        identity = raw.identity
        if identity in self._seen:
            self.duplicates += 1
            metrics.stream_duplicates_dropped_total.inc()
            logger.debug(f"Dropping redelivered message {identity}")
            return
        self._seen.add(identity)

        event = classify(raw)
        if isinstance(event, UnrecognizedEvent) and not self.deliver_unrecognized:
            metrics.stream_unrecognized_dropped_total.inc()
            logger.debug(f"Withholding unrecognized message {identity}: {event.parse_error}")
            return

        self._queue.put(event)

    # ---- consumer side (reader) ----

    def get(self, timeout: Optional[float] = None) -> Optional[CDCEvent]:
        """
        Next event, or None when `timeout` elapses or the session is closed.

        Raises:
            StreamError: the broker subscription died
        """
        if self._finished.is_set():
            return None

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

        if item is _END:
            self._finish()
            return None
        if isinstance(item, _Failure):
            self._finish()
            raise StreamError(
                f"Broker subscription for {self.topic_prefix} failed: {item.error}. "
                "Open a new stream session."
            ) from item.error
        if self._finished.is_set():
            return None

        self.delivered += 1
        metrics.stream_events_relayed_total.labels(variant=item.kind).inc()
        return item

    def __iter__(self):
        return self

    def __next__(self) -> CDCEvent:
        event = self.get()
        if event is None:
            raise StopIteration
        return event

    # ---- teardown ----

    def cancel(self):
        """Stop the session; returns once the subscription is released or the grace period passes"""
        self._stop.set()
        self._finish()
        if hasattr(self.subscription, 'shutdown'):
            self.subscription.shutdown()

        # wake a reader blocked in get()
        self._queue.put(_END)

        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.cancel_grace)
            if self._thread.is_alive():
                logger.warning(
                    f"Relay pump for {self.topic_prefix} did not stop within {self.cancel_grace}s"
                )

        self._seen.clear()
        self._drain()

    def _drain(self):
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def _finish(self):
        self._finished.set()
        with self._close_lock:
            if self._closed_logged:
                return
            self._closed_logged = True
        metrics.stream_sessions_active.dec()
        duration = time.time() - self.started_at if self.started_at else None
        log_stream_closed(self.topic_prefix, self.consumer_group, self.delivered, self.duplicates, duration)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()
        return False


class StreamRelay:
    """Opens relay sessions against the configured broker"""

    def __init__(
        self,
        config: Optional[StreamerConfig] = None,
        subscription_factory: Optional[Callable[[str], object]] = None,
    ):
        self.config = config or StreamerConfig.from_settings()
        self.subscription_factory = subscription_factory or self._kafka_subscription

    def _kafka_subscription(self, topic_prefix: str) -> CDCTopicConsumer:
        return CDCTopicConsumer(
            bootstrap_servers=self.config.kafka_bootstrap_servers,
            topic_prefix=topic_prefix,
            poll_timeout=self.config.stream_poll_timeout,
        )

    def open(self, topic_prefix: str) -> EventSequence:
        """
        Start a new session for `topic_prefix`.

        Raises:
            BrokerConnectionError: the consumer could not be created
        """
        try:
            subscription = self.subscription_factory(topic_prefix)
        except KafkaException as e:
            raise BrokerConnectionError(f"Cannot create Kafka consumer for {topic_prefix}: {e}") from e

        sequence = EventSequence(
            topic_prefix,
            subscription,
            deliver_unrecognized=self.config.deliver_unrecognized,
            cancel_grace=self.config.stream_cancel_grace,
        )
        return sequence.start()
