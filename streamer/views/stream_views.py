"""
Server-sent events transport for relay sessions.

One HTTP connection = one relay session. The session is opened when the
response starts streaming and cancelled when the response iterator is
closed, so a client that leaves before the first frame never subscribes.
"""

import json
import logging

from django.http import StreamingHttpResponse
from django.views.decorators.http import require_GET

from streamer.events import event_to_payload
from streamer.exceptions import BrokerConnectionError, StreamError
from streamer.replication.relay import StreamRelay

logger = logging.getLogger(__name__)


def get_stream_relay():
    return StreamRelay()


def format_sse(event, data, event_id=None):
    lines = []
    if event_id is not None:
        lines.append(f'id: {event_id}')
    lines.append(f'event: {event}')
    lines.append(f'data: {json.dumps(data, default=str)}')
    return '\n'.join(lines) + '\n\n'


def sse_event_stream(sequence, keepalive_interval):
    """
    Render a relay session as SSE frames.

    Each event carries the resumption id `{sequence number}-{offset}`; idle
    periods emit keep-alive comments so dead clients are noticed.
    """
    sequence_number = 0
    try:
        yield format_sse('open', {'topic_prefix': sequence.topic_prefix})
        while True:
            try:
                event = sequence.get(timeout=keepalive_interval)
            except StreamError as e:
                yield format_sse('error', {
                    'error': str(e),
                    'reconnect': True,
                    'message': 'The change stream was interrupted. Open a new stream session.',
                })
                break

            if event is None:
                if sequence.closed:
                    break
                yield ': keep-alive\n\n'
                continue

            sequence_number += 1
            yield format_sse(event.kind, event_to_payload(event), event_id=f'{sequence_number}-{event.offset}')
    finally:
        sequence.cancel()


def open_event_stream(relay, topic_prefix):
    """Open the relay session on first iteration and render it as SSE frames"""
    try:
        sequence = relay.open(topic_prefix)
    except BrokerConnectionError as e:
        logger.error(f'Failed to open stream for {topic_prefix}: {e}')
        yield format_sse('error', {
            'error': str(e),
            'reconnect': True,
            'message': 'The change stream could not be opened. Retry shortly.',
        })
        return

    yield from sse_event_stream(sequence, relay.config.stream_keepalive_interval)


@require_GET
def stream_events(request, topic_prefix):
    """Stream CDC events for one topic prefix (profile id)."""
    response = StreamingHttpResponse(
        open_event_stream(get_stream_relay(), topic_prefix),
        content_type='text/event-stream',
    )
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response
