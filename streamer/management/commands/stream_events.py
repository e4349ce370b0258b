"""
Management command to follow a CDC stream from the terminal
"""

import json

from django.core.management.base import BaseCommand, CommandError

from streamer.events import DataChangeEvent, SchemaChangeEvent, event_to_payload, summarize
from streamer.exceptions import BrokerConnectionError, StreamError
from streamer.replication.relay import StreamRelay


class Command(BaseCommand):
    help = 'Stream CDC events for a topic prefix (profile id); Ctrl-C stops'

    def add_arguments(self, parser):
        parser.add_argument('topic_prefix', help='Topic prefix, i.e. the connection profile id')
        parser.add_argument(
            '--max-events',
            type=int,
            default=0,
            help='Stop after this many events (default: 0, unlimited)',
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Print each event as a JSON line',
        )
        parser.add_argument(
            '--diff',
            action='store_true',
            help='Print the before/after diff of row changes',
        )

    def get_relay(self):
        return StreamRelay()

    def handle(self, *args, **options):
        topic_prefix = options['topic_prefix']
        max_events = options['max_events']

        try:
            sequence = self.get_relay().open(topic_prefix)
        except BrokerConnectionError as e:
            raise CommandError(f'❌ {e}')

        self.stdout.write(self.style.SUCCESS(f'Streaming {topic_prefix} (group {sequence.consumer_group})'))
        count = 0
        try:
            for event in sequence:
                count += 1
                self._write_event(event, options)
                if max_events and count >= max_events:
                    break
        except StreamError as e:
            raise CommandError(f'❌ {e}')
        except KeyboardInterrupt:
            self.stdout.write('')
        finally:
            sequence.cancel()

        self.stdout.write(self.style.SUCCESS(f'Stopped after {count} event(s)'))

    def _write_event(self, event, options):
        if options['json']:
            self.stdout.write(json.dumps(event_to_payload(event), default=str))
            return

        line = f'[{event.offset}] {summarize(event)}'
        if isinstance(event, DataChangeEvent):
            self.stdout.write(self.style.SUCCESS(line))
            if options['diff']:
                for diff_line in event_to_payload(event)['diff']['lines']:
                    if diff_line['type'] == 'added':
                        self.stdout.write(self.style.SUCCESS(f'    + {diff_line["value"]}'))
                    elif diff_line['type'] == 'removed':
                        self.stdout.write(self.style.ERROR(f'    - {diff_line["value"]}'))
                    else:
                        self.stdout.write(f'      {diff_line["value"]}')
        elif isinstance(event, SchemaChangeEvent):
            self.stdout.write(self.style.WARNING(line))
        else:
            self.stdout.write(self.style.ERROR(line))
