from io import StringIO
from unittest.mock import MagicMock, patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from streamer.events import classify
from streamer.exceptions import BrokerConnectionError, ProfileNotFound, StreamError
from streamer.handlers import StepStatus, ValidationReport, ValidationStep
from tests.factories import data_change, make_profile, raw_message

NOT_READY = ValidationReport([
    ValidationStep('Database Connection', StepStatus.SUCCESS, 'connected'),
    ValidationStep('Binlog Format', StepStatus.ERROR, 'Binlog format is MIXED, must be ROW',
                   "Run: SET GLOBAL binlog_format = 'ROW';", fixable=True),
])
READY = ValidationReport([ValidationStep('Database Connection', StepStatus.SUCCESS, 'connected')])


@pytest.fixture()
def lifecycle():
    with patch('streamer.management.commands.check_source.ConnectorLifecycleManager') as manager_class:
        manager = manager_class.return_value
        manager.get_profile.return_value = make_profile()
        yield manager


class TestCheckSource:

    def test_ready(self, lifecycle):
        lifecycle.validate_profile.return_value = READY
        out = StringIO()

        call_command('check_source', 'some-id', stdout=out)

        assert 'ready for CDC' in out.getvalue()
        lifecycle.fix_profile.assert_not_called()

    def test_not_ready_suggests_fix(self, lifecycle):
        lifecycle.validate_profile.return_value = NOT_READY
        out = StringIO()

        with pytest.raises(CommandError, match='--fix'):
            call_command('check_source', 'some-id', stdout=out)

        assert "SET GLOBAL binlog_format = 'ROW'" in out.getvalue()

    def test_fix(self, lifecycle):
        lifecycle.fix_profile.return_value = READY

        call_command('check_source', 'some-id', '--fix', stdout=StringIO())

        lifecycle.fix_profile.assert_called_once()

    def test_unknown_profile(self, lifecycle):
        lifecycle.get_profile.side_effect = ProfileNotFound('Connection profile x not found')
        with pytest.raises(CommandError):
            call_command('check_source', 'x', stdout=StringIO())


class ScriptedSequence:
    consumer_group = 'cdc-stream-test'

    def __init__(self, items):
        self.items = list(items)
        self.cancelled = False

    def __iter__(self):
        for item in self.items:
            if isinstance(item, Exception):
                raise item
            yield item

    def cancel(self):
        self.cancelled = True


@pytest.fixture()
def relay():
    with patch('streamer.management.commands.stream_events.StreamRelay') as relay_class:
        yield relay_class.return_value


class TestStreamEvents:

    def events(self):
        return [
            classify(raw_message(data_change('u', before={'id': 1, 'n': 1}, after={'id': 1, 'n': 2}), offset=i))
            for i in range(3)
        ]

    def test_stops_after_max_events(self, relay):
        sequence = ScriptedSequence(self.events())
        relay.open.return_value = sequence
        out = StringIO()

        call_command('stream_events', 'src', '--max-events', '2', '--diff', stdout=out)

        output = out.getvalue()
        assert 'UPDATE' in output
        assert '"n": 2' in output
        assert 'Stopped after 2 event(s)' in output
        assert sequence.cancelled

    def test_json_output(self, relay):
        relay.open.return_value = ScriptedSequence(self.events()[:1])
        out = StringIO()

        call_command('stream_events', 'src', '--json', stdout=out)

        assert '"operation_label": "update"' in out.getvalue()

    def test_broker_unavailable(self, relay):
        relay.open.side_effect = BrokerConnectionError('no brokers')
        with pytest.raises(CommandError):
            call_command('stream_events', 'src', stdout=StringIO())

    def test_stream_failure(self, relay):
        sequence = ScriptedSequence([StreamError('subscription lost')])
        relay.open.return_value = sequence

        with pytest.raises(CommandError, match='subscription lost'):
            call_command('stream_events', 'src', stdout=StringIO())

        assert sequence.cancelled
