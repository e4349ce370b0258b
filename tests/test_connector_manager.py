import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from cdcstreamer.utils.debezium import DebeziumConnectorManager, classify_connector_error, dumps_config
from streamer.exceptions import RegistrationError

REQUEST = 'cdcstreamer.utils.debezium.connector_manager.requests.request'


def response(status_code, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    if body is None:
        resp.text = ''
        resp.json.side_effect = ValueError('no body')
    else:
        resp.text = json.dumps(body)
        resp.json.return_value = body
    return resp


def not_found():
    return response(404, {'error_code': 404, 'message': 'Connector abc not found'})


def calls(mock_request):
    return [(c.args[0], c.args[1]) for c in mock_request.call_args_list]


class TestRegister:

    def test_creates_missing_connector(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=[not_found(), response(201, {'name': 'abc'})]) as mock_request:
            action = manager.register_connector('abc', {'tasks.max': '1'})

        assert action == 'created'
        assert calls(mock_request) == [
            ('GET', 'http://connect:8083/connectors/abc'),
            ('POST', 'http://connect:8083/connectors/'),
        ]
        assert mock_request.call_args.kwargs['json'] == {'name': 'abc', 'config': {'tasks.max': '1'}}
        assert mock_request.call_args.kwargs['timeout'] == 5.0

    def test_updates_existing_connector(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        existing = response(200, {'name': 'abc', 'config': {}})
        with patch(REQUEST, side_effect=[existing, response(200, {'name': 'abc'})]) as mock_request:
            action = manager.register_connector('abc', {'tasks.max': '1'})

        assert action == 'updated'
        assert calls(mock_request)[1] == ('PUT', 'http://connect:8083/connectors/abc/config')
        assert mock_request.call_args.kwargs['json'] == {'tasks.max': '1'}

    @pytest.mark.parametrize('message, kind', [
        ("Connector configuration is invalid: Access denied for user 'debezium'@'172.18.0.5'",
         RegistrationError.CREDENTIALS),
        ('Unable to connect: Communications link failure', RegistrationError.CONNECTIVITY),
        ('FATAL: password authentication failed for user "postgres"', RegistrationError.CREDENTIALS),
        ('Connector configuration is invalid: topic.prefix is required', RegistrationError.OTHER),
    ])
    def test_rejection_is_classified(self, message, kind, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        rejected = response(400, {'error_code': 400, 'message': message})
        with patch(REQUEST, side_effect=[not_found(), rejected]):
            with pytest.raises(RegistrationError) as exc_info:
                manager.register_connector('abc', {})

        assert exc_info.value.kind == kind
        assert exc_info.value.raw_error == message
        assert exc_info.value.status_code == 400

    def test_server_error(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=[not_found(), response(500, {'message': 'boom'})]):
            with pytest.raises(RegistrationError) as exc_info:
                manager.register_connector('abc', {})

        assert exc_info.value.kind == RegistrationError.OTHER
        assert exc_info.value.cause == 'boom'

    def test_unreachable_connect(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=requests.exceptions.ConnectionError('refused')):
            with pytest.raises(RegistrationError) as exc_info:
                manager.register_connector('abc', {})

        assert exc_info.value.kind == RegistrationError.CONNECTIVITY
        assert exc_info.value.status_code is None


class TestDelete:

    def test_delete_existing(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=[response(200, {'name': 'abc'}), response(204)]) as mock_request:
            assert manager.delete_connector('abc') == (True, None)

        assert calls(mock_request)[1] == ('DELETE', 'http://connect:8083/connectors/abc')

    def test_missing_connector_counts_as_deleted(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, return_value=not_found()) as mock_request:
            assert manager.delete_connector('abc') == (True, None)
        assert mock_request.call_count == 1

    def test_unreachable(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=requests.exceptions.Timeout()):
            success, error = manager.delete_connector('abc')

        assert not success
        assert 'timeout' in error.lower()

    def test_delete_rejected(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=[response(200, {}), response(409, {'message': 'rebalance in progress'})]):
            assert manager.delete_connector('abc') == (False, 'rebalance in progress')


class TestQueries:

    def test_health_and_listing(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=[response(200, {'version': '3.6.0'}), response(200, ['a', 'b'])]):
            assert manager.check_kafka_connect_health() == (True, None)
            assert manager.list_connectors() == ['a', 'b']

    def test_listing_when_unreachable(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, side_effect=requests.exceptions.ConnectionError('refused')):
            assert manager.list_connectors() == []

    def test_status(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        status = {'name': 'abc', 'connector': {'state': 'RUNNING'}, 'tasks': []}
        with patch(REQUEST, return_value=response(200, status)):
            assert manager.get_connector_status('abc') == (True, status)
        with patch(REQUEST, return_value=not_found()):
            assert manager.get_connector_status('abc') == (False, None)

    def test_get_connector_failure_raises(self, streamer_config):
        manager = DebeziumConnectorManager(streamer_config)
        with patch(REQUEST, return_value=response(503, {'message': 'unavailable'})):
            with pytest.raises(RegistrationError):
                manager.get_connector('abc')


class TestHelpers:

    def test_unknown_error_text_is_kept(self):
        assert classify_connector_error('weird') == (RegistrationError.OTHER, 'weird')

    def test_dumps_config_masks_passwords(self):
        rendered = dumps_config({'database.password': 'secret', 'database.user': 'debezium'})
        assert 'secret' not in rendered
        assert 'debezium' in rendered
