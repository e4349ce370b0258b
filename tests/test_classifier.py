import json

import pytest

from streamer.events import (
    DataChangeEvent,
    Operation,
    SchemaChangeEvent,
    UnrecognizedEvent,
    classify,
    event_to_payload,
    render_diff,
)
from tests.factories import data_change, raw_message, schema_change, wrap


class TestDataChanges:

    def test_insert_is_data_change(self):
        raw = raw_message(data_change('c', after={'id': 1, 'name': 'Ada'}), offset=7)
        event = classify(raw)

        assert isinstance(event, DataChangeEvent)
        assert event.op is Operation.CREATE
        assert event.op.label == 'insert'
        assert event.after == {'id': 1, 'name': 'Ada'}
        assert event.before is None
        assert event.database == 'inventory'
        assert event.table == 'customers'
        assert event.identity == ('src.all-changes', 7)
        assert event.key == {'id': 1}

    @pytest.mark.parametrize('code, label', [
        ('c', 'insert'),
        ('u', 'update'),
        ('d', 'delete'),
        ('r', 'snapshot'),
        ('t', 'truncate'),
    ])
    def test_operation_labels(self, code, label):
        event = classify(raw_message(data_change(code, before={'id': 1}, after={'id': 1})))
        assert isinstance(event, DataChangeEvent)
        assert event.op.label == label

    def test_unknown_operation_is_rejected(self):
        event = classify(raw_message(data_change('x', after={'id': 1})))
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error.startswith('Validation failed')
        assert 'op' in event.parse_error

    def test_schemaless_value_is_accepted(self):
        payload = data_change('u', before={'id': 1}, after={'id': 2})['payload']
        event = classify(raw_message(payload, key={'id': 1}))
        assert isinstance(event, DataChangeEvent)
        assert event.op is Operation.UPDATE

    def test_snapshot_flag_and_transaction(self):
        value = data_change(
            'r',
            after={'id': 1},
            transaction={'id': 'tx-1', 'total_order': 3, 'data_collection_order': 1},
        )
        value['payload']['source']['snapshot'] = 'true'
        event = classify(raw_message(value))

        assert event.source.snapshot_flag is True
        assert event.transaction.id == 'tx-1'


class TestSchemaChanges:

    def test_database_name_key_means_schema_change(self):
        raw = raw_message(schema_change(), key=wrap({'databaseName': 'inventory'}), topic='src')
        event = classify(raw)

        assert isinstance(event, SchemaChangeEvent)
        assert event.database_name == 'inventory'
        assert event.ddl.startswith('CREATE TABLE')
        assert event.table_changes[0].type == 'CREATE'
        assert event.table_changes[0].id == '"inventory"."customers"'

    def test_schema_key_with_operation_value_is_unrecognized(self):
        raw = raw_message(data_change('c', after={'id': 1}), key=wrap({'databaseName': 'inventory'}))
        event = classify(raw)
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error.startswith('Validation failed')

    def test_schema_change_without_ddl_shape_is_unrecognized(self):
        value = schema_change()
        del value['payload']['ddl']
        del value['payload']['tableChanges']
        event = classify(raw_message(value, key=wrap({'databaseName': 'inventory'})))
        assert isinstance(event, UnrecognizedEvent)


class TestUnrecognized:

    def test_before_after_without_op(self):
        value = wrap({'before': {'id': 1}, 'after': {'id': 2}})
        event = classify(raw_message(value, key=wrap({'id': 1})))

        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error == 'unknown message format'

    def test_empty_value(self):
        raw = raw_message(None)
        event = classify(raw)
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error == 'Empty value'

    def test_empty_key(self):
        raw = raw_message(data_change('c', after={'id': 1}), key='')
        event = classify(raw)
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error == 'Empty key'

    def test_invalid_json(self):
        event = classify(raw_message('{not json'))
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error.startswith('Invalid JSON in message value')
        assert event.value_raw == '{not json'

    def test_deeply_nested_json(self):
        deep = '[' * 100000 + ']' * 100000
        event = classify(raw_message(deep))

        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error.startswith('Invalid JSON in message value')

    @pytest.mark.parametrize('value', ['null', '[]', '42', '"text"', '{}', '{"payload": null, "schema": null}'])
    def test_never_raises(self, value):
        event = classify(raw_message(value))
        assert isinstance(event, UnrecognizedEvent)
        assert event.parse_error


class TestRendering:

    def test_update_diff(self):
        diff = render_diff({'id': 1, 'name': 'Ada'}, {'id': 1, 'name': 'Grace'})

        assert diff['changed_columns'] == ['name']
        assert {'type': 'removed', 'value': '  "name": "Ada"'} in diff['lines']
        assert {'type': 'added', 'value': '  "name": "Grace"'} in diff['lines']
        assert {'type': 'unchanged', 'value': '  "id": 1,'} in diff['lines']

    def test_insert_diff_treats_null_as_empty(self):
        diff = render_diff(None, {'id': 1})
        assert diff['changed_columns'] == ['id']
        assert any(line['type'] == 'added' for line in diff['lines'])

    def test_payload_is_json_serializable(self):
        event = classify(raw_message(data_change('u', before={'id': 1, 'n': 1}, after={'id': 1, 'n': 2}), offset=3))
        payload = event_to_payload(event)

        assert payload['type'] == 'data-change'
        assert payload['operation_label'] == 'update'
        assert payload['diff']['changed_columns'] == ['n']
        json.dumps(payload)

    def test_unrecognized_payload(self):
        payload = event_to_payload(classify(raw_message('oops')))
        assert payload['type'] == 'unrecognized'
        assert payload['parse_error']
