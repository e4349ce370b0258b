"""
Envelope classifier: RawMessage -> DataChangeEvent | SchemaChangeEvent | UnrecognizedEvent

Pure function, no side effects. Every failure path returns an
UnrecognizedEvent carrying the reason, nothing is raised to the caller.
"""

import json
from typing import Any, Tuple

from pydantic import ValidationError

from streamer.exceptions import ParseError
from .envelope import DataChangePayload, SchemaChangePayload, unwrap_payload
from .models import (
    CDCEvent,
    DataChangeEvent,
    Operation,
    RawMessage,
    SchemaChangeEvent,
    TableChange,
    UnrecognizedEvent,
)

UNKNOWN_FORMAT = 'unknown message format'


def _parse_json(raw: str, side: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ParseError(f"Invalid JSON in message {side}: {e}") from e
    except RecursionError as e:
        raise ParseError(f"Invalid JSON in message {side}: nested too deeply") from e


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = '.'.join(str(p) for p in item.get('loc', ())) or '<root>'
        parts.append(f"{location}: {item.get('msg')}")
    return '; '.join(parts)


def _decode(raw: RawMessage) -> Tuple[Any, Any]:
    """Parse and unwrap both sides of the message"""
    if not raw.value_raw:
        raise ParseError('Empty value')
    if not raw.key_raw:
        raise ParseError('Empty key')

    key_payload = unwrap_payload(_parse_json(raw.key_raw, 'key'))
    value_payload = unwrap_payload(_parse_json(raw.value_raw, 'value'))
    return key_payload, value_payload


def _is_schema_change_key(key_payload: Any) -> bool:
    return isinstance(key_payload, dict) and isinstance(key_payload.get('databaseName'), str)


def _build_schema_change(raw: RawMessage, key_payload: Any, value_payload: Any) -> SchemaChangeEvent:
    try:
        payload = SchemaChangePayload.model_validate(value_payload)
    except ValidationError as e:
        raise ParseError(f"Validation failed: {_format_validation_error(e)}") from e

    return SchemaChangeEvent(
        topic=raw.topic,
        partition=raw.partition,
        offset=raw.offset,
        timestamp_ms=raw.timestamp_ms,
        headers=dict(raw.headers),
        key=key_payload,
        database_name=payload.database_name or key_payload.get('databaseName'),
        schema_name=payload.schema_name,
        ddl=payload.ddl,
        table_changes=tuple(
            TableChange(type=change.type, id=change.id, table_def=change.table)
            for change in payload.table_changes
        ),
        source=payload.source,
        ts_ms=payload.ts_ms,
    )


def _build_data_change(raw: RawMessage, key_payload: Any, value_payload: Any) -> DataChangeEvent:
    try:
        payload = DataChangePayload.model_validate(value_payload)
    except ValidationError as e:
        raise ParseError(f"Validation failed: {_format_validation_error(e)}") from e

    return DataChangeEvent(
        topic=raw.topic,
        partition=raw.partition,
        offset=raw.offset,
        timestamp_ms=raw.timestamp_ms,
        headers=dict(raw.headers),
        key=key_payload,
        before=payload.before,
        after=payload.after,
        source=payload.source,
        op=Operation(payload.op),
        ts_ms=payload.ts_ms,
        transaction=payload.transaction,
    )


def unrecognized(raw: RawMessage, reason: str) -> UnrecognizedEvent:
    return UnrecognizedEvent(
        topic=raw.topic,
        partition=raw.partition,
        offset=raw.offset,
        timestamp_ms=raw.timestamp_ms,
        headers=dict(raw.headers),
        key_raw=raw.key_raw,
        value_raw=raw.value_raw,
        parse_error=reason or UNKNOWN_FORMAT,
    )


def classify(raw: RawMessage) -> CDCEvent:
    """
    Discriminate a raw broker message into one of the three event variants.

    A schema change is recognised by its key carrying `databaseName`; a data
    change by its value carrying `op`. Anything else is unrecognized.
    """
    try:
        key_payload, value_payload = _decode(raw)

        if _is_schema_change_key(key_payload):
            return _build_schema_change(raw, key_payload, value_payload)

        if isinstance(value_payload, dict) and 'op' in value_payload:
            return _build_data_change(raw, key_payload, value_payload)

        return unrecognized(raw, UNKNOWN_FORMAT)

    except ParseError as e:
        return unrecognized(raw, str(e))
    except Exception as e:
        return unrecognized(raw, f"Unexpected error: {type(e).__name__}: {e}")
