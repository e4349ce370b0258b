"""
JSON rendering of CDC events for transports (SSE, terminal).
"""

import difflib
import json
from typing import Any, Dict, List, Optional

from .models import CDCEvent, DataChangeEvent, SchemaChangeEvent, UnrecognizedEvent


def _dump(record: Optional[Dict[str, Any]]) -> List[str]:
    # null is diffed as an empty object
    return json.dumps(record or {}, indent=2, sort_keys=True, default=str).splitlines()


def changed_columns(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> List[str]:
    before = before or {}
    after = after or {}
    columns = sorted(set(before) | set(after))
    return [c for c in columns if c not in before or c not in after or before[c] != after[c]]


def render_diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Line-level structural diff of two row images.

    Returns {'lines': [{'type': added|removed|unchanged, 'value': str}], 'changed_columns': [...]}
    """
    lines = []
    for line in difflib.ndiff(_dump(before), _dump(after)):
        marker, value = line[:2], line[2:]
        if marker == '+ ':
            lines.append({'type': 'added', 'value': value})
        elif marker == '- ':
            lines.append({'type': 'removed', 'value': value})
        elif marker == '  ':
            lines.append({'type': 'unchanged', 'value': value})
        # '? ' hint lines are dropped

    return {'lines': lines, 'changed_columns': changed_columns(before, after)}


def event_to_payload(event: CDCEvent) -> Dict[str, Any]:
    """Serialize an event into a JSON-safe dict"""
    payload = {
        'type': event.kind,
        'topic': event.topic,
        'partition': event.partition,
        'offset': event.offset,
        'timestamp': event.timestamp_ms,
    }

    if isinstance(event, DataChangeEvent):
        payload.update({
            'operation': event.op.value,
            'operation_label': event.op.label,
            'database': event.database,
            'table': event.table,
            'snapshot': event.source.snapshot_flag,
            'connector_version': event.source.version,
            'key': event.key,
            'before': event.before,
            'after': event.after,
            'ts_ms': event.ts_ms,
            'transaction': event.transaction.model_dump() if event.transaction else None,
            'diff': render_diff(event.before, event.after),
        })
    elif isinstance(event, SchemaChangeEvent):
        payload.update({
            'database_name': event.database_name,
            'schema_name': event.schema_name,
            'ddl': event.ddl,
            'table_changes': [
                {'type': change.type, 'id': change.id, 'table': change.table_def}
                for change in event.table_changes
            ],
            'ts_ms': event.ts_ms,
        })
    elif isinstance(event, UnrecognizedEvent):
        payload.update({
            'parse_error': event.parse_error,
            'key_raw': event.key_raw,
            'value_raw': event.value_raw,
        })

    return payload


def summarize(event: CDCEvent) -> str:
    """One-line description for terminal output"""
    if isinstance(event, DataChangeEvent):
        columns = changed_columns(event.before, event.after)
        suffix = f" [{', '.join(columns)}]" if event.op.label == 'update' and columns else ''
        return f"{event.op.label.upper():<9} {event.database}.{event.table}{suffix}"
    if isinstance(event, SchemaChangeEvent):
        ddl = (event.ddl or '').strip().splitlines()
        return f"DDL       {event.database_name}: {ddl[0] if ddl else '<no ddl>'}"
    return f"UNKNOWN   {event.parse_error}"
