from .classifier import classify
from .models import (
    CDCEvent,
    DataChangeEvent,
    Operation,
    RawMessage,
    SchemaChangeEvent,
    TableChange,
    UnrecognizedEvent,
)
from .rendering import event_to_payload, render_diff, summarize

__all__ = [
    'classify',
    'CDCEvent',
    'DataChangeEvent',
    'Operation',
    'RawMessage',
    'SchemaChangeEvent',
    'TableChange',
    'UnrecognizedEvent',
    'event_to_payload',
    'render_diff',
    'summarize',
]
