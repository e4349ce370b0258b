"""
CDC event types relayed to clients.

RawMessage is what the broker client hands over; the three event variants
are what the classifier turns it into. Identity of every event is
(topic, offset).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from .envelope import DebeziumSource, DebeziumTransaction


@dataclass(frozen=True)
class RawMessage:
    topic: str
    partition: int
    offset: int
    timestamp_ms: Optional[int]
    headers: Dict[str, Optional[str]] = field(default_factory=dict)
    key_raw: Optional[str] = None
    value_raw: Optional[str] = None

    @property
    def identity(self) -> Tuple[str, int]:
        return self.topic, self.offset


class Operation(Enum):
    """Debezium operation codes"""

    CREATE = 'c'
    UPDATE = 'u'
    DELETE = 'd'
    READ = 'r'
    TRUNCATE = 't'

    @property
    def label(self) -> str:
        """Name shown to operators"""
        return OPERATION_LABELS[self]


OPERATION_LABELS = {
    Operation.CREATE: 'insert',
    Operation.UPDATE: 'update',
    Operation.DELETE: 'delete',
    Operation.READ: 'snapshot',
    Operation.TRUNCATE: 'truncate',
}


@dataclass(frozen=True)
class TableChange:
    type: str  # CREATE | ALTER | DROP
    id: str
    table_def: Optional[Any] = None


@dataclass(frozen=True)
class CDCEventBase:
    topic: str
    partition: int
    offset: int
    timestamp_ms: Optional[int]
    headers: Dict[str, Optional[str]]

    kind: ClassVar[str] = ''

    @property
    def identity(self) -> Tuple[str, int]:
        return self.topic, self.offset


@dataclass(frozen=True)
class DataChangeEvent(CDCEventBase):
    key: Any
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    source: DebeziumSource
    op: Operation
    ts_ms: int
    transaction: Optional[DebeziumTransaction] = None

    kind: ClassVar[str] = 'data-change'

    @property
    def table(self) -> Optional[str]:
        return self.source.table

    @property
    def database(self) -> str:
        return self.source.db


@dataclass(frozen=True)
class SchemaChangeEvent(CDCEventBase):
    key: Any
    database_name: Optional[str]
    schema_name: Optional[str]
    ddl: Optional[str]
    table_changes: Tuple[TableChange, ...]
    source: DebeziumSource
    ts_ms: int

    kind: ClassVar[str] = 'schema-change'


@dataclass(frozen=True)
class UnrecognizedEvent(CDCEventBase):
    key_raw: Optional[str]
    value_raw: Optional[str]
    parse_error: str

    kind: ClassVar[str] = 'unrecognized'


CDCEvent = Union[DataChangeEvent, SchemaChangeEvent, UnrecognizedEvent]
