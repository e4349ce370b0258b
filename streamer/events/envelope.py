"""
Structural schemas for Debezium JSON envelopes.

Debezium's JsonConverter wraps every key and value as {"schema", "payload"}.
The data-change and schema-change payload shapes are mutually exclusive:
a data change must carry `op`, a schema change must not, and must carry
`ddl` or `tableChanges`.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


SNAPSHOT_FALSE_VALUES = (None, False, 'false')


class DebeziumSource(BaseModel):
    """Source metadata; only the commonly used fields are checked"""

    model_config = ConfigDict(extra='allow', frozen=True, populate_by_name=True)

    version: str
    connector: str
    name: str
    ts_ms: int
    db: str
    table: Optional[str] = None
    snapshot: Union[str, bool, None] = None
    schema_name: Optional[str] = Field(default=None, alias='schema')

    # MySQL binlog position
    file: Optional[str] = None
    pos: Optional[int] = None

    # PostgreSQL LSN
    lsn: Optional[int] = None

    @property
    def snapshot_flag(self) -> bool:
        return self.snapshot not in SNAPSHOT_FALSE_VALUES


class DebeziumTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    total_order: int
    data_collection_order: int


class DataChangePayload(BaseModel):
    """INSERT / UPDATE / DELETE / snapshot READ / TRUNCATE"""

    # before/after are required keys but may be null
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    source: DebeziumSource
    op: Literal['c', 'u', 'd', 'r', 't']
    ts_ms: int
    transaction: Optional[DebeziumTransaction] = None


class TableChangePayload(BaseModel):
    type: Literal['CREATE', 'ALTER', 'DROP']
    id: str
    table: Optional[Any] = None


class SchemaChangePayload(BaseModel):
    """DDL event emitted on the topic-prefix topic"""

    model_config = ConfigDict(populate_by_name=True)

    source: DebeziumSource
    ts_ms: int
    database_name: Optional[str] = Field(default=None, alias='databaseName')
    schema_name: Optional[str] = Field(default=None, alias='schemaName')
    ddl: Optional[str] = None
    table_changes: List[TableChangePayload] = Field(default_factory=list, alias='tableChanges')

    @model_validator(mode='before')
    @classmethod
    def _require_ddl_shape(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if 'op' in data:
                raise ValueError('payload carries an operation, not a schema change')
            if 'ddl' not in data and 'tableChanges' not in data:
                raise ValueError('payload has neither ddl nor tableChanges')
        return data


def unwrap_payload(document: Any) -> Any:
    """Strip the {"schema", "payload"} envelope; schemaless messages pass through"""
    if isinstance(document, dict) and 'payload' in document and 'schema' in document:
        return document['payload']
    return document
