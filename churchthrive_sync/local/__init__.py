"""
Local persistence: SQLite record store, schema and audio chunk files.
"""

from .blobs import AudioChunkStore
from .schema import (
    DEFAULT_SCHEMA,
    AddColumns,
    AppSchema,
    ColumnSchema,
    CreateTable,
    Migration,
    TableSchema,
    validate_migrations,
)
from .store import LocalStore

__all__ = [
    "LocalStore",
    "AudioChunkStore",
    "AppSchema",
    "TableSchema",
    "ColumnSchema",
    "Migration",
    "AddColumns",
    "CreateTable",
    "DEFAULT_SCHEMA",
    "validate_migrations",
]
