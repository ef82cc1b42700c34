"""
Local database schema and additive migrations.

Tables are declared explicitly instead of through model decorators. Every
table shares the record columns (id, payload, sync_status, timestamps);
the columns declared on a TableSchema are projections of payload fields
kept in real columns so they can be filtered and indexed.

Migration contract:
- The tables below always describe the latest version.
- Released versions are never edited. Every change is a new Migration
  with the next to_version whose steps only add (AddColumns, CreateTable).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..exceptions import SchemaMigrationError

# Columns every record table carries
RECORD_COLUMNS = (
    "id",
    "payload",
    "sync_status",
    "created_at",
    "updated_at",
    "server_updated_at",
)

_SQL_TYPES = {
    "string": "TEXT",
    "number": "REAL",
    "boolean": "INTEGER",
}


@dataclass(frozen=True)
class ColumnSchema:
    """A payload field projected into its own column."""

    name: str
    type: str = "string"
    indexed: bool = False

    def __post_init__(self) -> None:
        if self.type not in _SQL_TYPES:
            raise SchemaMigrationError(f"unknown column type {self.type!r} for {self.name}")
        if self.name in RECORD_COLUMNS:
            raise SchemaMigrationError(f"column {self.name!r} is reserved")

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self.type]


@dataclass(frozen=True)
class TableSchema:
    """Declaration of one local table."""

    name: str
    columns: tuple[ColumnSchema, ...] = ()

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def create_statements(self) -> list[str]:
        """SQL creating the table and its indexes."""
        column_defs = [
            "id TEXT NOT NULL PRIMARY KEY",
            "payload TEXT NOT NULL",
            "sync_status TEXT NOT NULL",
            "created_at TEXT NOT NULL",
            "updated_at TEXT NOT NULL",
            "server_updated_at TEXT",
        ]
        column_defs.extend(f"{c.name} {c.sql_type}" for c in self.columns)
        statements = [
            f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(column_defs) + "\n)",
            f"CREATE INDEX IF NOT EXISTS idx_{self.name}_sync_status "
            f"ON {self.name}(sync_status)",
        ]
        statements.extend(_index_statement(self.name, c) for c in self.columns if c.indexed)
        return statements


def _index_statement(table: str, column: ColumnSchema) -> str:
    return f"CREATE INDEX IF NOT EXISTS idx_{table}_{column.name} ON {table}({column.name})"


@dataclass(frozen=True)
class AddColumns:
    """Migration step adding projected columns to an existing table."""

    table: str
    columns: tuple[ColumnSchema, ...]

    def statements(self) -> list[str]:
        statements = [
            f"ALTER TABLE {self.table} ADD COLUMN {c.name} {c.sql_type}" for c in self.columns
        ]
        statements.extend(_index_statement(self.table, c) for c in self.columns if c.indexed)
        return statements


@dataclass(frozen=True)
class CreateTable:
    """Migration step creating a new table."""

    table: TableSchema

    def statements(self) -> list[str]:
        return self.table.create_statements()


MigrationStep = AddColumns | CreateTable


@dataclass(frozen=True)
class Migration:
    """Steps bringing the database up to to_version."""

    to_version: int
    steps: tuple[MigrationStep, ...]


@dataclass(frozen=True)
class AppSchema:
    """Full local schema: current version, tables and migration history."""

    version: int
    tables: tuple[TableSchema, ...]
    migrations: tuple[Migration, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        validate_migrations(self.migrations, self.version)

    def table(self, name: str) -> TableSchema:
        for table in self.tables:
            if table.name == name:
                return table
        raise SchemaMigrationError(f"unknown table {name!r}")

    def migrations_after(self, from_version: int) -> list[Migration]:
        """Migrations needed to go from from_version to the current version."""
        if from_version > self.version:
            raise SchemaMigrationError(
                "database is newer than this client", from_version, self.version
            )
        needed = [m for m in self.migrations if m.to_version > from_version]
        expected = list(range(from_version + 1, self.version + 1))
        if [m.to_version for m in needed] != expected:
            raise SchemaMigrationError("no migration path", from_version, self.version)
        return needed


def validate_migrations(migrations: tuple[Migration, ...], schema_version: int) -> None:
    """Check that migrations form a gap-free, increasing chain ending at or before schema_version.

    Raises:
        SchemaMigrationError: On out-of-order, duplicate, skipped or future versions
    """
    if schema_version < 1:
        raise SchemaMigrationError(f"schema version must be >= 1, got {schema_version}")

    previous: int | None = None
    for migration in migrations:
        if migration.to_version < 2:
            raise SchemaMigrationError(
                f"migration to_version must be >= 2, got {migration.to_version}"
            )
        if migration.to_version > schema_version:
            raise SchemaMigrationError(
                "migration targets a version beyond the schema",
                to_version=migration.to_version,
            )
        if previous is not None and migration.to_version != previous + 1:
            raise SchemaMigrationError(
                "migrations must be consecutive", previous, migration.to_version
            )
        if not migration.steps:
            raise SchemaMigrationError("migration has no steps", to_version=migration.to_version)
        previous = migration.to_version


# =============================================================================
# Current schema
# =============================================================================

NOTES_TABLE = TableSchema(
    name="notes",
    columns=(
        ColumnSchema("sermon_id", indexed=True),
        ColumnSchema("member_id", indexed=True),
        ColumnSchema("is_shared", "boolean"),
    ),
)

ATTENDANCE_TABLE = TableSchema(
    name="attendance",
    columns=(
        ColumnSchema("member_id", indexed=True),
        ColumnSchema("event_date", indexed=True),
        ColumnSchema("status"),
    ),
)

MEMBERS_TABLE = TableSchema(
    name="members",
    columns=(
        ColumnSchema("name", indexed=True),
        ColumnSchema("name_chosung", indexed=True),
        ColumnSchema("status"),
    ),
)

SERMONS_TABLE = TableSchema(
    name="sermons",
    columns=(
        ColumnSchema("church_id", indexed=True),
        ColumnSchema("date", indexed=True),
    ),
)

ANNOUNCEMENTS_TABLE = TableSchema(
    name="announcements",
    columns=(
        ColumnSchema("church_id", indexed=True),
        ColumnSchema("is_pinned", "boolean"),
    ),
)

# Version history:
# - v1: initial schema
DEFAULT_SCHEMA = AppSchema(
    version=1,
    tables=(NOTES_TABLE, ATTENDANCE_TABLE, MEMBERS_TABLE, SERMONS_TABLE, ANNOUNCEMENTS_TABLE),
    migrations=(),
)
