"""Database sink: writes records to a table using SQLAlchemy Core."""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    insert,
    inspect,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeEngine

from batchflow.connectors.base import BaseSink
from batchflow.connectors.config_base import DatabaseConfig


class DatabaseSinkConfig(DatabaseConfig):
    """Configuration for the database sink."""

    key_column: str = "id"


def _column_type(value: Any) -> TypeEngine[Any]:
    """Infer a column type from a sample value."""
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return Boolean()
    if isinstance(value, int):
        return Integer()
    if isinstance(value, float):
        return Float()
    if isinstance(value, (dict, list)):
        return JSON()
    return Text()


class DatabaseSink(BaseSink):
    """Write records to a database table.

    Reuses the table when it already exists; otherwise creates it on first
    write, inferring column types from that record. write_batch() is one
    bulk INSERT.

    Config options:
        url: Database connection URL (required)
        table: Table name (required)
        key_column: Column find()/update() match on (default: "id")
    """

    name = "database"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = DatabaseSinkConfig.from_dict(config)
        self._url = cfg.url
        self._table_name = cfg.table
        self._key_column = cfg.key_column

        self._engine: Engine | None = None
        self._table: Table | None = None
        self._metadata: MetaData | None = None

    def _get_engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self._url)
            self._metadata = MetaData()
        return self._engine

    def _existing_table(self) -> Table | None:
        """The target table if it exists, reflected once."""
        if self._table is not None:
            return self._table
        engine = self._get_engine()
        if not inspect(engine).has_table(self._table_name):
            return None
        assert self._metadata is not None
        self._table = Table(self._table_name, self._metadata, autoload_with=engine)
        return self._table

    def _ensure_table(self, record: dict[str, Any]) -> Table:
        """Create table if it doesn't exist, inferring schema from record."""
        table = self._existing_table()
        if table is not None:
            return table

        # No primary key: replayed windows may insert the same key twice
        columns = [Column(key, _column_type(value)) for key, value in record.items()]
        # Metadata is always set when engine is created
        assert self._metadata is not None
        self._table = Table(self._table_name, self._metadata, *columns)
        self._metadata.create_all(self._get_engine(), checkfirst=True)
        return self._table

    def write(self, record: dict[str, Any]) -> None:
        self.write_batch([record])

    def write_batch(self, records: list[dict[str, Any]]) -> None:
        """Insert all records in one statement."""
        if not records:
            return
        table = self._ensure_table(records[0])
        with self._get_engine().begin() as conn:
            conn.execute(insert(table), records)

    def find(self, key: Any) -> dict[str, Any] | None:
        table = self._existing_table()
        if table is None:
            return None
        query = select(table).where(table.c[self._key_column] == key).limit(1)
        with self._get_engine().connect() as conn:
            row = conn.execute(query).fetchone()
        return dict(row._mapping) if row is not None else None

    def update(self, key: Any, record: dict[str, Any]) -> None:
        """Overwrite the row with this key.

        Raises:
            KeyError: If no row has this key
        """
        table = self._ensure_table(record)
        stmt = update(table).where(table.c[self._key_column] == key).values(**record)
        with self._get_engine().begin() as conn:
            result = conn.execute(stmt)
        if result.rowcount == 0:
            raise KeyError(
                f"No row with {self._key_column}={key!r} in table '{self._table_name}'"
            )

    def flush(self) -> None:
        """No-op - writes are immediate."""

    def close(self) -> None:
        """Close database connection."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._table = None
            self._metadata = None
