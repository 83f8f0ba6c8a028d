"""Database source: pages through a table by its id column.

Reads with SQLAlchemy Core. The table is reflected on first use; nothing is
created or modified.
"""

from collections.abc import Iterator
from typing import Any

from sqlalchemy import MetaData, Table, create_engine, select
from sqlalchemy.engine import Engine

from batchflow.connectors.base import BaseSource
from batchflow.connectors.config_base import DatabaseConfig


class DatabaseSourceConfig(DatabaseConfig):
    """Configuration for the database source."""

    id_column: str = "id"
    columns: list[str] | None = None


class DatabaseSource(BaseSource):
    """Yield rows of a table with id > cursor, ordered by id.

    Each page is one ``SELECT ... WHERE id > :cursor ORDER BY id LIMIT
    :batch_size``; the next page starts after the last id seen, so the
    generator stays lazy however many rows the table holds.

    Config options:
        url: Database connection URL (required)
        table: Table name (required)
        id_column: Cursor column (default: "id")
        columns: Columns to read (default: all)
    """

    name = "database"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = DatabaseSourceConfig.from_dict(config)
        self._url = cfg.url
        self._table_name = cfg.table
        self._id_column = cfg.id_column
        self._columns = cfg.columns

        self._engine: Engine | None = None
        self._table: Table | None = None

    def _ensure_table(self) -> Table:
        """Reflect the table on first use."""
        if self._engine is None:
            self._engine = create_engine(self._url)
        if self._table is None:
            self._table = Table(self._table_name, MetaData(), autoload_with=self._engine)
            if self._id_column not in self._table.c:
                raise ValueError(
                    f"Table '{self._table_name}' has no column '{self._id_column}'"
                )
        return self._table

    def iter_records(
        self, batch_size: int, start_cursor: Any = None
    ) -> Iterator[dict[str, Any]]:
        table = self._ensure_table()
        assert self._engine is not None
        id_col = table.c[self._id_column]
        if self._columns:
            names = self._columns
            if self._id_column not in names:
                names = [self._id_column, *names]
            selected: list[Any] = [table.c[name] for name in names]
        else:
            selected = [table]
        page_size = max(1, batch_size)

        cursor = start_cursor
        while True:
            query = select(*selected).order_by(id_col).limit(page_size)
            if cursor is not None:
                query = query.where(id_col > cursor)
            with self._engine.connect() as conn:
                rows = [dict(row._mapping) for row in conn.execute(query)]

            yield from rows

            if len(rows) < page_size:
                return
            cursor = rows[-1][self._id_column]

    def close(self) -> None:
        """Close database connection."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._table = None
