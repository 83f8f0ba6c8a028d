"""Tests for built-in sources."""

import json
from pathlib import Path
from typing import Any

import pytest


class TestMemorySource:
    """Records held in the descriptor."""

    def test_yields_in_id_order(self) -> None:
        from batchflow.connectors.sources import MemorySource

        source = MemorySource({"records": [{"id": 3}, {"id": 1}, {"id": 2}]})

        assert [r["id"] for r in source.iter_records(10)] == [1, 2, 3]

    def test_respects_start_cursor(self) -> None:
        from batchflow.connectors.sources import MemorySource

        source = MemorySource({"records": [{"id": i} for i in range(1, 6)]})

        assert [r["id"] for r in source.iter_records(10, start_cursor=3)] == [4, 5]

    def test_custom_id_field(self) -> None:
        from batchflow.connectors.sources import MemorySource

        source = MemorySource({"records": [{"seq": "b"}, {"seq": "a"}], "id_field": "seq"})

        assert list(source.iter_records(10, start_cursor="a")) == [{"seq": "b"}]

    def test_missing_id_rejected(self) -> None:
        from batchflow.connectors import PluginConfigError
        from batchflow.connectors.sources import MemorySource

        with pytest.raises(PluginConfigError, match="has no 'id' field"):
            MemorySource({"records": [{"id": 1}, {"name": "x"}]})

    def test_yielded_records_are_copies(self) -> None:
        from batchflow.connectors.sources import MemorySource

        source = MemorySource({"records": [{"id": 1, "tags": ["a"]}]})
        first = next(iter(source.iter_records(1)))
        first["tags"].append("b")

        assert next(iter(source.iter_records(1)))["tags"] == ["a"]


class TestJSONLSource:
    """Records read from a JSON-lines file."""

    @pytest.fixture
    def data_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "input.jsonl"
        rows = [{"id": 2, "name": "b"}, {"id": 1, "name": "a"}, {"id": 3, "name": "c"}]
        path.write_text("\n".join(json.dumps(r) for r in rows) + "\n\n")
        return path

    def test_reads_sorted_records(self, data_file: Path) -> None:
        from batchflow.connectors.sources import JSONLSource

        source = JSONLSource({"path": str(data_file)})

        assert [r["name"] for r in source.iter_records(10)] == ["a", "b", "c"]

    def test_start_cursor(self, data_file: Path) -> None:
        from batchflow.connectors.sources import JSONLSource

        source = JSONLSource({"path": str(data_file)})

        assert [r["id"] for r in source.iter_records(10, start_cursor=1)] == [2, 3]

    def test_appended_lines_picked_up(self, data_file: Path) -> None:
        from batchflow.connectors.sources import JSONLSource

        source = JSONLSource({"path": str(data_file)})
        assert len(list(source.iter_records(10, start_cursor=3))) == 0

        with open(data_file, "a") as f:
            f.write(json.dumps({"id": 4, "name": "d"}) + "\n")

        assert [r["id"] for r in source.iter_records(10, start_cursor=3)] == [4]

    def test_missing_file(self, tmp_path: Path) -> None:
        from batchflow.connectors.sources import JSONLSource

        source = JSONLSource({"path": str(tmp_path / "nope.jsonl")})

        with pytest.raises(FileNotFoundError):
            list(source.iter_records(10))

    def test_line_without_id(self, tmp_path: Path) -> None:
        from batchflow.connectors.sources import JSONLSource

        path = tmp_path / "bad.jsonl"
        path.write_text('{"id": 1}\n{"name": "x"}\n')

        with pytest.raises(ValueError, match="bad.jsonl:2"):
            list(JSONLSource({"path": str(path)}).iter_records(10))

    def test_empty_path_rejected(self) -> None:
        from batchflow.connectors import PluginConfigError
        from batchflow.connectors.sources import JSONLSource

        with pytest.raises(PluginConfigError):
            JSONLSource({"path": "  "})


class TestDatabaseSource:
    """Rows paged out of a SQL table."""

    @pytest.fixture
    def db_url(self, tmp_path: Path) -> str:
        from sqlalchemy import Column, Integer, MetaData, Table, Text, create_engine, insert

        url = f"sqlite:///{tmp_path / 'source.db'}"
        engine = create_engine(url)
        metadata = MetaData()
        users = Table(
            "users",
            metadata,
            Column("id", Integer, primary_key=True),
            Column("name", Text),
            Column("email", Text),
        )
        metadata.create_all(engine)
        with engine.begin() as conn:
            conn.execute(
                insert(users),
                [{"id": i, "name": f"user-{i}", "email": f"u{i}@example.com"} for i in range(1, 8)],
            )
        engine.dispose()
        return url

    def test_pages_through_table(self, db_url: str) -> None:
        from batchflow.connectors.sources import DatabaseSource

        with DatabaseSource({"url": db_url, "table": "users"}) as source:
            ids = [r["id"] for r in source.iter_records(batch_size=3)]

        assert ids == list(range(1, 8))

    def test_start_cursor(self, db_url: str) -> None:
        from batchflow.connectors.sources import DatabaseSource

        with DatabaseSource({"url": db_url, "table": "users"}) as source:
            ids = [r["id"] for r in source.iter_records(batch_size=2, start_cursor=5)]

        assert ids == [6, 7]

    def test_column_selection_keeps_id(self, db_url: str) -> None:
        from batchflow.connectors.sources import DatabaseSource

        with DatabaseSource({"url": db_url, "table": "users", "columns": ["name"]}) as source:
            first: dict[str, Any] = next(iter(source.iter_records(batch_size=1)))

        assert first == {"id": 1, "name": "user-1"}

    def test_unknown_id_column(self, db_url: str) -> None:
        from batchflow.connectors.sources import DatabaseSource

        source = DatabaseSource({"url": db_url, "table": "users", "id_column": "seq"})

        with pytest.raises(ValueError, match="no column 'seq'"):
            list(source.iter_records(batch_size=5))
        source.close()

    def test_generator_is_lazy(self, db_url: str) -> None:
        from batchflow.connectors.sources import DatabaseSource

        with DatabaseSource({"url": db_url, "table": "users"}) as source:
            records = source.iter_records(batch_size=2)
            taken = [next(records)["id"], next(records)["id"], next(records)["id"]]

        assert taken == [1, 2, 3]
