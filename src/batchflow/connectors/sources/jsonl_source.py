"""JSON-lines source: one record per line of a file."""

import json
from collections.abc import Iterator
from typing import Any

from batchflow.connectors.base import BaseSource
from batchflow.connectors.config_base import PathConfig


class JSONLSourceConfig(PathConfig):
    """Configuration for the JSONL source."""

    id_field: str = "id"
    encoding: str = "utf-8"


class JSONLSource(BaseSource):
    """Load records from a JSONL file, ordered by id_field.

    The file is re-read on every batch, so appends between runs are picked
    up by the next cursor window.

    Config options:
        path: Path to JSONL file (required)
        id_field: Field holding the cursor value (default: "id")
        encoding: File encoding (default: "utf-8")
    """

    name = "jsonl"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = JSONLSourceConfig.from_dict(config)
        self._path = cfg.resolved_path()
        self._id_field = cfg.id_field
        self._encoding = cfg.encoding

    def iter_records(
        self, batch_size: int, start_cursor: Any = None
    ) -> Iterator[dict[str, Any]]:
        """Yield records after start_cursor.

        Raises:
            FileNotFoundError: If file does not exist.
            ValueError: If a line is not a JSON object with an id.
        """
        if not self._path.exists():
            raise FileNotFoundError(f"JSONL file not found: {self._path}")

        pending: list[dict[str, Any]] = []
        with open(self._path, encoding=self._encoding) as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:  # Skip empty lines
                    continue
                record = json.loads(line)
                if not isinstance(record, dict) or self._id_field not in record:
                    raise ValueError(
                        f"{self._path}:{lineno}: expected an object with "
                        f"'{self._id_field}'"
                    )
                if start_cursor is None or record[self._id_field] > start_cursor:
                    pending.append(record)

        pending.sort(key=lambda r: r[self._id_field])
        yield from pending
