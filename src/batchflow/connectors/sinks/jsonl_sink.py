"""JSONL sink: appends records as JSON lines.

find() and update() read and rewrite the whole file, which is fine for the
file sizes a JSONL sink is meant for.
"""

import json
from pathlib import Path
from typing import IO, Any

from batchflow.connectors.base import BaseSink
from batchflow.connectors.config_base import PathConfig


class JSONLSinkConfig(PathConfig):
    """Configuration for the JSONL sink."""

    key_field: str = "id"
    encoding: str = "utf-8"


class JSONLSink(BaseSink):
    """Append records to a JSONL file.

    Config options:
        path: Path to output file (required); parent directories are created
        key_field: Field find()/update() match on (default: "id")
        encoding: File encoding (default: "utf-8")
    """

    name = "jsonl"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = JSONLSinkConfig.from_dict(config)
        self._path = cfg.resolved_path()
        self._key_field = cfg.key_field
        self._encoding = cfg.encoding

        self._file: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> IO[str]:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self._path, "a", encoding=self._encoding)  # noqa: SIM115 - lifecycle managed by class
        return self._file

    def write(self, record: dict[str, Any]) -> None:
        f = self._open()
        f.write(json.dumps(record, default=str))
        f.write("\n")

    def _read_all(self) -> list[dict[str, Any]]:
        self.flush()
        if not self._path.exists():
            return []
        with open(self._path, encoding=self._encoding) as f:
            return [json.loads(line) for line in f if line.strip()]

    def find(self, key: Any) -> dict[str, Any] | None:
        """Return the most recently written record with this key."""
        found = None
        for record in self._read_all():
            if record.get(self._key_field) == key:
                found = record
        return found

    def update(self, key: Any, record: dict[str, Any]) -> None:
        """Rewrite the file with every record under this key replaced.

        Raises:
            KeyError: If no record has this key
        """
        records = self._read_all()
        matched = False
        for index, existing in enumerate(records):
            if existing.get(self._key_field) == key:
                records[index] = record
                matched = True
        if not matched:
            raise KeyError(f"No record with {self._key_field}={key!r} in {self._path}")

        self.close()
        with open(self._path, "w", encoding=self._encoding) as f:
            for row in records:
                f.write(json.dumps(row, default=str))
                f.write("\n")

    def flush(self) -> None:
        """Flush buffered data to disk."""
        if self._file is not None:
            self._file.flush()

    def close(self) -> None:
        """Close the file handle."""
        if self._file is not None:
            self._file.close()
            self._file = None
