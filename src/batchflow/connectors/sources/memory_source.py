"""In-memory source: records carried inside the descriptor itself.

Useful for tests, fixtures and small reference tables that travel with the
flow definition.
"""

import copy
from collections.abc import Iterator
from typing import Any

from pydantic import model_validator

from batchflow.connectors.base import BaseSource
from batchflow.connectors.config_base import PluginConfig


class MemorySourceConfig(PluginConfig):
    """Configuration for the memory source."""

    records: list[dict[str, Any]]
    id_field: str = "id"

    @model_validator(mode="after")
    def validate_ids_present(self) -> "MemorySourceConfig":
        for index, record in enumerate(self.records):
            if self.id_field not in record:
                raise ValueError(f"record {index} has no '{self.id_field}' field")
        return self


class MemorySource(BaseSource):
    """Yield records held in options, ordered by id_field.

    Config options:
        records: List of record dicts (required)
        id_field: Field holding the cursor value (default: "id")
    """

    name = "memory"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = MemorySourceConfig.from_dict(config)
        self._id_field = cfg.id_field
        self._records = sorted(cfg.records, key=lambda r: r[self._id_field])

    def iter_records(
        self, batch_size: int, start_cursor: Any = None
    ) -> Iterator[dict[str, Any]]:
        for record in self._records:
            if start_cursor is None or record[self._id_field] > start_cursor:
                yield copy.deepcopy(record)
