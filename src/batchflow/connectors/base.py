"""Base classes for connector implementations.

These provide common functionality and ensure proper interface compliance.
Connectors can subclass these for convenience, or implement protocols directly.

Both bases are context managers. The executor acquires connectors with
``with`` so close() runs even when a batch raises.
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any, Self


class _ConnectorBase:
    """Shared configuration and lifecycle for sources and sinks."""

    name: str
    plugin_version: str = "0.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        """Initialize with configuration."""
        self.config = dict(config)

    @property
    def options(self) -> dict[str, Any]:
        """Configuration as given, enough to rebuild an equivalent connector."""
        return copy.deepcopy(self.config)

    def close(self) -> None:  # noqa: B027
        """Release resources. Override if the connector holds any."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.config!r})"


class BaseSource(_ConnectorBase, ABC):
    """Base class for record sources.

    Subclass and implement iter_records().

    Example:
        class ListSource(BaseSource):
            name = "list"

            def iter_records(self, batch_size, start_cursor=None):
                for row in self.config["rows"]:
                    if start_cursor is None or row["id"] > start_cursor:
                        yield row
    """

    @abstractmethod
    def iter_records(
        self, batch_size: int, start_cursor: Any = None
    ) -> Iterator[dict[str, Any]]:
        """Yield records with cursor > start_cursor in ascending cursor order.

        Args:
            batch_size: Fetch-size hint; the executor enforces the real cap
            start_cursor: Last id already processed, None for the beginning

        Yields:
            Record dicts
        """
        ...


class BaseSink(_ConnectorBase, ABC):
    """Base class for record sinks.

    Subclass and implement write(). Override write_batch() for bulk inserts
    and find()/update() to support collision detection.
    """

    @abstractmethod
    def write(self, record: dict[str, Any]) -> None:
        """Store one record."""
        ...

    def write_batch(self, records: list[dict[str, Any]]) -> None:
        """Store several records, one write() each."""
        for record in records:
            self.write(record)

    def find(self, key: Any) -> dict[str, Any] | None:
        """Return the stored record with this key.

        Sinks that cannot look records up report nothing, so every record
        is treated as new.
        """
        return None

    def update(self, key: Any, record: dict[str, Any]) -> None:
        """Overwrite the stored record with this key."""
        raise NotImplementedError(f"Sink '{self.name}' does not support updates")

    def flush(self) -> None:  # noqa: B027
        """Flush buffered data. No-op for unbuffered sinks."""
