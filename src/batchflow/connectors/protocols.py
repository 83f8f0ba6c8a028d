"""Connector protocols defining the contracts for each slot of a data flow.

These protocols define what methods connectors must implement.
They're used for type checking, not runtime enforcement (that's pluggy's job).

Connector Types:
- Source: Yields records after a cursor, in ascending cursor order
- Sink: Stores records, optionally finds and updates them by key
- Runtime: Scheduling policy plus the per-record transform
"""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from batchflow.contracts import CollisionResult


@runtime_checkable
class SourceProtocol(Protocol):
    """Protocol for record sources.

    Lifecycle:
    1. __init__(options) - Rehydration from a descriptor
    2. iter_records(batch_size, start_cursor) - Lazily yields records
    3. close() - Cleanup

    Example:
        class ListSource:
            name = "list"

            def iter_records(self, batch_size, start_cursor):
                for row in self._rows:
                    if start_cursor is None or row["id"] > start_cursor:
                        yield row
    """

    name: str
    plugin_version: str

    def __init__(self, config: dict[str, Any]) -> None:
        """Initialize with configuration."""
        ...

    @property
    def options(self) -> dict[str, Any]:
        """JSON-safe configuration, enough to rebuild an equivalent source."""
        ...

    def iter_records(
        self, batch_size: int, start_cursor: Any = None
    ) -> Iterator[dict[str, Any]]:
        """Yield records with cursor > start_cursor, ascending.

        batch_size is a fetch-size hint; the caller stops consuming.
        """
        ...

    def close(self) -> None:
        """Release resources."""
        ...


@runtime_checkable
class SinkProtocol(Protocol):
    """Protocol for record sinks.

    find() and update() are only called when the runtime detects collisions.
    """

    name: str
    plugin_version: str

    def __init__(self, config: dict[str, Any]) -> None:
        """Initialize with configuration."""
        ...

    @property
    def options(self) -> dict[str, Any]:
        ...

    def write(self, record: dict[str, Any]) -> None:
        """Store one record."""
        ...

    def write_batch(self, records: list[dict[str, Any]]) -> None:
        """Store several records."""
        ...

    def find(self, key: Any) -> dict[str, Any] | None:
        """Return the stored record with this key, if any."""
        ...

    def update(self, key: Any, record: dict[str, Any]) -> None:
        """Overwrite the stored record with this key."""
        ...

    def flush(self) -> None:
        """Flush buffered data."""
        ...

    def close(self) -> None:
        """Release resources."""
        ...


@runtime_checkable
class RuntimeProtocol(Protocol):
    """Protocol for runtime policies (scheduling knobs plus transform)."""

    name: str
    plugin_version: str

    interval: float
    batch_size: int
    enabled: bool

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        ...

    @property
    def options(self) -> dict[str, Any]:
        ...

    def transform(self, record: dict[str, Any]) -> dict[str, Any]:
        """Map a source record to the record written to the sink."""
        ...

    def record_id(self, record: dict[str, Any]) -> Any:
        """Extract the cursor value of a source record."""
        ...

    @property
    def detects_collisions(self) -> bool:
        ...

    def collision_target(self, transformed: dict[str, Any]) -> Any:
        """Key under which the sink may already hold this record."""
        ...

    def detect_collision(
        self,
        record: dict[str, Any],
        transformed: dict[str, Any],
        existing: dict[str, Any] | None,
    ) -> "CollisionResult":
        ...
