"""Result types returned by the executor, scheduler and reporting calls."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BatchResult:
    """Outcome of one bounded batch.

    records_processed counts every record consumed from the source,
    including ones the collision policy skipped.
    """

    records_processed: int = 0
    records_written: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    first_id: Any = None
    last_id: Any = None

    @property
    def is_empty(self) -> bool:
        return self.records_processed == 0


@dataclass
class HeartbeatResult:
    """Summary of one heartbeat cycle."""

    due_flows: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def executed(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass
class StartupResult:
    """Summary of the startup sweep."""

    interrupted: int = 0
    cancelled: int = 0
    created: int = 0


@dataclass(frozen=True)
class FlowStatusReport:
    """Scheduling snapshot for one data flow."""

    name: str
    status: str
    pending_runs: int
    due_now: bool
    seconds_until_next: float | None
    last_run_at: Any = None
    last_error: str | None = None
