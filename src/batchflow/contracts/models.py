"""Entity contracts for data flows and their runs.

These are strict contracts - status fields use proper enum types.
Repository layer handles string->enum conversion for DB reads.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from batchflow.contracts.enums import LEGAL_RUN_TRANSITIONS, FlowStatus, RunStatus
from batchflow.contracts.errors import IllegalTransitionError

# Tagged, storage-safe representation of a connector or runtime:
# {"type_tag": "<tag>", "options": {...}}
Descriptor = dict[str, Any]

DEFAULT_STALENESS = timedelta(hours=1)


@dataclass
class DataFlow:
    """A registered pipeline.

    Strict contract - status must be FlowStatus enum. Descriptors are
    opaque here; only the connector registry looks inside them.
    """

    id: str
    name: str
    source: Descriptor
    sink: Descriptor
    status: FlowStatus
    created_at: datetime
    updated_at: datetime
    runtime: Descriptor | None = None
    next_source_id: Any = None
    last_run_at: datetime | None = None
    last_error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == FlowStatus.ACTIVE


@dataclass
class DataFlowRun:
    """One scheduled attempt to execute a data flow.

    Strict contract - status must be RunStatus enum. run_after never
    changes after creation.
    """

    id: str
    data_flow_id: str
    status: RunStatus
    run_after: datetime
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error_message: str | None = None
    first_id: Any = None
    last_id: Any = None
    records_processed: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == RunStatus.PENDING

    @property
    def is_in_progress(self) -> bool:
        return self.status == RunStatus.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> float | None:
        """Seconds between start and end, None until both are set."""
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def is_due(self, now: datetime) -> bool:
        """Pending and eligible to execute."""
        return self.is_pending and self.run_after <= now

    def is_overdue(
        self, now: datetime, threshold: timedelta = DEFAULT_STALENESS
    ) -> bool:
        """Pending long enough past run_after to count as a missed cycle.

        Only the startup sweep uses this; heartbeat due-selection never does.
        """
        return self.is_pending and self.run_after <= now - threshold

    def can_transition_to(self, status: RunStatus) -> bool:
        return status in LEGAL_RUN_TRANSITIONS[self.status]

    def check_transition(self, status: RunStatus) -> None:
        """Raise IllegalTransitionError unless status is reachable from here."""
        if not self.can_transition_to(status):
            raise IllegalTransitionError(self.id, self.status.value, status.value)


@dataclass(frozen=True)
class FlowDefinition:
    """Everything needed to register a data flow, built before registration.

    source/sink/runtime may be live connector objects or descriptors.

    Example:
        definition = FlowDefinition(
            name="users_backup",
            source=MemorySource({"records": rows}),
            sink=JSONLSink({"path": "out.jsonl"}),
            runtime=RuntimePolicy({"interval": 600, "batch_size": 50}),
        )
        service.register_definition(definition)
    """

    name: str
    source: Any
    sink: Any
    runtime: Any = None
    status: FlowStatus = FlowStatus.ACTIVE
    metadata: dict[str, Any] = field(default_factory=dict)
