"""All status codes and kinds used across subsystem boundaries.

Status enums use (str, Enum) because they ARE stored in the database.
"""

from enum import Enum


class FlowStatus(str, Enum):
    """Administrative status of a data flow.

    Uses (str, Enum) because this IS stored in the database (data_flows.status).
    """

    ACTIVE = "active"
    INACTIVE = "inactive"


class RunStatus(str, Enum):
    """Status of a single scheduled data flow run.

    Uses (str, Enum) for database serialization to data_flow_runs.status.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Terminal states never transition further."""
        return self in _TERMINAL_RUN_STATUSES


_TERMINAL_RUN_STATUSES = frozenset(
    {RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.CANCELLED}
)

# pending -> in_progress -> {success | failed}, pending -> cancelled
LEGAL_RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.IN_PROGRESS, RunStatus.CANCELLED}),
    RunStatus.IN_PROGRESS: frozenset({RunStatus.SUCCESS, RunStatus.FAILED}),
    RunStatus.SUCCESS: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


class ConnectorKind(str, Enum):
    """Which slot of a data flow a serialized object occupies.

    Type tags are unique per kind, so "database" may name both a source
    and a sink.
    """

    SOURCE = "source"
    SINK = "sink"
    RUNTIME = "runtime"


class CollisionResult(str, Enum):
    """Predicted outcome of writing a transformed record to the sink.

    Values:
        NEW: No matching target record, insert normally
        REDUNDANT: Target already holds identical data, skip the write
        UPDATE: Target exists with different data, overwrite in place
        NO_PREDICTION: Detector cannot tell, insert normally
    """

    NEW = "new"
    REDUNDANT = "redundant"
    UPDATE = "update"
    NO_PREDICTION = "no_prediction"
