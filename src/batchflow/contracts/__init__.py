"""Shared contracts for cross-boundary data types.

All dataclasses, enums and errors that cross subsystem boundaries are
defined here.

Import pattern:
    from batchflow.contracts import DataFlow, RunStatus, RehydrationError
"""

from batchflow.contracts.enums import (
    LEGAL_RUN_TRANSITIONS,
    CollisionResult,
    ConnectorKind,
    FlowStatus,
    RunStatus,
)
from batchflow.contracts.errors import (
    BatchflowError,
    ClaimConflictError,
    ConfigurationError,
    DataFlowNotFoundError,
    ExecutionError,
    IllegalTransitionError,
    RehydrationError,
)
from batchflow.contracts.models import (
    DEFAULT_STALENESS,
    DataFlow,
    DataFlowRun,
    Descriptor,
    FlowDefinition,
)
from batchflow.contracts.results import (
    BatchResult,
    FlowStatusReport,
    HeartbeatResult,
    StartupResult,
)

__all__ = [
    # enums
    "LEGAL_RUN_TRANSITIONS",
    "CollisionResult",
    "ConnectorKind",
    "FlowStatus",
    "RunStatus",
    # errors
    "BatchflowError",
    "ClaimConflictError",
    "ConfigurationError",
    "DataFlowNotFoundError",
    "ExecutionError",
    "IllegalTransitionError",
    "RehydrationError",
    # models
    "DEFAULT_STALENESS",
    "DataFlow",
    "DataFlowRun",
    "Descriptor",
    "FlowDefinition",
    # results
    "BatchResult",
    "FlowStatusReport",
    "HeartbeatResult",
    "StartupResult",
]
