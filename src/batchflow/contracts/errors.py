"""Error taxonomy for batchflow.

Where each error is raised and where it stops:

- ConfigurationError: registration rejected (missing source/sink, bad
  descriptor). Fatal for the calling operation.
- RehydrationError: descriptor cannot become a live object. The load path
  degrades to an empty slot with a logged warning.
- ExecutionError: anything raised while iterating, transforming or writing.
  Caught only at the scheduler's per-flow boundary and recorded on the run.
- ClaimConflictError: another heartbeat claimed the run first. Skipped
  without reporting.
- IllegalTransitionError: a run state change the state machine forbids.
"""

from typing import Any


class BatchflowError(Exception):
    """Base class for all batchflow errors."""


class ConfigurationError(BatchflowError):
    """Raised when a data flow definition is invalid."""


class DataFlowNotFoundError(BatchflowError):
    """Raised when an operation names a data flow that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Data flow not found: {name!r}")
        self.name = name


class RehydrationError(BatchflowError):
    """Raised when a stored descriptor cannot be turned back into an object."""

    def __init__(self, message: str, descriptor: Any = None) -> None:
        super().__init__(message)
        self.descriptor = descriptor


class ExecutionError(BatchflowError):
    """Raised when a batch fails while iterating, transforming or writing.

    The message is the original error's message so it can be stored on the
    run as-is.
    """

    def __init__(self, original: BaseException) -> None:
        super().__init__(str(original) or type(original).__name__)
        self.original = original


class ClaimConflictError(BatchflowError):
    """Raised when a run could not be claimed (already claimed elsewhere)."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} is no longer claimable")
        self.run_id = run_id


class IllegalTransitionError(BatchflowError):
    """Raised when a run is asked to move to a state it cannot reach."""

    def __init__(self, run_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Run {run_id} cannot transition from {current!r} to {requested!r}"
        )
        self.run_id = run_id
        self.current = current
        self.requested = requested
