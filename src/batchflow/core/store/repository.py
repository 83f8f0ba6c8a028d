"""Repository contract every storage backend implements.

The scheduler, executor and DataFlowService depend only on this protocol.
The one correctness-critical transaction is claim_run(): a conditional
pending -> in_progress update that must fail if the run is no longer
pending or its flow already has a run in progress.
"""

from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from batchflow.contracts import (
    DataFlow,
    DataFlowRun,
    Descriptor,
    FlowStatus,
    RunStatus,
)


@runtime_checkable
class Repository(Protocol):
    """Persistence boundary for DataFlow and DataFlowRun state."""

    # === Scheduling queries ===

    def find_due_dataflows(self, now: datetime) -> list[DataFlow]:
        """Active flows with at least one pending run whose run_after <= now."""
        ...

    def find_earliest_pending_run(
        self, dataflow: DataFlow, now: datetime
    ) -> DataFlowRun | None:
        """The flow's due pending run with the smallest run_after."""
        ...

    def find_overdue_pending_runs(
        self, now: datetime, threshold: timedelta
    ) -> list[DataFlowRun]:
        """Pending runs with run_after <= now - threshold."""
        ...

    def find_in_progress_runs(self) -> list[DataFlowRun]:
        """Runs currently marked in_progress, across all flows."""
        ...

    # === Run state ===

    def claim_run(self, run: DataFlowRun, now: datetime) -> bool:
        """Atomically move run pending -> in_progress.

        Returns False if the run is no longer pending or another run of the
        same flow is already in progress.
        """
        ...

    def create_run(self, dataflow: DataFlow, run_after: datetime) -> DataFlowRun:
        """Insert a new pending run."""
        ...

    def cancel_pending_runs(self, dataflow: DataFlow) -> int:
        """Cancel every pending run of the flow. Returns how many."""
        ...

    def update_run_status(
        self, run: DataFlowRun, status: RunStatus, **fields: Any
    ) -> DataFlowRun:
        """Move run from its current status to status, setting extra fields.

        Raises:
            IllegalTransitionError: If the transition is not legal, or the
                stored status no longer matches run.status
        """
        ...

    def update_run_cursors(
        self,
        run: DataFlowRun,
        first_id: Any,
        last_id: Any,
        records_processed: int,
    ) -> DataFlowRun:
        """Persist the cursor window a batch actually processed."""
        ...

    def get_run(self, run_id: str) -> DataFlowRun | None: ...

    def list_runs(self, dataflow: DataFlow, limit: int | None = None) -> list[DataFlowRun]:
        """Runs of the flow, newest first."""
        ...

    def list_pending_runs(self, dataflow: DataFlow) -> list[DataFlowRun]:
        """Pending runs of the flow, earliest run_after first."""
        ...

    def delete_finished_runs_before(self, cutoff: datetime) -> int:
        """Delete terminal runs created before cutoff. Returns how many."""
        ...

    # === Data flows ===

    def create_dataflow(
        self,
        name: str,
        source: Descriptor,
        sink: Descriptor,
        runtime: Descriptor | None,
        status: FlowStatus,
    ) -> DataFlow: ...

    def get_dataflow(self, dataflow_id: str) -> DataFlow | None: ...

    def get_dataflow_by_name(self, name: str) -> DataFlow | None: ...

    def list_dataflows(self) -> list[DataFlow]: ...

    def update_dataflow(self, dataflow: DataFlow, **fields: Any) -> DataFlow:
        """Update flow columns (source, sink, runtime, status, last_run_at,
        last_error) and return the fresh flow."""
        ...

    def update_dataflow_cursor(self, dataflow: DataFlow, cursor: Any) -> DataFlow: ...

    def delete_dataflow(self, dataflow: DataFlow) -> None:
        """Delete the flow and, by cascade, all of its runs."""
        ...

    def close(self) -> None:
        """Release connections held by the backend."""
        ...
