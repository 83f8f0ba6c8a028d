"""In-process Repository used by tests and single-process deployments.

State lives in dicts guarded by one lock. Every read returns a copy so
callers can never mutate stored state behind the repository's back.
"""

import copy
import threading
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from batchflow.contracts import (
    DataFlow,
    DataFlowNotFoundError,
    DataFlowRun,
    Descriptor,
    FlowStatus,
    IllegalTransitionError,
    RunStatus,
)
from batchflow.core.canonical import dump_cursor

_DATAFLOW_FIELDS = frozenset(
    {"source", "sink", "runtime", "status", "last_run_at", "last_error", "next_source_id"}
)
_RUN_STATUS_FIELDS = frozenset({"started_at", "ended_at", "error_message"})


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryRepository:
    """Repository holding flows and runs in memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._flows: dict[str, DataFlow] = {}
        self._runs: dict[str, DataFlowRun] = {}

    def close(self) -> None:
        pass

    # === Scheduling queries ===

    def find_due_dataflows(self, now: datetime) -> list[DataFlow]:
        with self._lock:
            due_ids = {
                run.data_flow_id
                for run in self._runs.values()
                if run.is_pending and run.run_after <= now
            }
            flows = [
                copy.deepcopy(flow)
                for flow in self._flows.values()
                if flow.id in due_ids and flow.status == FlowStatus.ACTIVE
            ]
        return sorted(flows, key=lambda f: f.name)

    def find_earliest_pending_run(
        self, dataflow: DataFlow, now: datetime
    ) -> DataFlowRun | None:
        with self._lock:
            due = [
                run
                for run in self._runs.values()
                if run.data_flow_id == dataflow.id and run.is_due(now)
            ]
            if not due:
                return None
            return copy.deepcopy(min(due, key=lambda r: (r.run_after, r.created_at)))

    def find_overdue_pending_runs(
        self, now: datetime, threshold: timedelta
    ) -> list[DataFlowRun]:
        with self._lock:
            overdue = [
                copy.deepcopy(run)
                for run in self._runs.values()
                if run.is_overdue(now, threshold)
            ]
        return sorted(overdue, key=lambda r: r.run_after)

    def find_in_progress_runs(self) -> list[DataFlowRun]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._runs.values() if r.is_in_progress]

    # === Run state ===

    def claim_run(self, run: DataFlowRun, now: datetime) -> bool:
        with self._lock:
            stored = self._runs.get(run.id)
            if stored is None or not stored.is_pending:
                return False
            if any(
                other.data_flow_id == stored.data_flow_id and other.is_in_progress
                for other in self._runs.values()
            ):
                return False
            stored.status = RunStatus.IN_PROGRESS
            stored.started_at = now
            return True

    def create_run(self, dataflow: DataFlow, run_after: datetime) -> DataFlowRun:
        run = DataFlowRun(
            id=uuid.uuid4().hex,
            data_flow_id=dataflow.id,
            status=RunStatus.PENDING,
            run_after=run_after,
            created_at=_now(),
        )
        with self._lock:
            if dataflow.id not in self._flows:
                raise KeyError(f"Unknown data flow id: {dataflow.id}")
            self._runs[run.id] = run
        return copy.deepcopy(run)

    def cancel_pending_runs(self, dataflow: DataFlow) -> int:
        ended_at = _now()
        count = 0
        with self._lock:
            for run in self._runs.values():
                if run.data_flow_id == dataflow.id and run.is_pending:
                    run.status = RunStatus.CANCELLED
                    run.ended_at = ended_at
                    count += 1
        return count

    def update_run_status(
        self, run: DataFlowRun, status: RunStatus, **fields: Any
    ) -> DataFlowRun:
        status = RunStatus(status)
        run.check_transition(status)

        unknown = set(fields) - _RUN_STATUS_FIELDS
        if unknown:
            raise ValueError(f"Cannot set run fields: {sorted(unknown)}")

        with self._lock:
            stored = self._runs.get(run.id)
            if stored is None or stored.status != run.status:
                current_status = stored.status.value if stored else "missing"
                raise IllegalTransitionError(run.id, current_status, status.value)
            stored.status = status
            for name, value in fields.items():
                setattr(stored, name, value)
            return copy.deepcopy(stored)

    def update_run_cursors(
        self,
        run: DataFlowRun,
        first_id: Any,
        last_id: Any,
        records_processed: int,
    ) -> DataFlowRun:
        # Same cursor types as the SQL backend
        dump_cursor(first_id)
        dump_cursor(last_id)
        with self._lock:
            stored = self._runs[run.id]
            stored.first_id = copy.deepcopy(first_id)
            stored.last_id = copy.deepcopy(last_id)
            stored.records_processed = records_processed
            return copy.deepcopy(stored)

    def get_run(self, run_id: str) -> DataFlowRun | None:
        with self._lock:
            run = self._runs.get(run_id)
            return copy.deepcopy(run) if run is not None else None

    def list_runs(self, dataflow: DataFlow, limit: int | None = None) -> list[DataFlowRun]:
        with self._lock:
            runs = [copy.deepcopy(r) for r in self._runs.values() if r.data_flow_id == dataflow.id]
        runs.sort(key=lambda r: (r.created_at, r.run_after), reverse=True)
        return runs[:limit] if limit is not None else runs

    def list_pending_runs(self, dataflow: DataFlow) -> list[DataFlowRun]:
        with self._lock:
            runs = [
                copy.deepcopy(r)
                for r in self._runs.values()
                if r.data_flow_id == dataflow.id and r.is_pending
            ]
        return sorted(runs, key=lambda r: r.run_after)

    def delete_finished_runs_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [
                run_id
                for run_id, run in self._runs.items()
                if run.is_terminal and run.created_at < cutoff
            ]
            for run_id in doomed:
                del self._runs[run_id]
        return len(doomed)

    # === Data flows ===

    def create_dataflow(
        self,
        name: str,
        source: Descriptor,
        sink: Descriptor,
        runtime: Descriptor | None,
        status: FlowStatus,
    ) -> DataFlow:
        now = _now()
        flow = DataFlow(
            id=uuid.uuid4().hex,
            name=name,
            source=copy.deepcopy(source),
            sink=copy.deepcopy(sink),
            runtime=copy.deepcopy(runtime),
            status=FlowStatus(status),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if any(existing.name == name for existing in self._flows.values()):
                raise ValueError(f"Data flow name already exists: {name!r}")
            self._flows[flow.id] = flow
        return copy.deepcopy(flow)

    def get_dataflow(self, dataflow_id: str) -> DataFlow | None:
        with self._lock:
            flow = self._flows.get(dataflow_id)
            return copy.deepcopy(flow) if flow is not None else None

    def get_dataflow_by_name(self, name: str) -> DataFlow | None:
        with self._lock:
            for flow in self._flows.values():
                if flow.name == name:
                    return copy.deepcopy(flow)
        return None

    def list_dataflows(self) -> list[DataFlow]:
        with self._lock:
            flows = [copy.deepcopy(f) for f in self._flows.values()]
        return sorted(flows, key=lambda f: f.name)

    def update_dataflow(self, dataflow: DataFlow, **fields: Any) -> DataFlow:
        unknown = set(fields) - _DATAFLOW_FIELDS
        if unknown:
            raise ValueError(f"Cannot set data flow field: {sorted(unknown)}")
        if "status" in fields:
            fields["status"] = FlowStatus(fields["status"])
        if "next_source_id" in fields:
            dump_cursor(fields["next_source_id"])

        with self._lock:
            stored = self._flows.get(dataflow.id)
            if stored is None:
                raise DataFlowNotFoundError(dataflow.name)
            for name, value in fields.items():
                setattr(stored, name, copy.deepcopy(value))
            stored.updated_at = _now()
            return copy.deepcopy(stored)

    def update_dataflow_cursor(self, dataflow: DataFlow, cursor: Any) -> DataFlow:
        return self.update_dataflow(dataflow, next_source_id=cursor)

    def delete_dataflow(self, dataflow: DataFlow) -> None:
        with self._lock:
            self._flows.pop(dataflow.id, None)
            for run_id in [r.id for r in self._runs.values() if r.data_flow_id == dataflow.id]:
                del self._runs[run_id]
