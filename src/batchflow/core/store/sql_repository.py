"""SQLAlchemy Core implementation of the Repository contract.

Handles the seam between SQLAlchemy rows (strings, JSON text) and domain
objects (strict enum types, decoded descriptors). This is NOT a trust
boundary - if the database has bad data, we crash.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, select, update
from sqlalchemy.engine import Row

from batchflow.contracts import (
    DataFlow,
    DataFlowNotFoundError,
    DataFlowRun,
    Descriptor,
    FlowStatus,
    IllegalTransitionError,
    RunStatus,
)
from batchflow.core.canonical import (
    canonical_json,
    dump_cursor,
    dump_optional,
    load_cursor,
    load_optional,
)
from batchflow.core.store.database import FlowDB
from batchflow.core.store.schema import data_flow_runs_table, data_flows_table

_TERMINAL_STATUS_VALUES = [
    RunStatus.SUCCESS.value,
    RunStatus.FAILED.value,
    RunStatus.CANCELLED.value,
]

# Columns update_dataflow() may touch, and how to encode each one
_DATAFLOW_FIELD_ENCODERS = {
    "source": ("source_json", canonical_json),
    "sink": ("sink_json", canonical_json),
    "runtime": ("runtime_json", dump_optional),
    "status": ("status", lambda s: FlowStatus(s).value),
    "last_run_at": ("last_run_at", lambda v: v),
    "last_error": ("last_error", lambda v: v),
    "next_source_id": ("next_source_id", dump_cursor),
}

_RUN_STATUS_FIELDS = frozenset({"started_at", "ended_at", "error_message"})


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _generate_id() -> str:
    """Generate a unique ID."""
    return uuid.uuid4().hex


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _load_dataflow(row: Row[Any]) -> DataFlow:
    """Load DataFlow from database row.

    Converts status string to enum and JSON columns to Python values.
    """
    return DataFlow(
        id=row.id,
        name=row.name,
        source=load_optional(row.source_json),
        sink=load_optional(row.sink_json),
        runtime=load_optional(row.runtime_json),
        status=FlowStatus(row.status),  # Convert HERE
        next_source_id=load_cursor(row.next_source_id),
        last_run_at=_as_utc(row.last_run_at),
        last_error=row.last_error,
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
        updated_at=_as_utc(row.updated_at),  # type: ignore[arg-type]
    )


def _load_run(row: Row[Any]) -> DataFlowRun:
    """Load DataFlowRun from database row."""
    return DataFlowRun(
        id=row.id,
        data_flow_id=row.data_flow_id,
        status=RunStatus(row.status),  # Convert HERE
        run_after=_as_utc(row.run_after),  # type: ignore[arg-type]
        created_at=_as_utc(row.created_at),  # type: ignore[arg-type]
        started_at=_as_utc(row.started_at),
        ended_at=_as_utc(row.ended_at),
        error_message=row.error_message,
        first_id=load_cursor(row.first_id),
        last_id=load_cursor(row.last_id),
        records_processed=row.records_processed,
    )


class SqlRepository:
    """Repository backed by SQLAlchemy Core (SQLite or PostgreSQL).

    Example:
        db = FlowDB.in_memory()
        repo = SqlRepository(db)
        flow = repo.create_dataflow("sync", source, sink, None, FlowStatus.ACTIVE)
    """

    def __init__(self, db: FlowDB) -> None:
        """Initialize repository with database connection."""
        self._db = db

    @property
    def db(self) -> FlowDB:
        return self._db

    def close(self) -> None:
        self._db.close()

    # === Scheduling queries ===

    def find_due_dataflows(self, now: datetime) -> list[DataFlow]:
        runs = data_flow_runs_table
        due_run = (
            select(runs.c.id)
            .where(
                runs.c.data_flow_id == data_flows_table.c.id,
                runs.c.status == RunStatus.PENDING.value,
                runs.c.run_after <= now,
            )
            .exists()
        )
        query = (
            select(data_flows_table)
            .where(data_flows_table.c.status == FlowStatus.ACTIVE.value, due_run)
            .order_by(data_flows_table.c.name)
        )
        with self._db.connection() as conn:
            return [_load_dataflow(row) for row in conn.execute(query)]

    def find_earliest_pending_run(
        self, dataflow: DataFlow, now: datetime
    ) -> DataFlowRun | None:
        runs = data_flow_runs_table
        query = (
            select(runs)
            .where(
                runs.c.data_flow_id == dataflow.id,
                runs.c.status == RunStatus.PENDING.value,
                runs.c.run_after <= now,
            )
            .order_by(runs.c.run_after, runs.c.created_at)
            .limit(1)
        )
        with self._db.connection() as conn:
            row = conn.execute(query).fetchone()
        return _load_run(row) if row is not None else None

    def find_overdue_pending_runs(
        self, now: datetime, threshold: timedelta
    ) -> list[DataFlowRun]:
        runs = data_flow_runs_table
        cutoff = now - threshold
        query = (
            select(runs)
            .where(
                runs.c.status == RunStatus.PENDING.value,
                runs.c.run_after <= cutoff,
            )
            .order_by(runs.c.run_after)
        )
        with self._db.connection() as conn:
            return [_load_run(row) for row in conn.execute(query)]

    def find_in_progress_runs(self) -> list[DataFlowRun]:
        runs = data_flow_runs_table
        query = select(runs).where(runs.c.status == RunStatus.IN_PROGRESS.value)
        with self._db.connection() as conn:
            return [_load_run(row) for row in conn.execute(query)]

    # === Run state ===

    def claim_run(self, run: DataFlowRun, now: datetime) -> bool:
        """Conditional update guarded by current status.

        A single UPDATE statement: two heartbeats racing for the same run
        cannot both see rowcount == 1.
        """
        runs = data_flow_runs_table
        sibling = runs.alias("sibling")
        sibling_in_progress = (
            select(sibling.c.id)
            .where(
                sibling.c.data_flow_id == run.data_flow_id,
                sibling.c.status == RunStatus.IN_PROGRESS.value,
            )
            .exists()
        )
        stmt = (
            update(runs)
            .where(
                runs.c.id == run.id,
                runs.c.status == RunStatus.PENDING.value,
                ~sibling_in_progress,
            )
            .values(status=RunStatus.IN_PROGRESS.value, started_at=now)
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return result.rowcount == 1

    def create_run(self, dataflow: DataFlow, run_after: datetime) -> DataFlowRun:
        run = DataFlowRun(
            id=_generate_id(),
            data_flow_id=dataflow.id,
            status=RunStatus.PENDING,
            run_after=run_after,
            created_at=_now(),
        )
        with self._db.connection() as conn:
            conn.execute(
                data_flow_runs_table.insert().values(
                    id=run.id,
                    data_flow_id=run.data_flow_id,
                    status=run.status.value,
                    run_after=run.run_after,
                    created_at=run.created_at,
                    records_processed=0,
                )
            )
        return run

    def cancel_pending_runs(self, dataflow: DataFlow) -> int:
        runs = data_flow_runs_table
        stmt = (
            update(runs)
            .where(
                runs.c.data_flow_id == dataflow.id,
                runs.c.status == RunStatus.PENDING.value,
            )
            .values(status=RunStatus.CANCELLED.value, ended_at=_now())
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return result.rowcount

    def update_run_status(
        self, run: DataFlowRun, status: RunStatus, **fields: Any
    ) -> DataFlowRun:
        status = RunStatus(status)
        run.check_transition(status)

        unknown = set(fields) - _RUN_STATUS_FIELDS
        if unknown:
            raise ValueError(f"Cannot set run fields: {sorted(unknown)}")

        runs = data_flow_runs_table
        stmt = (
            update(runs)
            .where(runs.c.id == run.id, runs.c.status == run.status.value)
            .values(status=status.value, **fields)
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)

        if result.rowcount != 1:
            # Someone else moved the run since we loaded it
            current = self.get_run(run.id)
            current_status = current.status.value if current else "missing"
            raise IllegalTransitionError(run.id, current_status, status.value)

        fresh = self.get_run(run.id)
        assert fresh is not None
        return fresh

    def update_run_cursors(
        self,
        run: DataFlowRun,
        first_id: Any,
        last_id: Any,
        records_processed: int,
    ) -> DataFlowRun:
        runs = data_flow_runs_table
        with self._db.connection() as conn:
            conn.execute(
                update(runs)
                .where(runs.c.id == run.id)
                .values(
                    first_id=dump_cursor(first_id),
                    last_id=dump_cursor(last_id),
                    records_processed=records_processed,
                )
            )
        fresh = self.get_run(run.id)
        assert fresh is not None
        return fresh

    def get_run(self, run_id: str) -> DataFlowRun | None:
        runs = data_flow_runs_table
        with self._db.connection() as conn:
            row = conn.execute(select(runs).where(runs.c.id == run_id)).fetchone()
        return _load_run(row) if row is not None else None

    def list_runs(self, dataflow: DataFlow, limit: int | None = None) -> list[DataFlowRun]:
        runs = data_flow_runs_table
        query = (
            select(runs)
            .where(runs.c.data_flow_id == dataflow.id)
            .order_by(runs.c.created_at.desc(), runs.c.run_after.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        with self._db.connection() as conn:
            return [_load_run(row) for row in conn.execute(query)]

    def list_pending_runs(self, dataflow: DataFlow) -> list[DataFlowRun]:
        runs = data_flow_runs_table
        query = (
            select(runs)
            .where(
                runs.c.data_flow_id == dataflow.id,
                runs.c.status == RunStatus.PENDING.value,
            )
            .order_by(runs.c.run_after)
        )
        with self._db.connection() as conn:
            return [_load_run(row) for row in conn.execute(query)]

    def delete_finished_runs_before(self, cutoff: datetime) -> int:
        runs = data_flow_runs_table
        stmt = delete(runs).where(
            and_(
                runs.c.status.in_(_TERMINAL_STATUS_VALUES),
                runs.c.created_at < cutoff,
            )
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return result.rowcount

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
            id=_generate_id(),
            name=name,
            source=source,
            sink=sink,
            runtime=runtime,
            status=FlowStatus(status),
            created_at=now,
            updated_at=now,
        )
        with self._db.connection() as conn:
            conn.execute(
                data_flows_table.insert().values(
                    id=flow.id,
                    name=flow.name,
                    source_json=canonical_json(flow.source),
                    sink_json=canonical_json(flow.sink),
                    runtime_json=dump_optional(flow.runtime),
                    status=flow.status.value,
                    created_at=flow.created_at,
                    updated_at=flow.updated_at,
                )
            )
        return flow

    def get_dataflow(self, dataflow_id: str) -> DataFlow | None:
        query = select(data_flows_table).where(data_flows_table.c.id == dataflow_id)
        with self._db.connection() as conn:
            row = conn.execute(query).fetchone()
        return _load_dataflow(row) if row is not None else None

    def get_dataflow_by_name(self, name: str) -> DataFlow | None:
        query = select(data_flows_table).where(data_flows_table.c.name == name)
        with self._db.connection() as conn:
            row = conn.execute(query).fetchone()
        return _load_dataflow(row) if row is not None else None

    def list_dataflows(self) -> list[DataFlow]:
        query = select(data_flows_table).order_by(data_flows_table.c.name)
        with self._db.connection() as conn:
            return [_load_dataflow(row) for row in conn.execute(query)]

    def update_dataflow(self, dataflow: DataFlow, **fields: Any) -> DataFlow:
        values: dict[str, Any] = {"updated_at": _now()}
        for field_name, value in fields.items():
            try:
                column, encode = _DATAFLOW_FIELD_ENCODERS[field_name]
            except KeyError:
                raise ValueError(f"Cannot set data flow field: {field_name!r}") from None
            values[column] = encode(value)

        with self._db.connection() as conn:
            conn.execute(
                update(data_flows_table)
                .where(data_flows_table.c.id == dataflow.id)
                .values(**values)
            )
        fresh = self.get_dataflow(dataflow.id)
        if fresh is None:
            raise DataFlowNotFoundError(dataflow.name)
        return fresh

    def update_dataflow_cursor(self, dataflow: DataFlow, cursor: Any) -> DataFlow:
        return self.update_dataflow(dataflow, next_source_id=cursor)

    def delete_dataflow(self, dataflow: DataFlow) -> None:
        # Explicit child delete: not every backend enforces ON DELETE CASCADE
        with self._db.connection() as conn:
            conn.execute(
                delete(data_flow_runs_table).where(
                    data_flow_runs_table.c.data_flow_id == dataflow.id
                )
            )
            conn.execute(
                delete(data_flows_table).where(data_flows_table.c.id == dataflow.id)
            )
