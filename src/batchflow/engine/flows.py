"""DataFlowService: registration, scheduling policy and run state changes.

Every state change of a data flow goes through this service so that the
scheduling invariants hold no matter who makes the change:

- an inactive flow never has a pending run;
- after a runtime or status change, at most one pending run exists and it
  reflects the current policy;
- a run is claimed atomically, and claiming it schedules the next one.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import rfc8785

from batchflow.connectors.protocols import RuntimeProtocol
from batchflow.connectors.registry import ConnectorRegistry
from batchflow.contracts import (
    ClaimConflictError,
    ConfigurationError,
    ConnectorKind,
    DataFlow,
    DataFlowNotFoundError,
    DataFlowRun,
    Descriptor,
    FlowDefinition,
    FlowStatus,
    FlowStatusReport,
    RehydrationError,
    RunStatus,
)
from batchflow.core.canonical import canonical_json, stable_hash
from batchflow.core.logging import get_logger
from batchflow.core.store.repository import Repository

logger = get_logger(__name__)


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class DataFlowService:
    """Operations on registered data flows.

    Example:
        service = DataFlowService(repository, ConnectorRegistry.with_builtins())
        flow = service.register(
            "users_backup",
            MemorySource({"records": rows}),
            JSONLSink({"path": "out/users.jsonl"}),
            RuntimePolicy({"interval": 600, "batch_size": 50}),
        )
    """

    def __init__(self, repository: Repository, registry: ConnectorRegistry) -> None:
        self._repository = repository
        self._registry = registry

    @property
    def repository(self) -> Repository:
        return self._repository

    @property
    def registry(self) -> ConnectorRegistry:
        return self._registry

    # === Lookup ===

    def get(self, name: str) -> DataFlow:
        """Get a flow by name.

        Raises:
            DataFlowNotFoundError: If no flow has this name
        """
        flow = self._repository.get_dataflow_by_name(name)
        if flow is None:
            raise DataFlowNotFoundError(name)
        return flow

    def list_flows(self) -> list[DataFlow]:
        return self._repository.list_dataflows()

    def policy_for(self, flow: DataFlow) -> RuntimeProtocol:
        """The flow's runtime, or the default policy if it has none or it is corrupt."""
        return self._registry.rehydrate_runtime(flow.runtime)

    # === Registration ===

    def _to_descriptor(
        self, value: Any, kind: ConnectorKind, *, required: bool
    ) -> Descriptor | None:
        """Normalize a live object or descriptor to a validated descriptor.

        Raises:
            ConfigurationError: If required and missing, if it cannot be
                rehydrated as this kind, or if its options are not JSON
        """
        if value is None:
            if required:
                raise ConfigurationError(f"Data flow requires a {kind.value}")
            return None

        if isinstance(value, dict):
            try:
                value = self._registry.deserialize(value, kind)
            except RehydrationError as e:
                raise ConfigurationError(str(e)) from e
        elif self._registry.kind_of(value) != kind:
            raise ConfigurationError(
                f"{type(value).__name__} is not a registered {kind.value}"
            )

        descriptor = self._registry.serialize(value)
        try:
            canonical_json(descriptor)
        except (rfc8785.CanonicalizationError, ValueError, TypeError) as e:
            raise ConfigurationError(
                f"{kind.value.capitalize()} options cannot be stored as JSON: {e}"
            ) from e
        return descriptor

    def register(
        self,
        name: str,
        source: Any,
        sink: Any,
        runtime: Any = None,
        *,
        status: FlowStatus = FlowStatus.ACTIVE,
        now: datetime | None = None,
    ) -> DataFlow:
        """Create or update a flow by name.

        source/sink/runtime may be live objects or descriptors. On creation
        an initial pending run is scheduled: at now if the runtime is
        enabled, otherwise one interval from now. Re-registering replaces
        the descriptors, keeps the status, and reschedules only if the
        runtime changed.

        Raises:
            ConfigurationError: Missing source/sink or an unusable descriptor
        """
        if not name or not name.strip():
            raise ConfigurationError("Data flow name must not be empty")
        now = now or _now()

        source_d = self._to_descriptor(source, ConnectorKind.SOURCE, required=True)
        sink_d = self._to_descriptor(sink, ConnectorKind.SINK, required=True)
        runtime_d = self._to_descriptor(runtime, ConnectorKind.RUNTIME, required=False)

        existing = self._repository.get_dataflow_by_name(name)
        if existing is None:
            flow = self._repository.create_dataflow(
                name, source_d, sink_d, runtime_d, FlowStatus(status)  # type: ignore[arg-type]
            )
            self._schedule_initial_run(flow, now)
            logger.info("Data flow registered", flow=name, status=flow.status.value)
            return flow

        runtime_changed = stable_hash(existing.runtime) != stable_hash(runtime_d)
        flow = self._repository.update_dataflow(
            existing, source=source_d, sink=sink_d, runtime=runtime_d
        )
        if runtime_changed:
            self.on_runtime_or_status_change(flow, now=now)
        logger.info(
            "Data flow updated", flow=name, runtime_changed=runtime_changed
        )
        return flow

    def register_definition(
        self, definition: FlowDefinition, *, now: datetime | None = None
    ) -> DataFlow:
        """register() from a FlowDefinition."""
        return self.register(
            definition.name,
            definition.source,
            definition.sink,
            definition.runtime,
            status=definition.status,
            now=now,
        )

    def _schedule_initial_run(self, flow: DataFlow, now: datetime) -> DataFlowRun | None:
        if not flow.is_active:
            return None
        policy = self.policy_for(flow)
        run_after = now if policy.enabled else now + timedelta(seconds=policy.interval)
        return self._repository.create_run(flow, run_after)

    # === Administrative changes ===

    def enable(self, name: str, *, now: datetime | None = None) -> DataFlow:
        """Set a flow active and reschedule it."""
        flow = self._repository.update_dataflow(self.get(name), status=FlowStatus.ACTIVE)
        self.on_runtime_or_status_change(flow, now=now)
        logger.info("Data flow enabled", flow=name)
        return flow

    def disable(self, name: str) -> DataFlow:
        """Set a flow inactive, cancelling its pending runs."""
        flow = self._repository.update_dataflow(self.get(name), status=FlowStatus.INACTIVE)
        self.on_runtime_or_status_change(flow)
        logger.info("Data flow disabled", flow=name)
        return flow

    def update_runtime(
        self, name: str, runtime: Any, *, now: datetime | None = None
    ) -> DataFlow:
        """Replace a flow's runtime and reschedule it.

        Raises:
            ConfigurationError: If runtime cannot be rehydrated
        """
        runtime_d = self._to_descriptor(runtime, ConnectorKind.RUNTIME, required=False)
        flow = self._repository.update_dataflow(self.get(name), runtime=runtime_d)
        self.on_runtime_or_status_change(flow, now=now)
        return flow

    def on_runtime_or_status_change(
        self, flow: DataFlow, *, now: datetime | None = None
    ) -> DataFlowRun | None:
        """Make the pending runs reflect the flow's current policy.

        Active and enabled: cancel pending runs and schedule exactly one at
        now + interval. Inactive: cancel pending runs, schedule none. Active
        but not enabled: pending runs are left alone.
        """
        now = now or _now()
        policy = self.policy_for(flow)

        if flow.is_active and policy.enabled:
            cancelled = self._repository.cancel_pending_runs(flow)
            run = self._repository.create_run(
                flow, now + timedelta(seconds=policy.interval)
            )
            logger.debug(
                "Data flow rescheduled",
                flow=flow.name,
                cancelled=cancelled,
                run_after=run.run_after.isoformat(),
            )
            return run

        if not flow.is_active:
            cancelled = self._repository.cancel_pending_runs(flow)
            logger.debug("Pending runs cancelled", flow=flow.name, cancelled=cancelled)
        return None

    def schedule_next_run(
        self, flow: DataFlow, from_time: datetime | None = None
    ) -> DataFlowRun | None:
        """Create a pending run one interval after from_time.

        No-op for inactive flows and disabled runtimes.
        """
        policy = self.policy_for(flow)
        if not flow.is_active or not policy.enabled:
            return None
        from_time = from_time or _now()
        return self._repository.create_run(
            flow, from_time + timedelta(seconds=policy.interval)
        )

    def trigger_run(
        self, name: str, run_after: datetime | None = None
    ) -> DataFlowRun:
        """Administratively schedule a pending run (default: now).

        Raises:
            ConfigurationError: If the flow is inactive
        """
        flow = self.get(name)
        if not flow.is_active:
            raise ConfigurationError(f"Data flow '{name}' is inactive")
        run = self._repository.create_run(flow, run_after or _now())
        logger.info("Run triggered", flow=name, run_id=run.id)
        return run

    def delete(self, name: str) -> None:
        """Delete a flow and all of its runs."""
        self._repository.delete_dataflow(self.get(name))
        logger.info("Data flow deleted", flow=name)

    # === Run state ===

    def mark_run_started(
        self, flow: DataFlow, run: DataFlowRun, *, now: datetime | None = None
    ) -> DataFlowRun:
        """Claim the run, record the start on the flow, schedule the next run.

        Raises:
            ClaimConflictError: If the run is no longer pending or the flow
                already has a run in progress
        """
        now = now or _now()
        if not self._repository.claim_run(run, now):
            raise ClaimConflictError(run.id)

        flow = self._repository.update_dataflow(flow, last_run_at=now, last_error=None)
        self.schedule_next_run(flow, now)

        claimed = self._repository.get_run(run.id)
        assert claimed is not None
        return claimed

    def mark_run_completed(
        self, flow: DataFlow, run: DataFlowRun, *, now: datetime | None = None
    ) -> DataFlowRun:
        return self._repository.update_run_status(
            run, RunStatus.SUCCESS, ended_at=now or _now()
        )

    def mark_run_failed(
        self,
        flow: DataFlow,
        run: DataFlowRun,
        error: BaseException | str,
        *,
        now: datetime | None = None,
    ) -> DataFlowRun:
        """Fail the run, recording the message on the run and the flow."""
        message = str(error) or type(error).__name__
        failed = self._repository.update_run_status(
            run, RunStatus.FAILED, ended_at=now or _now(), error_message=message
        )
        self._repository.update_dataflow(flow, last_error=message)
        return failed

    def advance_cursor(self, flow: DataFlow, last_id: Any) -> DataFlow:
        return self._repository.update_dataflow_cursor(flow, last_id)

    # === Maintenance and reporting ===

    def cleanup_old_runs(self, older_than: datetime) -> int:
        """Delete finished runs created before older_than."""
        deleted = self._repository.delete_finished_runs_before(older_than)
        logger.info("Old runs deleted", deleted=deleted, older_than=older_than.isoformat())
        return deleted

    def status_report(self, now: datetime | None = None) -> list[FlowStatusReport]:
        """Scheduling snapshot for every flow, by name."""
        now = now or _now()
        reports = []
        for flow in self._repository.list_dataflows():
            pending = self._repository.list_pending_runs(flow)
            future = [r.run_after for r in pending if r.run_after > now]
            reports.append(
                FlowStatusReport(
                    name=flow.name,
                    status=flow.status.value,
                    pending_runs=len(pending),
                    due_now=any(r.is_due(now) for r in pending),
                    seconds_until_next=(
                        (min(future) - now).total_seconds() if future else None
                    ),
                    last_run_at=flow.last_run_at,
                    last_error=flow.last_error,
                )
            )
        return reports
