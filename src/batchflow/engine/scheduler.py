"""HeartbeatScheduler: finds due flows and runs one batch for each.

Each heartbeat is sequential. A failure anywhere in one flow's turn, including
its own status bookkeeping, is recorded on its run where possible and never
stops the other flows. The only coordination with other heartbeats is the
atomic claim in DataFlowService.mark_run_started().
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from batchflow.contracts import (
    DEFAULT_STALENESS,
    ClaimConflictError,
    DataFlow,
    DataFlowNotFoundError,
    DataFlowRun,
    HeartbeatResult,
    IllegalTransitionError,
    RunStatus,
    StartupResult,
)
from batchflow.core.logging import get_logger
from batchflow.engine.executor import BatchExecutor
from batchflow.engine.flows import DataFlowService

logger = get_logger(__name__)

INTERRUPTED_MESSAGE = "Run interrupted before completion"


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class HeartbeatScheduler:
    """Drives data flows from their pending runs.

    Example:
        scheduler = HeartbeatScheduler(service, executor)
        scheduler.startup()
        result = scheduler.heartbeat()
        print(f"{len(result.succeeded)} succeeded, {len(result.failed)} failed")
    """

    def __init__(
        self,
        service: DataFlowService,
        executor: BatchExecutor,
        *,
        staleness: timedelta = DEFAULT_STALENESS,
        heartbeat_seconds: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._service = service
        self._executor = executor
        self._staleness = staleness
        self._heartbeat_seconds = heartbeat_seconds
        self._sleep = sleep

    def heartbeat(self, now: datetime | None = None) -> HeartbeatResult:
        """Execute the earliest due run of every due flow."""
        now = now or _now()
        repository = self._service.repository
        result = HeartbeatResult()

        due_flows = repository.find_due_dataflows(now)
        result.due_flows = len(due_flows)

        for flow in due_flows:
            run = repository.find_earliest_pending_run(flow, now)
            if run is None:
                continue

            try:
                run = self._service.mark_run_started(flow, run, now=now)
            except ClaimConflictError:
                # Another heartbeat got there first
                result.skipped.append(run.id)
                continue
            except DataFlowNotFoundError:
                # Deleted while being claimed
                logger.warning("Claimed flow disappeared", flow=flow.name, run_id=run.id)
                result.skipped.append(run.id)
                continue

            try:
                # The claim updated last_run_at; execute against the fresh flow
                flow = self._service.get(flow.name)
                batch = self._executor.execute(flow, run)
                self._service.mark_run_completed(flow, run)
            except Exception as e:
                self._record_failure(flow, run, e)
                result.failed.append(run.id)
                continue

            result.succeeded.append(run.id)
            logger.info(
                "Data flow run completed",
                flow=flow.name,
                run_id=run.id,
                processed=batch.records_processed,
                written=batch.records_written,
                updated=batch.records_updated,
                skipped=batch.records_skipped,
            )

        if due_flows:
            logger.info(
                "Heartbeat finished",
                due=result.due_flows,
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                skipped=len(result.skipped),
            )
        return result

    def _record_failure(self, flow: DataFlow, run: DataFlowRun, error: Exception) -> None:
        """Mark the run failed and log; the flow may have been deleted meanwhile."""
        logger.error(
            "Data flow run failed",
            flow=flow.name,
            run_id=run.id,
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            self._service.mark_run_failed(flow, run, error)
        except (DataFlowNotFoundError, IllegalTransitionError) as e:
            logger.warning(
                "Could not record run failure",
                flow=flow.name,
                run_id=run.id,
                error=str(e),
            )

    def startup(self, now: datetime | None = None) -> StartupResult:
        """Recover scheduling state when the process boots.

        1. Fail runs a crashed process left in progress
        2. Cancel pending runs more than the staleness threshold overdue
        3. Give every active, enabled flow without a future pending run a fresh one
        """
        now = now or _now()
        repository = self._service.repository
        result = StartupResult()

        for run in repository.find_in_progress_runs():
            try:
                repository.update_run_status(
                    run, RunStatus.FAILED, ended_at=now, error_message=INTERRUPTED_MESSAGE
                )
            except IllegalTransitionError:
                continue
            flow = repository.get_dataflow(run.data_flow_id)
            if flow is not None:
                repository.update_dataflow(flow, last_error=INTERRUPTED_MESSAGE)
            result.interrupted += 1
            logger.warning("Interrupted run failed", run_id=run.id)

        for run in repository.find_overdue_pending_runs(now, self._staleness):
            try:
                repository.update_run_status(run, RunStatus.CANCELLED, ended_at=now)
            except IllegalTransitionError:
                continue
            result.cancelled += 1
            logger.info(
                "Overdue run cancelled",
                run_id=run.id,
                run_after=run.run_after.isoformat(),
            )

        for flow in repository.list_dataflows():
            if not flow.is_active or any(
                r.run_after > now for r in repository.list_pending_runs(flow)
            ):
                continue
            if self._service.schedule_next_run(flow, now) is not None:
                result.created += 1

        logger.info(
            "Startup sweep finished",
            interrupted=result.interrupted,
            cancelled=result.cancelled,
            created=result.created,
        )
        return result

    def serve(self, max_cycles: int | None = None) -> int:
        """Startup once, then heartbeat every heartbeat_seconds.

        Returns the number of heartbeats run. Stops after max_cycles if
        given, otherwise runs until interrupted.
        """
        self.startup()
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            if cycles:
                self._sleep(self._heartbeat_seconds)
            self.heartbeat()
            cycles += 1
        return cycles
