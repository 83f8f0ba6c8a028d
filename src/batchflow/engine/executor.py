"""BatchExecutor: drains one bounded batch from a flow's source into its sink.

One call to execute() is one run's worth of work:

1. Rehydrate source, sink and runtime from the flow's descriptors
2. Iterate the source from the flow's cursor
3. Per record: track cursor ids, transform, apply the collision policy, write
4. Stop at batch_size records or when the source is exhausted
5. Flush the sink; if anything was consumed, persist the cursor window on
   the run and advance the flow's cursor

A failure anywhere in steps 2-5 leaves the flow's cursor where it was, so
the next run replays the same window (at-least-once).
"""

from typing import Any

from batchflow.connectors.protocols import RuntimeProtocol, SinkProtocol
from batchflow.connectors.registry import ConnectorRegistry
from batchflow.contracts import (
    BatchResult,
    CollisionResult,
    DataFlow,
    DataFlowRun,
    ExecutionError,
    RehydrationError,
)
from batchflow.core.logging import get_logger
from batchflow.core.store.repository import Repository

logger = get_logger(__name__)


class BatchExecutor:
    """Executes one batch per call for any flow.

    Example:
        executor = BatchExecutor(repository, registry)
        result = executor.execute(flow, run)
        print(result.records_processed, result.last_id)
    """

    def __init__(self, repository: Repository, registry: ConnectorRegistry) -> None:
        self._repository = repository
        self._registry = registry

    def execute(self, flow: DataFlow, run: DataFlowRun) -> BatchResult:
        """Run one batch of flow under run.

        Raises:
            RehydrationError: If the source or sink cannot be rebuilt
            ExecutionError: If iterating, transforming or writing fails
        """
        source = self._registry.rehydrate_source(flow.source)
        if source is None:
            raise RehydrationError(
                f"Cannot rehydrate source for data flow '{flow.name}'", flow.source
            )
        sink = self._registry.rehydrate_sink(flow.sink)
        if sink is None:
            source.close()
            raise RehydrationError(
                f"Cannot rehydrate sink for data flow '{flow.name}'", flow.sink
            )
        runtime = self._registry.rehydrate_runtime(flow.runtime)

        with source, sink:  # type: ignore[attr-defined]
            try:
                result = self._drain(flow, source, sink, runtime)
                sink.flush()
            except Exception as e:
                raise ExecutionError(e) from e

        if not result.is_empty:
            self._repository.update_run_cursors(
                run, result.first_id, result.last_id, result.records_processed
            )
            self._repository.update_dataflow_cursor(flow, result.last_id)
            logger.info(
                "Cursor advanced",
                flow=flow.name,
                run_id=run.id,
                first_id=result.first_id,
                last_id=result.last_id,
                records=result.records_processed,
            )
        return result

    def _drain(
        self,
        flow: DataFlow,
        source: Any,
        sink: SinkProtocol,
        runtime: RuntimeProtocol,
    ) -> BatchResult:
        result = BatchResult()
        batch_size = runtime.batch_size

        for record in source.iter_records(batch_size, flow.next_source_id):
            record_id = runtime.record_id(record)
            if result.first_id is None:
                result.first_id = record_id
            result.last_id = record_id

            transformed = runtime.transform(record)
            self._write(record, transformed, sink, runtime, result)
            result.records_processed += 1

            if result.records_processed >= batch_size:
                break
        return result

    def _write(
        self,
        record: dict[str, Any],
        transformed: dict[str, Any],
        sink: SinkProtocol,
        runtime: RuntimeProtocol,
        result: BatchResult,
    ) -> None:
        """Write one record, honoring the runtime's collision policy."""
        if not runtime.detects_collisions:
            sink.write(transformed)
            result.records_written += 1
            return

        key = runtime.collision_target(transformed)
        existing = sink.find(key)
        outcome = runtime.detect_collision(record, transformed, existing)

        if outcome == CollisionResult.REDUNDANT:
            result.records_skipped += 1
        elif outcome == CollisionResult.UPDATE:
            sink.update(key, transformed)
            result.records_updated += 1
        else:
            sink.write(transformed)
            result.records_written += 1
