"""Tests for BatchExecutor: bounded batches, cursors and collision policy."""

import json
from pathlib import Path
from typing import Any

import pytest
from conftest import LIFECYCLE, NOW, RECORDED, memory_source, recording_sink


def _setup(service: Any, source: Any, sink: Any, runtime: Any = None) -> tuple[Any, Any]:
    """Register a flow and claim its first run."""
    flow = service.register("users", source, sink, runtime, now=NOW)
    (run,) = service.repository.list_pending_runs(flow)
    run = service.mark_run_started(flow, run, now=NOW)
    return service.get("users"), run


def _batch(size: int, **options: Any) -> dict[str, Any]:
    return {"type_tag": "heartbeat", "options": {"batch_size": size, **options}}


class TestBoundedBatches:
    """One execute() call is at most batch_size records."""

    def test_first_batch_then_next_window(self, service: Any, executor: Any) -> None:
        flow, run = _setup(service, memory_source(10), recording_sink("b"), _batch(3))

        result = executor.execute(flow, run)

        assert (result.records_processed, result.first_id, result.last_id) == (3, 1, 3)
        assert [r["id"] for r in RECORDED["b"]] == [1, 2, 3]

        flow = service.get("users")
        assert flow.next_source_id == 3
        stored_run = service.repository.get_run(run.id)
        assert (stored_run.first_id, stored_run.last_id, stored_run.records_processed) == (1, 3, 3)

        executor.execute(flow, run)
        assert [r["id"] for r in RECORDED["b"]] == [1, 2, 3, 4, 5, 6]
        assert service.get("users").next_source_id == 6

    def test_short_final_batch(self, service: Any, executor: Any) -> None:
        flow, run = _setup(service, memory_source(4), recording_sink("b"), _batch(3))
        service.advance_cursor(flow, 3)

        result = executor.execute(service.get("users"), run)

        assert result.records_processed == 1
        assert service.get("users").next_source_id == 4

    def test_exhausted_source_leaves_cursor(self, service: Any, executor: Any) -> None:
        flow, run = _setup(service, memory_source(2), recording_sink("b"))
        service.advance_cursor(flow, 2)

        result = executor.execute(service.get("users"), run)

        assert result.is_empty
        assert result.first_id is None
        assert service.get("users").next_source_id == 2
        assert service.repository.get_run(run.id).records_processed == 0

    def test_empty_source(self, service: Any, executor: Any) -> None:
        empty = {"type_tag": "memory", "options": {"records": []}}
        flow, run = _setup(service, empty, recording_sink("b"))

        result = executor.execute(flow, run)

        assert result.is_empty
        assert service.get("users").next_source_id is None
        assert RECORDED["b"] == []

    def test_default_batch_size(self, service: Any, executor: Any) -> None:
        flow, run = _setup(service, memory_source(150), recording_sink("b"))

        result = executor.execute(flow, run)

        assert result.records_processed == 100
        assert result.last_id == 100


class TestTransforms:
    """The runtime shapes records; the cursor follows source ids."""

    def test_field_mapper(self, service: Any, executor: Any) -> None:
        runtime = {
            "type_tag": "field_mapper",
            "options": {"mapping": {"value": "payload"}, "select_only": True, "batch_size": 2},
        }
        flow, run = _setup(service, memory_source(5), recording_sink("b"), runtime)

        executor.execute(flow, run)

        assert RECORDED["b"] == [{"payload": "row-1"}, {"payload": "row-2"}]
        assert service.get("users").next_source_id == 2


class TestCollisions:
    """REDUNDANT skips, UPDATE overwrites, NEW inserts."""

    def test_collision_outcomes(self, service: Any, executor: Any) -> None:
        sink = recording_sink("b")
        RECORDED["b"].extend([{"id": 1, "value": "row-1"}, {"id": 2, "value": "stale"}])
        flow, run = _setup(service, memory_source(3), sink, _batch(10, collision_key="id"))

        result = executor.execute(flow, run)

        assert result.records_processed == 3
        assert result.records_skipped == 1
        assert result.records_updated == 1
        assert result.records_written == 1
        assert RECORDED["b"] == [
            {"id": 1, "value": "row-1"},
            {"id": 2, "value": "row-2"},
            {"id": 3, "value": "row-3"},
        ]
        # Skipped records still advance the cursor
        assert service.get("users").next_source_id == 3

    def test_no_collision_key_always_writes(self, service: Any, executor: Any) -> None:
        sink = recording_sink("b")
        RECORDED["b"].append({"id": 1, "value": "row-1"})
        flow, run = _setup(service, memory_source(1), sink)

        result = executor.execute(flow, run)

        assert result.records_written == 1
        assert len(RECORDED["b"]) == 2


class TestLifecycleAndFailures:
    """Connectors are flushed and closed; failures leave the cursor alone."""

    def test_flush_then_close(self, service: Any, executor: Any) -> None:
        flow, run = _setup(service, memory_source(2), recording_sink("b"))

        executor.execute(flow, run)

        assert LIFECYCLE["b"] == ["flush", "close"]

    def test_sink_failure_mid_batch(self, service: Any, executor: Any) -> None:
        from batchflow.contracts import ExecutionError

        flow, run = _setup(service, memory_source(5), recording_sink("b", fail_on=2))

        with pytest.raises(ExecutionError, match="sink exploded at 2") as exc_info:
            executor.execute(flow, run)

        assert isinstance(exc_info.value.original, RuntimeError)
        assert [r["id"] for r in RECORDED["b"]] == [1]
        assert service.get("users").next_source_id is None
        assert LIFECYCLE["b"] == ["close"]

    def test_transform_failure(self, service: Any, executor: Any) -> None:
        from batchflow.contracts import ExecutionError

        runtime = {
            "type_tag": "field_mapper",
            "options": {"mapping": {"missing": "x"}, "strict": True},
        }
        flow, run = _setup(service, memory_source(2), recording_sink("b"), runtime)

        with pytest.raises(ExecutionError, match="no field 'missing'"):
            executor.execute(flow, run)
        assert RECORDED["b"] == []

    def test_unrehydratable_source(self, service: Any, executor: Any) -> None:
        from batchflow.contracts import RehydrationError

        flow, run = _setup(service, memory_source(2), recording_sink("b"))
        flow = service.repository.update_dataflow(flow, source={"type_tag": "gone", "options": {}})

        with pytest.raises(RehydrationError, match="source"):
            executor.execute(flow, run)

    def test_unrehydratable_sink(self, service: Any, executor: Any) -> None:
        from batchflow.contracts import RehydrationError

        flow, run = _setup(service, memory_source(2), recording_sink("b"))
        flow = service.repository.update_dataflow(flow, sink={"type_tag": "recording", "options": {}})

        with pytest.raises(RehydrationError, match="sink"):
            executor.execute(flow, run)


class TestFileToFile:
    """JSONL source into JSONL sink, across runs."""

    def test_incremental_copy(self, service: Any, executor: Any, tmp_path: Path) -> None:
        source_path = tmp_path / "in.jsonl"
        sink_path = tmp_path / "out" / "copy.jsonl"
        source_path.write_text("".join(json.dumps({"id": i}) + "\n" for i in range(1, 6)))

        flow, run = _setup(
            service,
            {"type_tag": "jsonl", "options": {"path": str(source_path)}},
            {"type_tag": "jsonl", "options": {"path": str(sink_path)}},
            _batch(3),
        )

        executor.execute(flow, run)
        executor.execute(service.get("users"), run)
        executor.execute(service.get("users"), run)

        copied = [json.loads(line)["id"] for line in sink_path.read_text().splitlines()]
        assert copied == [1, 2, 3, 4, 5]
