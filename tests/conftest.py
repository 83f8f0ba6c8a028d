# tests/conftest.py
"""Shared test fixtures and helpers.

Provides both repository backends as one parametrized fixture, a registry
with the built-in connectors plus recording test connectors, and the
service/executor/scheduler wired on top.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from batchflow.connectors import BaseSink, ConnectorRegistry, hookimpl
from batchflow.core.store import FlowDB, InMemoryRepository, SqlRepository
from batchflow.engine import BatchExecutor, DataFlowService, HeartbeatScheduler

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# Fixed clock for scheduling tests
NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def make_records(count: int, start: int = 1) -> list[dict[str, Any]]:
    """Records with ids start..start+count-1."""
    return [{"id": i, "value": f"row-{i}"} for i in range(start, start + count)]


def memory_source(count: int) -> dict[str, Any]:
    """Descriptor of a memory source holding count records."""
    return {"type_tag": "memory", "options": {"records": make_records(count)}}


# =============================================================================
# Test connectors
# =============================================================================

# bucket name -> records written by RecordingSink
RECORDED: dict[str, list[dict[str, Any]]] = {}
# bucket name -> "flush"/"close" calls, in order
LIFECYCLE: dict[str, list[str]] = {}


class RecordingSink(BaseSink):
    """Sink that keeps records in RECORDED[bucket], optionally failing.

    Options:
        bucket: Key into RECORDED (required)
        fail_on: Raise when a record with this id is written
        key_field: Field find()/update() match on (default: "id")
    """

    name = "recording"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        if "bucket" not in config:
            raise ValueError("bucket is required")
        self.bucket = config["bucket"]
        self.fail_on = config.get("fail_on")
        self.key_field = config.get("key_field", "id")
        RECORDED.setdefault(self.bucket, [])

    @property
    def records(self) -> list[dict[str, Any]]:
        return RECORDED[self.bucket]

    def write(self, record: dict[str, Any]) -> None:
        if self.fail_on is not None and record.get(self.key_field) == self.fail_on:
            raise RuntimeError(f"sink exploded at {self.fail_on}")
        self.records.append(dict(record))

    def find(self, key: Any) -> dict[str, Any] | None:
        for record in self.records:
            if record.get(self.key_field) == key:
                return dict(record)
        return None

    def update(self, key: Any, record: dict[str, Any]) -> None:
        for index, existing in enumerate(self.records):
            if existing.get(self.key_field) == key:
                self.records[index] = dict(record)
                return
        raise KeyError(key)

    def flush(self) -> None:
        LIFECYCLE.setdefault(self.bucket, []).append("flush")

    def close(self) -> None:
        LIFECYCLE.setdefault(self.bucket, []).append("close")


class TestConnectors:
    """Hook implementer registering the test connectors."""

    __test__ = False  # Not a pytest test class

    @hookimpl
    def batchflow_get_sinks(self) -> list[type[Any]]:
        return [RecordingSink]


test_connectors = TestConnectors()


def recording_sink(bucket: str, **options: Any) -> dict[str, Any]:
    """Descriptor of a RecordingSink writing into a fresh bucket."""
    RECORDED[bucket] = []
    return {"type_tag": "recording", "options": {"bucket": bucket, **options}}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_recorded() -> Iterator[None]:
    yield
    RECORDED.clear()
    LIFECYCLE.clear()


@pytest.fixture(params=["memory", "sql"])
def repository(request: pytest.FixtureRequest) -> Iterator[Any]:
    """Each repository backend in turn."""
    if request.param == "memory":
        repo: Any = InMemoryRepository()
    else:
        repo = SqlRepository(FlowDB.in_memory())
    yield repo
    repo.close()


@pytest.fixture
def registry() -> ConnectorRegistry:
    registry = ConnectorRegistry.with_builtins()
    registry.register(test_connectors)
    return registry


@pytest.fixture
def service(repository: Any, registry: ConnectorRegistry) -> DataFlowService:
    return DataFlowService(repository, registry)


@pytest.fixture
def executor(repository: Any, registry: ConnectorRegistry) -> BatchExecutor:
    return BatchExecutor(repository, registry)


@pytest.fixture
def scheduler(service: DataFlowService, executor: BatchExecutor) -> HeartbeatScheduler:
    return HeartbeatScheduler(service, executor, sleep=lambda _: None)
