"""Runtime policies: scheduling knobs and per-record transforms."""

from batchflow.runtime.field_mapper import FieldMapperRuntime
from batchflow.runtime.policy import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTERVAL_SECONDS,
    RuntimePolicy,
)

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_INTERVAL_SECONDS",
    "FieldMapperRuntime",
    "RuntimePolicy",
]
