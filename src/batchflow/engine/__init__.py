"""Engine: data flow policy, batch execution and the heartbeat scheduler."""

from batchflow.engine.executor import BatchExecutor
from batchflow.engine.flows import DataFlowService
from batchflow.engine.scheduler import INTERRUPTED_MESSAGE, HeartbeatScheduler

__all__ = [
    "INTERRUPTED_MESSAGE",
    "BatchExecutor",
    "DataFlowService",
    "HeartbeatScheduler",
]
