"""Built-in source connectors."""

from batchflow.connectors.sources.database_source import DatabaseSource
from batchflow.connectors.sources.jsonl_source import JSONLSource
from batchflow.connectors.sources.memory_source import MemorySource

__all__ = ["DatabaseSource", "JSONLSource", "MemorySource"]
