"""Built-in sink connectors."""

from batchflow.connectors.sinks.database_sink import DatabaseSink
from batchflow.connectors.sinks.jsonl_sink import JSONLSink

__all__ = ["DatabaseSink", "JSONLSink"]
