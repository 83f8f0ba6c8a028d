"""Hook implementations for the built-in connectors and runtimes."""

from typing import Any

from batchflow.connectors.hookspecs import hookimpl


class BatchflowBuiltinSources:
    """Hook implementer for built-in sources."""

    @hookimpl
    def batchflow_get_sources(self) -> list[type[Any]]:
        from batchflow.connectors.sources.database_source import DatabaseSource
        from batchflow.connectors.sources.jsonl_source import JSONLSource
        from batchflow.connectors.sources.memory_source import MemorySource

        return [MemorySource, JSONLSource, DatabaseSource]


class BatchflowBuiltinSinks:
    """Hook implementer for built-in sinks."""

    @hookimpl
    def batchflow_get_sinks(self) -> list[type[Any]]:
        from batchflow.connectors.sinks.database_sink import DatabaseSink
        from batchflow.connectors.sinks.jsonl_sink import JSONLSink

        return [JSONLSink, DatabaseSink]


class BatchflowBuiltinRuntimes:
    """Hook implementer for built-in runtime policies."""

    @hookimpl
    def batchflow_get_runtimes(self) -> list[type[Any]]:
        from batchflow.runtime.field_mapper import FieldMapperRuntime
        from batchflow.runtime.policy import RuntimePolicy

        return [RuntimePolicy, FieldMapperRuntime]


# Singleton instances for registration
builtin_sources = BatchflowBuiltinSources()
builtin_sinks = BatchflowBuiltinSinks()
builtin_runtimes = BatchflowBuiltinRuntimes()
