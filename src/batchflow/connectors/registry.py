"""Connector registry: discovery, serialization and rehydration.

Uses pluggy for hook-based registration. Every source, sink and runtime
class is known by its type tag, unique per ConnectorKind, and a live object
round-trips through a descriptor:

    {"type_tag": "jsonl", "options": {"path": "out.jsonl"}}

Lookup is by explicit tag -> class map only, never by import path.
"""

from typing import Any

import pluggy

from batchflow.connectors.config_base import PluginConfigError
from batchflow.connectors.hookspecs import (
    PROJECT_NAME,
    BatchflowRuntimeSpec,
    BatchflowSinkSpec,
    BatchflowSourceSpec,
)
from batchflow.connectors.protocols import RuntimeProtocol, SinkProtocol, SourceProtocol
from batchflow.contracts import ConnectorKind, Descriptor, RehydrationError
from batchflow.core.logging import get_logger

logger = get_logger(__name__)

# Keys that may carry the type tag in a flat descriptor
_TAG_KEYS = ("type_tag", "class_name")


def _split_descriptor(descriptor: Any) -> tuple[str, dict[str, Any]]:
    """Return (tag, options) from a nested or flat descriptor.

    Raises:
        RehydrationError: If the descriptor is not a dict or has no tag
    """
    if not isinstance(descriptor, dict):
        raise RehydrationError(
            f"Descriptor must be a mapping, got {type(descriptor).__name__}",
            descriptor,
        )

    tag_key = next((key for key in _TAG_KEYS if key in descriptor), None)
    if tag_key is None:
        raise RehydrationError("Descriptor has no type_tag", descriptor)
    tag = descriptor[tag_key]
    if not isinstance(tag, str) or not tag:
        raise RehydrationError(f"Invalid type tag: {tag!r}", descriptor)

    # Nested form: exactly a tag and an options mapping
    if set(descriptor) == {tag_key, "options"}:
        options = descriptor["options"]
        if options is None:
            return tag, {}
        if not isinstance(options, dict):
            raise RehydrationError("Descriptor options must be a mapping", descriptor)
        return tag, dict(options)

    # Flat form: everything except the tag key is an option
    return tag, {k: v for k, v in descriptor.items() if k not in _TAG_KEYS}


class ConnectorRegistry:
    """Maps type tags to connector classes and converts objects to descriptors.

    Usage:
        registry = ConnectorRegistry()
        registry.register_builtin_plugins()

        descriptor = registry.serialize(JSONLSink({"path": "out.jsonl"}))
        sink = registry.deserialize(descriptor, ConnectorKind.SINK)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)

        # Register hookspecs
        self._pm.add_hookspecs(BatchflowSourceSpec)
        self._pm.add_hookspecs(BatchflowSinkSpec)
        self._pm.add_hookspecs(BatchflowRuntimeSpec)

        # Caches - map tag to class per kind, for duplicate detection
        self._classes: dict[ConnectorKind, dict[str, type[Any]]] = {
            kind: {} for kind in ConnectorKind
        }

    @classmethod
    def with_builtins(cls) -> "ConnectorRegistry":
        """Registry with every built-in connector and runtime registered."""
        registry = cls()
        registry.register_builtin_plugins()
        return registry

    def register_builtin_plugins(self) -> None:
        """Register all built-in hook implementers."""
        from batchflow.connectors.builtins import (
            builtin_runtimes,
            builtin_sinks,
            builtin_sources,
        )

        self.register(builtin_sources)
        self.register(builtin_sinks)
        self.register(builtin_runtimes)

    def register(self, plugin: Any) -> None:
        """Register a plugin object implementing one or more hooks.

        Raises:
            ValueError: If a tag is already registered for the same kind
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_caches(self) -> None:
        """Refresh tag maps from hooks.

        Raises:
            ValueError: If two classes share a tag within one kind
        """
        hooks = {
            ConnectorKind.SOURCE: self._pm.hook.batchflow_get_sources,
            ConnectorKind.SINK: self._pm.hook.batchflow_get_sinks,
            ConnectorKind.RUNTIME: self._pm.hook.batchflow_get_runtimes,
        }

        # Collect everything first, then swap in
        new_classes: dict[ConnectorKind, dict[str, type[Any]]] = {}
        for kind, hook in hooks.items():
            collected: dict[str, type[Any]] = {}
            for classes in hook():
                for cls in classes:
                    tag = cls.name
                    if tag in collected:
                        raise ValueError(
                            f"Duplicate {kind.value} type tag: '{tag}'. "
                            f"Already registered by {collected[tag].__name__}"
                        )
                    collected[tag] = cls
            new_classes[kind] = collected

        self._classes = new_classes

    # === Getters ===

    def get_sources(self) -> list[type[SourceProtocol]]:
        """Get all registered source classes."""
        return list(self._classes[ConnectorKind.SOURCE].values())

    def get_sinks(self) -> list[type[SinkProtocol]]:
        """Get all registered sink classes."""
        return list(self._classes[ConnectorKind.SINK].values())

    def get_runtimes(self) -> list[type[RuntimeProtocol]]:
        """Get all registered runtime classes."""
        return list(self._classes[ConnectorKind.RUNTIME].values())

    def get_source_by_name(self, name: str) -> type[SourceProtocol] | None:
        return self._classes[ConnectorKind.SOURCE].get(name)

    def get_sink_by_name(self, name: str) -> type[SinkProtocol] | None:
        return self._classes[ConnectorKind.SINK].get(name)

    def get_runtime_by_name(self, name: str) -> type[RuntimeProtocol] | None:
        return self._classes[ConnectorKind.RUNTIME].get(name)

    def tags(self, kind: ConnectorKind) -> list[str]:
        """Registered type tags for one kind, sorted."""
        return sorted(self._classes[ConnectorKind(kind)])

    # === Serialization ===

    def kind_of(self, obj: Any) -> ConnectorKind | None:
        """Which kind obj's class is registered under, if any."""
        tag = getattr(type(obj), "name", None)
        for kind, classes in self._classes.items():
            if tag is not None and classes.get(tag) is type(obj):
                return kind
        return None

    def serialize(self, obj: Any) -> Descriptor:
        """Convert a registered connector or runtime to its descriptor.

        Raises:
            RehydrationError: If obj's class is not registered
        """
        if self.kind_of(obj) is None:
            raise RehydrationError(
                f"{type(obj).__name__} is not a registered connector or runtime"
            )
        return {"type_tag": type(obj).name, "options": obj.options}

    def deserialize(self, descriptor: Any, kind: ConnectorKind) -> Any:
        """Rebuild a live object from a descriptor.

        Raises:
            RehydrationError: Unknown or missing tag, malformed descriptor,
                or options the implementation rejects
        """
        kind = ConnectorKind(kind)
        tag, options = _split_descriptor(descriptor)

        cls = self._classes[kind].get(tag)
        if cls is None:
            raise RehydrationError(
                f"Unknown {kind.value} type tag: '{tag}'. "
                f"Known: {', '.join(self.tags(kind)) or 'none'}",
                descriptor,
            )

        try:
            return cls(options)
        except (PluginConfigError, TypeError, ValueError) as e:
            raise RehydrationError(
                f"Cannot rehydrate {kind.value} '{tag}': {e}", descriptor
            ) from e

    # === Non-fatal load path ===

    def rehydrate_source(self, descriptor: Any) -> SourceProtocol | None:
        """deserialize() a source, logging and returning None on failure."""
        return self._rehydrate_or_none(descriptor, ConnectorKind.SOURCE)

    def rehydrate_sink(self, descriptor: Any) -> SinkProtocol | None:
        """deserialize() a sink, logging and returning None on failure."""
        return self._rehydrate_or_none(descriptor, ConnectorKind.SINK)

    def rehydrate_runtime(self, descriptor: Any) -> RuntimeProtocol:
        """deserialize() a runtime, falling back to the default policy.

        A flow without a runtime, or with one that cannot be rebuilt, runs
        under RuntimePolicy() defaults.
        """
        from batchflow.runtime.policy import RuntimePolicy

        if descriptor is None:
            return RuntimePolicy()
        try:
            return self.deserialize(descriptor, ConnectorKind.RUNTIME)  # type: ignore[no-any-return]
        except RehydrationError as e:
            logger.warning(
                "Runtime rehydration failed, using default policy",
                error=str(e),
            )
            return RuntimePolicy()

    def _rehydrate_or_none(self, descriptor: Any, kind: ConnectorKind) -> Any:
        if descriptor is None:
            return None
        try:
            return self.deserialize(descriptor, kind)
        except RehydrationError as e:
            logger.warning(
                "Connector rehydration failed",
                kind=kind.value,
                error=str(e),
            )
            return None
