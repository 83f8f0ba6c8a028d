"""Connectors: sources, sinks and the registry that serializes them.

Import pattern:
    from batchflow.connectors import BaseSink, ConnectorRegistry, hookimpl
"""

from batchflow.connectors.base import BaseSink, BaseSource
from batchflow.connectors.config_base import PathConfig, PluginConfig, PluginConfigError
from batchflow.connectors.hookspecs import hookimpl
from batchflow.connectors.protocols import RuntimeProtocol, SinkProtocol, SourceProtocol
from batchflow.connectors.registry import ConnectorRegistry

__all__ = [
    # Base classes
    "BaseSink",
    "BaseSource",
    # Configuration
    "PathConfig",
    "PluginConfig",
    "PluginConfigError",
    # Protocols
    "RuntimeProtocol",
    "SinkProtocol",
    "SourceProtocol",
    # Registration
    "ConnectorRegistry",
    "hookimpl",
]
