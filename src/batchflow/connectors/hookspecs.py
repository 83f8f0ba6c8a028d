"""pluggy hook specifications for batchflow connectors.

Plugins implement these hooks to register connector classes with the
ConnectorRegistry. The registry calls these hooks during discovery.

Usage (implementing a plugin):
    from batchflow.connectors.hookspecs import hookimpl

    class MyConnectors:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def batchflow_get_sinks(self):
            return [MySink]

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks plugin implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from batchflow.connectors.protocols import (
        RuntimeProtocol,
        SinkProtocol,
        SourceProtocol,
    )

# Project name for pluggy
PROJECT_NAME = "batchflow"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class BatchflowSourceSpec:
    """Hook specifications for source connectors."""

    @hookspec
    def batchflow_get_sources(self) -> list[type["SourceProtocol"]]:  # type: ignore[empty-body]
        """Return source connector classes.

        Returns:
            List of Source classes (not instances)
        """


class BatchflowSinkSpec:
    """Hook specifications for sink connectors."""

    @hookspec
    def batchflow_get_sinks(self) -> list[type["SinkProtocol"]]:  # type: ignore[empty-body]
        """Return sink connector classes."""


class BatchflowRuntimeSpec:
    """Hook specifications for runtime policies."""

    @hookspec
    def batchflow_get_runtimes(self) -> list[type["RuntimeProtocol"]]:  # type: ignore[empty-body]
        """Return runtime policy classes."""
