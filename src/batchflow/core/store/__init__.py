"""Store: persistence for data flows and their scheduled runs."""

from batchflow.core.config import DatabaseSettings
from batchflow.core.store.database import FlowDB
from batchflow.core.store.memory_repository import InMemoryRepository
from batchflow.core.store.repository import Repository
from batchflow.core.store.schema import data_flow_runs_table, data_flows_table, metadata
from batchflow.core.store.sql_repository import SqlRepository


def open_repository(settings: DatabaseSettings) -> InMemoryRepository | SqlRepository:
    """Build the repository the database settings ask for."""
    if settings.backend == "memory":
        return InMemoryRepository()
    return SqlRepository(FlowDB.from_url(settings.url, echo=settings.echo))


__all__ = [
    # Database
    "FlowDB",
    "metadata",
    "data_flow_runs_table",
    "data_flows_table",
    # Repositories
    "InMemoryRepository",
    "Repository",
    "SqlRepository",
    "open_repository",
]
